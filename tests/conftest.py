"""Shared test fixtures for the request throttle tests."""

import json
from pathlib import Path
from typing import Dict, Optional

import pytest

from throttle.auth import hash_api_key
from throttle.config import ThrottleConfig, load_config
from throttle.limiter import Throttle

ADMIN_KEY = "admin-secret"
VENDOR_KEY = "vendor-secret"


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "policies": {
            "login": {"limit": 5, "window_ms": 900000},
            "system_action": {"limit": 2},
            "reports": {"limit": 3, "window_ms": 60000},
        },
        "sweep_interval_seconds": 60,
        "auth": {
            "api_keys": {
                "ops-admin": {"hash": hash_api_key(ADMIN_KEY), "role": "admin"},
                "vendor-1": {
                    "hash": hash_api_key(VENDOR_KEY),
                    "role": "vendor",
                    "subject": "64f0c1",
                },
            }
        },
        "log_file": str(tmp_path / "test.log"),
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "test_config.json"
    path.write_text(json.dumps(config))
    return str(path)


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_config(test_config_path: str) -> ThrottleConfig:
    """Return a loaded test ThrottleConfig (environment ignored)."""
    return load_config(test_config_path, env={})


@pytest.fixture()
def throttle() -> Throttle:
    """A throttle with a fresh in-memory store and a fixed clock at t=0."""
    return Throttle(clock=lambda: 0.0)
