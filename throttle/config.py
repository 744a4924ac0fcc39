"""Configuration loader for the request throttle service.

Reads an optional JSON config file containing policy overrides, API keys and
service settings, then applies environment overrides to the policy limits.
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from throttle.auth import ApiKeyEntry, parse_api_keys
from throttle.limiter import DEFAULT_SWEEP_INTERVAL_SECONDS
from throttle.policy import DEFAULT_POLICIES, Policy, apply_env_overrides

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class AuthConfig:
    """API key authentication configuration."""

    api_keys: Dict[str, ApiKeyEntry] = field(default_factory=dict)


@dataclass
class ThrottleConfig:
    """Top-level service configuration."""

    policies: Dict[str, Policy] = field(
        default_factory=lambda: dict(DEFAULT_POLICIES)
    )
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    trust_forwarded_for: bool = True
    auth: AuthConfig = field(default_factory=AuthConfig)
    log_file: str = "logs/throttle.log"
    log_level: str = "INFO"


def _parse_policy(name: str, raw: Mapping[str, Any], base: Optional[Policy]) -> Policy:
    """Build a Policy from a config object, starting from ``base`` if given."""
    fields: Dict[str, Any] = {}
    if "limit" in raw:
        fields["limit"] = int(raw["limit"])
    if "window_ms" in raw:
        fields["window_duration_ms"] = int(raw["window_ms"])
    if "key_prefix" in raw:
        fields["key_prefix"] = raw["key_prefix"]
    if "admin_bypass" in raw:
        fields["admin_bypass"] = bool(raw["admin_bypass"])
    if "admin_limit" in raw:
        fields["admin_limit"] = (
            None if raw["admin_limit"] is None else int(raw["admin_limit"])
        )
    if "message" in raw:
        fields["message"] = raw["message"]
    if "emit_headers" in raw:
        fields["emit_headers"] = bool(raw["emit_headers"])
    if "detailed_rejection" in raw:
        fields["detailed_rejection"] = bool(raw["detailed_rejection"])

    if base is not None:
        return replace(base, **fields)

    missing = [k for k in ("limit", "window_duration_ms") if k not in fields]
    if missing:
        raise ValueError(
            "Policy '{}' is missing required fields: {}".format(
                name, ", ".join(missing)
            )
        )
    fields.setdefault("key_prefix", name)
    return Policy(name=name, **fields)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return ``raw[name]`` as a mapping, or raise if it is not an object."""
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ValueError("Config section '{}' must be an object.".format(name))
    return value


def parse_config(
    raw: Mapping[str, Any], env: Optional[Mapping[str, str]] = None
) -> ThrottleConfig:
    """Build a ThrottleConfig from already-parsed JSON.

    Raises:
        ValueError: If a section has the wrong shape, or a policy, API key
            entry or service setting is invalid.
    """
    if not isinstance(raw, dict):
        raise ValueError("Config must be a JSON object.")

    policies: Dict[str, Policy] = dict(DEFAULT_POLICIES)
    for name, policy_raw in _section(raw, "policies").items():
        if not isinstance(policy_raw, dict):
            raise ValueError("Policy '{}' must be an object.".format(name))
        try:
            policies[name] = _parse_policy(name, policy_raw, policies.get(name))
        except (TypeError, ValueError) as exc:
            raise ValueError("Invalid policy '{}': {}".format(name, exc)) from exc

    auth_raw = _section(raw, "auth")
    api_keys_raw = auth_raw.get("api_keys", {})
    if not isinstance(api_keys_raw, dict):
        raise ValueError("Config section 'auth.api_keys' must be an object.")
    auth = AuthConfig(api_keys=parse_api_keys(api_keys_raw))

    try:
        sweep_interval = float(
            raw.get("sweep_interval_seconds", DEFAULT_SWEEP_INTERVAL_SECONDS)
        )
    except (TypeError, ValueError) as exc:
        raise ValueError("sweep_interval_seconds must be a number.") from exc
    if sweep_interval <= 0:
        raise ValueError(
            "sweep_interval_seconds must be positive (got {}).".format(sweep_interval)
        )

    log_level = str(raw.get("log_level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            "log_level must be one of {} (got {!r}).".format(
                ", ".join(LOG_LEVELS), raw.get("log_level")
            )
        )

    return ThrottleConfig(
        policies=apply_env_overrides(policies, env),
        sweep_interval_seconds=sweep_interval,
        trust_forwarded_for=bool(raw.get("trust_forwarded_for", True)),
        auth=auth,
        log_file=raw.get("log_file", "logs/throttle.log"),
        log_level=log_level,
    )


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ThrottleConfig:
    """Load throttle configuration from a JSON file.

    With no path, built-in defaults are used (environment overrides still
    apply).

    Args:
        path: Path to the JSON config file, or None.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        A fully resolved ThrottleConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    if env is None:
        env = os.environ

    if path is None:
        return parse_config({}, env)

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        try:
            raw: Dict[str, Any] = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Config file is not valid JSON: {path}") from exc

    return parse_config(raw, env)
