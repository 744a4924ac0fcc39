"""Named throttle policies for the marketplace endpoint classes.

A policy is a static quota description: how many requests one client may
make per fixed window, the key prefix that partitions its counters in the
store, and whether privileged callers get a raised ceiling.

Built-in policies mirror the endpoint classes of the marketplace backend.
Limits can be overridden from the environment at process start, either by
the legacy variable names or by the generic THROTTLE_<POLICY>_* form.
"""

import logging
import os
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional

_logger = logging.getLogger("throttle")

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


@dataclass(frozen=True)
class Policy:
    """Quota configuration for one endpoint class."""

    name: str
    window_duration_ms: int
    limit: int
    key_prefix: str
    admin_bypass: bool = False
    admin_limit: Optional[int] = None
    message: str = "Rate limit exceeded. Please slow down."
    emit_headers: bool = True
    detailed_rejection: bool = False

    def __post_init__(self) -> None:
        if not self.key_prefix:
            raise ValueError("Policy '{}' needs a key_prefix.".format(self.name))
        if self.limit < 1:
            raise ValueError(
                "Policy '{}' limit must be >= 1 (got {}).".format(self.name, self.limit)
            )
        if self.window_duration_ms < 1:
            raise ValueError(
                "Policy '{}' window must be >= 1 ms (got {}).".format(
                    self.name, self.window_duration_ms
                )
            )
        if self.admin_bypass:
            if self.admin_limit is None or self.admin_limit < self.limit:
                raise ValueError(
                    "Policy '{}' admin_limit must be set and >= limit "
                    "when admin_bypass is enabled.".format(self.name)
                )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the policy to a dictionary."""
        return asdict(self)


LOGIN = Policy(
    name="login",
    window_duration_ms=15 * MINUTE_MS,
    limit=5,
    key_prefix="vendor_login",
    message="Too many login attempts. Please try again later.",
)

API = Policy(
    name="api",
    window_duration_ms=MINUTE_MS,
    limit=100,
    key_prefix="vendor_api",
    message="Rate limit exceeded. Please slow down.",
)

UPLOAD = Policy(
    name="upload",
    window_duration_ms=MINUTE_MS,
    limit=10,
    key_prefix="vendor_upload",
    message="Too many file uploads. Please try again later.",
)

SYSTEM_ACTION = Policy(
    name="system_action",
    window_duration_ms=MINUTE_MS,
    limit=5,
    key_prefix="system_action",
    message="Too many system actions. Please wait before trying again.",
)

# Admins get a ceiling high enough to be effectively unlimited; counting
# still happens on the same path as everyone else.
SENSITIVE_VIEW = Policy(
    name="sensitive_view",
    window_duration_ms=2 * MINUTE_MS,
    limit=1,
    key_prefix="vendor_password",
    admin_bypass=True,
    admin_limit=1000,
    message="Password view rate limit exceeded. Please wait before trying again.",
    detailed_rejection=True,
)

ADMIN_CODE_REQUEST = Policy(
    name="admin_code_request",
    window_duration_ms=HOUR_MS,
    limit=6,
    key_prefix="admin_code_request",
    message="Too many requests. Please try again later.",
)

ADMIN_CODE_VERIFY = Policy(
    name="admin_code_verify",
    window_duration_ms=HOUR_MS,
    limit=20,
    key_prefix="admin_code_verify",
    message="Too many verification attempts. Please try again later.",
    emit_headers=False,
)

DEFAULT_POLICIES: Dict[str, Policy] = {
    p.name: p
    for p in (
        LOGIN,
        API,
        UPLOAD,
        SYSTEM_ACTION,
        SENSITIVE_VIEW,
        ADMIN_CODE_REQUEST,
        ADMIN_CODE_VERIFY,
    )
}

# Variable names the marketplace backend already deploys with.
LEGACY_LIMIT_ENV = {
    "login": "VENDOR_LOGIN_MAX_ATTEMPTS",
    "api": "VENDOR_API_MAX_REQUESTS",
    "upload": "FILE_UPLOAD_MAX_REQUESTS",
    "system_action": "SYSTEM_ACTION_MAX_REQUESTS",
    "sensitive_view": "SENSITIVE_VIEW_MAX_REQUESTS",
    "admin_code_request": "ADMIN_MAX_REQUESTS_PER_HOUR",
    "admin_code_verify": "ADMIN_CODE_VERIFY_MAX_ATTEMPTS",
}


def _env_int(env: Mapping[str, str], var: str) -> Optional[int]:
    """Read a positive integer from env, warning on anything else."""
    raw = env.get(var)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        _logger.warning("Ignoring %s=%r: not an integer.", var, raw)
        return None
    if value < 1:
        _logger.warning("Ignoring %s=%r: must be positive.", var, raw)
        return None
    return value


def apply_env_overrides(
    policies: Mapping[str, Policy],
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Policy]:
    """Return a copy of ``policies`` with environment overrides applied.

    For every policy the legacy limit variable (if it has one) is read first,
    then ``THROTTLE_<NAME>_LIMIT``, ``THROTTLE_<NAME>_WINDOW_MS`` and
    ``THROTTLE_<NAME>_ADMIN_LIMIT``. The generic form wins.

    Args:
        policies: Policies keyed by name.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        A new dict of policies.
    """
    if env is None:
        env = os.environ

    result: Dict[str, Policy] = {}
    for name, policy in policies.items():
        prefix = "THROTTLE_{}_".format(name.upper())
        changes: Dict[str, Any] = {}

        legacy_var = LEGACY_LIMIT_ENV.get(name)
        if legacy_var:
            legacy_limit = _env_int(env, legacy_var)
            if legacy_limit is not None:
                changes["limit"] = legacy_limit

        limit = _env_int(env, prefix + "LIMIT")
        if limit is not None:
            changes["limit"] = limit

        window = _env_int(env, prefix + "WINDOW_MS")
        if window is not None:
            changes["window_duration_ms"] = window

        if policy.admin_bypass:
            admin_limit = _env_int(env, prefix + "ADMIN_LIMIT")
            if admin_limit is not None:
                changes["admin_limit"] = admin_limit

        if not changes:
            result[name] = policy
            continue

        try:
            result[name] = replace(policy, **changes)
        except ValueError as exc:
            _logger.warning("Ignoring environment overrides for %s: %s", name, exc)
            result[name] = policy

    return result
