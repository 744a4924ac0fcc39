"""API key authentication for throttled endpoints.

Validates incoming API keys by comparing their SHA-256 hash against a
configured set of known key hashes. Keys are never stored in plaintext --
only their hashes appear in the configuration.

A valid key resolves to a Principal. Requests without a key are anonymous
and get throttled by network address instead.
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

ADMIN_ROLE = "admin"
VENDOR_ROLE = "vendor"


class AuthenticationError(Exception):
    """Raised when API key validation fails."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    subject: str
    role: str = VENDOR_ROLE

    @property
    def kind(self) -> str:
        return ADMIN_ROLE if self.role == ADMIN_ROLE else VENDOR_ROLE


@dataclass(frozen=True)
class ApiKeyEntry:
    """Configured API key: hash plus the principal it authenticates."""

    key_hash: str
    role: str = VENDOR_ROLE
    subject: Optional[str] = None


def hash_api_key(raw_key: str) -> str:
    """Compute the SHA-256 hash of a raw API key.

    Use this to generate the hash value for config files::

        python -c "from throttle.auth import hash_api_key; print(hash_api_key('your-key'))"

    Args:
        raw_key: The plaintext API key.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def parse_api_keys(raw: Mapping[str, Any]) -> Dict[str, ApiKeyEntry]:
    """Parse the ``auth.api_keys`` config section.

    Each value is either a bare hash string (a vendor key) or an object with
    ``hash`` and optional ``role`` and ``subject``.

    Raises:
        ValueError: If the section is not an object or an entry has no hash.
    """
    if not isinstance(raw, dict):
        raise ValueError("API keys must be an object mapping key names to hashes.")
    entries: Dict[str, ApiKeyEntry] = {}
    for key_name, value in raw.items():
        if isinstance(value, str):
            entries[key_name] = ApiKeyEntry(key_hash=value)
            continue
        if not isinstance(value, dict) or not value.get("hash"):
            raise ValueError("API key '{}' is missing a hash.".format(key_name))
        entries[key_name] = ApiKeyEntry(
            key_hash=value["hash"],
            role=value.get("role", VENDOR_ROLE),
            subject=value.get("subject"),
        )
    return entries


def authenticate(
    header_value: Optional[str],
    api_keys: Mapping[str, ApiKeyEntry],
) -> Optional[Principal]:
    """Resolve an API key header to a Principal.

    Args:
        header_value: The value from the X-API-Key header (may be None).
        api_keys: Mapping of key_name -> ApiKeyEntry from config.

    Returns:
        The authenticated Principal, or None when no key was supplied.

    Raises:
        AuthenticationError: If a key was supplied but does not match.
    """
    if not header_value:
        return None

    incoming_hash = hash_api_key(header_value)

    for key_name, entry in api_keys.items():
        if hmac.compare_digest(incoming_hash, entry.key_hash):
            return Principal(subject=entry.subject or key_name, role=entry.role)

    raise AuthenticationError("Invalid API key.")


def is_admin(principal: Any) -> bool:
    """Default privilege predicate: admins may use a policy's admin_limit."""
    return isinstance(principal, Principal) and principal.role == ADMIN_ROLE
