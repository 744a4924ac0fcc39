"""Client identity derivation.

The client key partitions quota state per caller. Authenticated callers are
keyed by their principal so that quota follows the account across networks;
anonymous callers fall back to the best network address available.
"""

from typing import Optional

from fastapi import Request

from throttle.auth import Principal
from throttle.limiter import UNKNOWN_CLIENT


def first_forwarded_for(header_value: Optional[str]) -> Optional[str]:
    """Return the first non-empty address of an X-Forwarded-For chain."""
    if not header_value:
        return None
    for part in header_value.split(","):
        address = part.strip()
        if address:
            return address
    return None


def derive_client_key(
    principal: Optional[Principal] = None,
    forwarded_for: Optional[str] = None,
    remote_addr: Optional[str] = None,
    trust_forwarded_for: bool = True,
) -> str:
    """Derive the client key for a request.

    Precedence: authenticated principal, then the first X-Forwarded-For hop
    (when trusted), then the connection peer address, then "unknown".
    Never raises.
    """
    if principal is not None and principal.subject:
        return "{}:{}".format(principal.kind, principal.subject)

    if trust_forwarded_for:
        forwarded = first_forwarded_for(forwarded_for)
        if forwarded:
            return forwarded

    if remote_addr and remote_addr.strip():
        return remote_addr.strip()

    return UNKNOWN_CLIENT


def client_key_for_request(
    request: Request,
    principal: Optional[Principal] = None,
    trust_forwarded_for: bool = True,
) -> str:
    """Derive the client key from a FastAPI request."""
    remote_addr = request.client.host if request.client else None
    return derive_client_key(
        principal=principal,
        forwarded_for=request.headers.get("x-forwarded-for"),
        remote_addr=remote_addr,
        trust_forwarded_for=trust_forwarded_for,
    )
