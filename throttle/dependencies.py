"""FastAPI integration for the request throttle.

Routes opt in to a policy by depending on ``enforce("<policy name>")``. The
dependency resolves the caller's principal and client key, runs the
throttle, attaches the X-RateLimit-* headers and raises QuotaExceeded when
the request is rejected. ``register_exception_handlers`` turns the
exceptions raised here into JSON error responses.
"""

import os
from typing import Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from throttle.auth import AuthenticationError, Principal, authenticate, is_admin
from throttle.config import ThrottleConfig, load_config
from throttle.identity import client_key_for_request
from throttle.limiter import Decision, Throttle
from throttle.models import ErrorResponse, RateLimitErrorResponse
from throttle.policy import Policy
from throttle.telemetry import log_decision

CONFIG_PATH = os.getenv("THROTTLE_CONFIG")

_config: Optional[ThrottleConfig] = None
_throttle: Optional[Throttle] = None


class QuotaExceeded(Exception):
    """Raised by the HTTP layer when a throttle check rejects a request."""

    def __init__(self, policy: Policy, decision: Decision, client_key: str) -> None:
        self.policy = policy
        self.decision = decision
        self.client_key = client_key
        self.detail = policy.message
        super().__init__(self.detail)


class UnknownPolicyError(Exception):
    """Raised when a route names a policy that is not configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.detail = "Unknown throttle policy '{}'.".format(name)
        super().__init__(self.detail)


def get_config() -> ThrottleConfig:
    """Return the loaded throttle configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = load_config(CONFIG_PATH)
    return _config


def get_throttle() -> Throttle:
    """Return the process-wide throttle (lazy-init)."""
    global _throttle
    if _throttle is None:
        _throttle = Throttle(is_privileged=is_admin)
    return _throttle


def get_policy(name: str) -> Policy:
    policy = get_config().policies.get(name)
    if policy is None:
        raise UnknownPolicyError(name)
    return policy


def rate_limit_headers(decision: Decision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_epoch_seconds),
    }


def apply_policy(request: Request, response: Response, policy: Policy) -> Decision:
    """Run ``policy`` against the calling request.

    Raises:
        AuthenticationError: If an API key is supplied but invalid.
        QuotaExceeded: If the throttle rejects the request.
    """
    config = get_config()
    principal: Optional[Principal] = authenticate(
        request.headers.get("x-api-key"), config.auth.api_keys
    )
    client_key = client_key_for_request(
        request, principal, trust_forwarded_for=config.trust_forwarded_for
    )

    decision = get_throttle().check(policy, client_key, principal)
    log_decision(
        policy=policy.name,
        client_key=client_key,
        admitted=decision.admit,
        remaining=decision.remaining,
        retry_after=decision.retry_after_seconds,
        path=request.url.path,
    )

    if not decision.admit:
        raise QuotaExceeded(policy, decision, client_key)

    if policy.emit_headers:
        response.headers.update(rate_limit_headers(decision))
    return decision


def enforce(policy_name: str) -> Callable[[Request, Response], Decision]:
    """Build a dependency that enforces the named policy on a route."""

    def dependency(request: Request, response: Response) -> Decision:
        return apply_policy(request, response, get_policy(policy_name))

    dependency.__name__ = "enforce_{}".format(policy_name)
    return dependency


async def quota_exceeded_handler(request: Request, exc: QuotaExceeded) -> JSONResponse:
    """Translate QuotaExceeded into the 429 rejection payload."""
    retry_after = exc.decision.retry_after_seconds or 0
    body = RateLimitErrorResponse(message=exc.detail, retryAfter=retry_after)
    if exc.policy.detailed_rejection:
        body.error = "Too Many Requests"
        body.cooldownSeconds = retry_after
    headers = {"Retry-After": str(retry_after)}
    if exc.policy.emit_headers:
        headers.update(rate_limit_headers(exc.decision))
    return JSONResponse(
        status_code=429, content=body.model_dump(exclude_none=True), headers=headers
    )


async def authentication_error_handler(
    request: Request, exc: AuthenticationError
) -> JSONResponse:
    body = ErrorResponse(message=exc.detail)
    return JSONResponse(status_code=401, content=body.model_dump())


async def unknown_policy_handler(
    request: Request, exc: UnknownPolicyError
) -> JSONResponse:
    body = ErrorResponse(message=exc.detail)
    return JSONResponse(status_code=404, content=body.model_dump())


def register_exception_handlers(application: FastAPI) -> None:
    """Install the handlers for the exceptions raised by ``enforce``."""
    application.add_exception_handler(QuotaExceeded, quota_exceeded_handler)
    application.add_exception_handler(AuthenticationError, authentication_error_handler)
    application.add_exception_handler(UnknownPolicyError, unknown_policy_handler)
