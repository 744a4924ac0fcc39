"""FastAPI application for the request throttle service.

Runs the throttle as a sidecar in front of the marketplace backend: the
proxy calls ``POST /v1/throttle/{policy}`` with the original request's
headers and forwards the request only on a 200. The same dependency used
here (``throttle.dependencies.enforce``) can be mounted directly on routes
of an in-process FastAPI app.

Request flow:
1. Resolve the principal from X-API-Key (invalid key -> 401)
2. Derive the client key (principal, X-Forwarded-For, peer address)
3. Count the request against the named policy
4. Admit with X-RateLimit-* headers, or reject with 429 and Retry-After
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, Response

from throttle.dependencies import (
    apply_policy,
    get_config,
    get_policy,
    get_throttle,
    register_exception_handlers,
)
from throttle.limiter import Sweeper
from throttle.models import HealthResponse, PolicyInfo, PolicyListResponse, QuotaResponse
from throttle.telemetry import logger, setup_logging

_sweeper: Optional[Sweeper] = None


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Initialize config and logging, and run the sweeper while serving."""
    global _sweeper
    cfg = get_config()
    setup_logging(cfg.log_file, cfg.log_level)
    _sweeper = Sweeper(get_throttle(), interval_seconds=cfg.sweep_interval_seconds)
    _sweeper.start()
    logger.info(
        "Throttle service started with policies: %s",
        ", ".join(sorted(cfg.policies)),
    )
    try:
        yield
    finally:
        await _sweeper.stop()
        _sweeper = None


app = FastAPI(title="Marketplace Request Throttle", version="0.1.0", lifespan=lifespan)
register_exception_handlers(app)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", entries=len(get_throttle().store))


@app.get("/v1/policies", response_model=PolicyListResponse)
async def list_policies() -> PolicyListResponse:
    """Describe every configured policy."""
    policies = [
        PolicyInfo(
            name=p.name,
            limit=p.limit,
            window_ms=p.window_duration_ms,
            key_prefix=p.key_prefix,
            admin_bypass=p.admin_bypass,
            admin_limit=p.admin_limit,
        )
        for p in sorted(get_config().policies.values(), key=lambda p: p.name)
    ]
    return PolicyListResponse(policies=policies)


@app.post("/v1/throttle/{policy_name}", response_model=QuotaResponse)
async def check_quota(
    policy_name: str, request: Request, response: Response
) -> QuotaResponse:
    """Count one request against ``policy_name`` for the calling client."""
    policy = get_policy(policy_name)
    decision = apply_policy(request, response, policy)
    return QuotaResponse(
        policy=policy.name,
        limit=decision.limit,
        remaining=decision.remaining,
        reset=decision.reset_at_epoch_seconds,
    )
