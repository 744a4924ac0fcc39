"""Fixed-window request throttle.

One generic mechanism serves every endpoint class: the caller passes the
named Policy and the client key, and gets back a Decision. Quota exhaustion
is an ordinary outcome (``Decision.admit`` is False), never an exception.

Counters live in a ThrottleStore. Elapsed windows are reset lazily on the
next check; the Sweeper evicts entries nobody touches again.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from throttle.policy import Policy
from throttle.store import InMemoryStore, ThrottleEntry, ThrottleStore

_logger = logging.getLogger("throttle")

UNKNOWN_CLIENT = "unknown"

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60

PrivilegePredicate = Callable[[Any], bool]


def _never_privileged(principal: Any) -> bool:
    return False


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class Decision:
    """Outcome of a single throttle check.

    ``limit`` is the effective limit applied to this caller. ``remaining``
    and ``reset_at_epoch_seconds`` are meaningful for admitted requests;
    ``retry_after_seconds`` only for rejected ones.
    """

    admit: bool
    limit: int
    remaining: int
    reset_at_epoch_seconds: int
    retry_after_seconds: Optional[int] = None


class Throttle:
    """Per-(policy, client) request counter with fixed windows.

    Args:
        store: Counter storage; a fresh InMemoryStore by default.
        is_privileged: Default predicate deciding whether a principal may use
            a policy's admin_limit.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        store: Optional[ThrottleStore] = None,
        is_privileged: Optional[PrivilegePredicate] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.store: ThrottleStore = store if store is not None else InMemoryStore()
        self._is_privileged = is_privileged or _never_privileged
        self._clock = clock or _now_ms
        self._lock = threading.Lock()

    def effective_limit(
        self,
        policy: Policy,
        principal: Any = None,
        is_privileged: Optional[PrivilegePredicate] = None,
    ) -> int:
        """Return the limit that applies to ``principal`` under ``policy``."""
        predicate = is_privileged or self._is_privileged
        if policy.admin_bypass and policy.admin_limit is not None:
            if principal is not None and predicate(principal):
                return policy.admin_limit
        return policy.limit

    def check(
        self,
        policy: Policy,
        client_key: Optional[str],
        principal: Any = None,
        *,
        is_privileged: Optional[PrivilegePredicate] = None,
        now: Optional[float] = None,
    ) -> Decision:
        """Count one request and decide whether to admit it.

        Args:
            policy: The policy for the endpoint class being hit.
            client_key: Caller identity; empty values fall back to "unknown".
            principal: Authenticated principal, passed to the privilege
                predicate.
            is_privileged: Overrides the throttle's default predicate for
                this call.
            now: Current time in epoch milliseconds (defaults to the clock).

        Returns:
            The Decision for this request.
        """
        if now is None:
            now = self._clock()
        key = "{}:{}".format(policy.key_prefix, client_key or UNKNOWN_CLIENT)
        limit = self.effective_limit(policy, principal, is_privileged)

        with self._lock:
            entry = self.store.get(key)
            if entry is None or entry.is_elapsed(now):
                entry = ThrottleEntry(
                    window_start=now,
                    window_duration_ms=policy.window_duration_ms,
                    limit=limit,
                )
            entry.limit = limit
            entry.count += 1
            self.store.set(key, entry)
            count = entry.count
            expires_at = entry.expires_at

        reset_at = int(math.ceil(expires_at / 1000.0))
        if count > limit:
            retry_after = int(math.ceil((expires_at - now) / 1000.0))
            return Decision(
                admit=False,
                limit=limit,
                remaining=0,
                reset_at_epoch_seconds=reset_at,
                retry_after_seconds=retry_after,
            )

        return Decision(
            admit=True,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at_epoch_seconds=reset_at,
        )

    def sweep(self, now: Optional[float] = None) -> int:
        """Delete entries whose window has elapsed.

        Returns:
            The number of evicted entries.
        """
        if now is None:
            now = self._clock()
        evicted = 0
        with self._lock:
            for key, entry in self.store.iterate():
                if entry.expires_at < now:
                    self.store.delete(key)
                    evicted += 1
        if evicted:
            _logger.debug("Swept %d expired throttle entries.", evicted)
        return evicted


class Sweeper:
    """Runs ``Throttle.sweep`` on a fixed interval on the event loop."""

    def __init__(
        self,
        throttle: Throttle,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(
                "Sweep interval must be positive (got {}).".format(interval_seconds)
            )
        self.throttle = throttle
        self.interval_seconds = interval_seconds
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop. Must be called from a running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.throttle.sweep()
            except Exception:
                _logger.exception("Throttle sweep failed")
