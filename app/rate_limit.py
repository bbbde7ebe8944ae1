"""Admission control: per-route, per-client fixed-window request quotas.

Each route has its own ``ThrottleRule``. A check increments the bucket
``throttle:<route>:<client>`` in the active counter store and denies once the
count exceeds the rule's limit, reporting the seconds left in the window.

How to Use
===========
**Step 1 — Build at startup**::
    store = await select_counter_store(settings, logger)
    controller = AdmissionController(store, rules_from_settings(settings), logger)

**Step 2 — Check a request**::
    decision = await controller.check("encode", client_ip)
    if not decision.allowed:
        ...  # 429 with Retry-After: decision.retry_after

Key Behaviours
===============
- Routes without a rule are always allowed and never counted.
- Denied requests still count toward the current window, never the next one.
- retry_after is the remaining window time rounded up, within [1, period].
- A counter backend failure switches the controller to its in-process
  fallback store instead of failing the request.
"""

import math
from dataclasses import dataclass
from logging import Logger
from typing import Optional

from prometheus_client import Counter

from app.config import Settings
from app.counter_store import CounterStore, CounterWindow, MemoryCounterStore
from app.enums import CounterBackend
from app.exceptions import BackendUnavailable, RateLimited

__all__ = ["AdmissionController", "AdmissionDecision", "ThrottleRule", "rules_from_settings"]

ENCODE_ROUTE = "encode"
DECODE_ROUTE = "decode"

THROTTLE_DECISIONS_TOTAL = Counter(
    "url_shortener_throttle_decisions_total",
    "Admission control decisions",
    ["route", "decision"],
)
COUNTER_BACKEND_FAILOVERS_TOTAL = Counter(
    "url_shortener_counter_backend_failovers_total",
    "Switches from the shared counter backend to the in-process fallback",
)


@dataclass(frozen=True)
class ThrottleRule:
    limit: int
    period: int


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    route: str
    count: int = 0
    limit: Optional[int] = None
    retry_after: int = 0


def rules_from_settings(settings: Settings) -> dict[str, ThrottleRule]:
    return {
        ENCODE_ROUTE: ThrottleRule(limit=settings.ENCODE_RATE_LIMIT, period=settings.ENCODE_RATE_PERIOD),
        DECODE_ROUTE: ThrottleRule(limit=settings.DECODE_RATE_LIMIT, period=settings.DECODE_RATE_PERIOD),
    }


class AdmissionController:
    """Decides allow/deny for (route, client) pairs.

    The counter store is passed in explicitly; the controller owns the only
    reference to the throttle buckets.
    """

    def __init__(
        self,
        store: CounterStore,
        rules: dict[str, ThrottleRule],
        logger: Logger,
        fallback: Optional[CounterStore] = None,
    ):
        self._store = store
        self._rules = rules
        self._logger = logger
        if fallback is None and store.name is not CounterBackend.MEMORY:
            fallback = MemoryCounterStore()
        self._fallback = fallback
        self._retired: list[CounterStore] = []

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def backend(self) -> CounterBackend:
        return self._store.name

    async def check(self, route: str, client: str) -> AdmissionDecision:
        rule = self._rules.get(route)
        if rule is None:
            return AdmissionDecision(allowed=True, route=route)

        window = await self._increment(f"throttle:{route}:{client}", rule.period)

        if window.count > rule.limit:
            retry_after = min(max(math.ceil(window.ttl_seconds), 1), rule.period)
            THROTTLE_DECISIONS_TOTAL.labels(route=route, decision="deny").inc()
            return AdmissionDecision(
                allowed=False, route=route, count=window.count, limit=rule.limit, retry_after=retry_after
            )

        THROTTLE_DECISIONS_TOTAL.labels(route=route, decision="allow").inc()
        return AdmissionDecision(allowed=True, route=route, count=window.count, limit=rule.limit)

    async def enforce(self, route: str, client: str) -> AdmissionDecision:
        """Like ``check`` but raises ``RateLimited`` on denial."""
        decision = await self.check(route, client)
        if not decision.allowed:
            self._logger.warning(f"Rate limit exceeded for IP: {client}, route: {route}")
            raise RateLimited(route=route, client=client, retry_after=decision.retry_after)
        return decision

    async def close(self) -> None:
        for store in [self._store, *self._retired]:
            await store.close()

    async def _increment(self, bucket_key: str, window_seconds: int) -> CounterWindow:
        store = self._store
        try:
            return await store.increment(bucket_key, window_seconds)
        except BackendUnavailable as exc:
            if self._store is not store:
                # Another request already switched stores while this one waited.
                return await self._store.increment(bucket_key, window_seconds)
            if self._fallback is None:
                raise
            self._logger.error(
                f"Counter backend {store.name} failed ({exc.reason}); "
                f"switching throttle counters to {self._fallback.name}"
            )
            COUNTER_BACKEND_FAILOVERS_TOTAL.inc()
            self._retired.append(store)
            self._store, self._fallback = self._fallback, None
            return await self._store.increment(bucket_key, window_seconds)
