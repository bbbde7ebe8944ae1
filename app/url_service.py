"""URL Shortener Service Layer - Code Assignment Engine

This module assigns short codes to original URLs and resolves codes back to
URLs. Encoding is idempotent and safe under concurrent writers: uniqueness is
enforced by the mapping store's unique indexes, and races are resolved by
re-reading instead of locking.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────┐
    │                    Service Layer                         │
    │  ┌─────────────────┐  ┌─────────────────┐               │
    │  │   URL Service   │  │ Code Generator  │               │
    │  │                 │  │                 │               │
    │  │ • Validate URL  │  │ • nanoid, 62    │               │
    │  │ • Encode        │  │   symbols       │               │
    │  │ • Decode        │  │ • No uniqueness │               │
    │  └────────┬────────┘  └─────────────────┘               │
    └───────────┼─────────────────────────────────────────────┘
                ▼
    ┌─────────────────────┐
    │    MappingStore     │
    │ (unique indexes on  │
    │  url and code)      │
    └─────────────────────┘

Encode Flow
-----------
::
    ┌─────────────┐
    │ POST /encode │
    └──────┬──────┘
           ▼
    ┌─────────────┐   invalid   ┌───────────────────┐
    │ Validate URL ├───────────►│ EncodeResult(fail) │
    └──────┬──────┘             └───────────────────┘
           ▼
    ┌─────────────┐   found     ┌───────────────────┐
    │ Find by URL  ├───────────►│ existing record    │
    └──────┬──────┘             └───────────────────┘
           ▼
    ┌─────────────────────────────┐
    │ repeat ≤ MAX_ATTEMPTS:      │
    │   generate candidate        │
    │   try_insert                │
    │   INSERTED      → return    │
    │   URL_CONFLICT  → return    │
    │                   winner    │
    │   CODE_CONFLICT → retry     │
    └──────┬──────────────────────┘
           ▼
    ┌─────────────┐
    │CapacityError│
    └─────────────┘

Usage Examples
=============
```python
service = URLShorteningService.from_context(ctx)
result = await service.encode("https://example.com/some/long/path")
if result.success:
    print(result.record.short_code)
else:
    print(result.errors)

record = await service.decode("aB3xY9")
```
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from logging import Logger, LoggerAdapter
from typing import TYPE_CHECKING, Optional, Union
from urllib.parse import urlsplit

import validators
from prometheus_client import Counter, Histogram

from app.config import Settings
from app.enums import InsertOutcome, RequestStatus
from app.exceptions import BackendUnavailable, CapacityError
from app.models import MAX_URL_LENGTH, ShortURL
from app.shortcode import generate_short_code, is_valid_short_code
from app.store import MappingStore

if TYPE_CHECKING:
    from app.dependencies import RequestContext

__all__ = ["EncodeResult", "URLShorteningService", "validate_original_url"]

ALLOWED_SCHEMES = ("http", "https")

BLANK_URL_MESSAGE = "Original url can't be blank"
INVALID_URL_MESSAGE = "Original url must be a valid URL"
URL_TOO_LONG_MESSAGE = f"Original url is too long (maximum is {MAX_URL_LENGTH} characters)"


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

ENCODE_REQUESTS_TOTAL = Counter(
    "url_shortener_encode_requests_total",
    "Total encode requests",
    ["status"],
)
DECODE_REQUESTS_TOTAL = Counter(
    "url_shortener_decode_requests_total",
    "Total decode requests",
    ["status"],
)
CODE_COLLISIONS_TOTAL = Counter(
    "url_shortener_code_collisions_total",
    "Candidate short codes rejected because the code was already taken",
)
ENCODE_DURATION = Histogram(
    "url_shortener_encode_duration_seconds",
    "Time taken to encode URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# ============================================================================
# VALIDATION
# ============================================================================


def validate_original_url(original_url: Optional[str]) -> list[str]:
    """Return the violated constraints for ``original_url``, empty if valid.

    Matching elsewhere is byte-exact, so the value is checked as given and
    never normalized.
    """
    if original_url is None or not original_url.strip():
        return [BLANK_URL_MESSAGE, INVALID_URL_MESSAGE]

    errors: list[str] = []
    if len(original_url) > MAX_URL_LENGTH:
        errors.append(URL_TOO_LONG_MESSAGE)
    if urlsplit(original_url).scheme not in ALLOWED_SCHEMES or not validators.url(
        original_url, simple_host=True
    ):
        errors.append(INVALID_URL_MESSAGE)
    return errors


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass
class EncodeResult:
    """Outcome of an encode call.

    ``created`` is False when an existing mapping was returned, either from the
    initial lookup or because a concurrent writer won the insert race.
    """

    success: bool
    record: Optional[ShortURL] = None
    errors: list[str] = field(default_factory=list)
    created: bool = False


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class URLShorteningService:
    """Code assignment engine: idempotent encode and direct decode.

    Example:
        >>> service = URLShorteningService.from_context(ctx)
        >>> result = await service.encode("https://example.com")
        >>> record = await service.decode(result.record.short_code)
    """

    def __init__(
        self,
        store: MappingStore,
        settings: Settings,
        logger: Union[Logger, LoggerAdapter],
        code_generator: Callable[[int], str] = generate_short_code,
    ):
        self._store = store
        self._settings = settings
        self._logger = logger
        self._generate = code_generator

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":
        """Build a service bound to the request's database session."""
        store = MappingStore(ctx.database, timeout=ctx.settings.STORE_TIMEOUT_SECONDS)
        return cls(store, ctx.settings, ctx.logger)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def encode(self, original_url: Optional[str]) -> EncodeResult:
        """Return the mapping for ``original_url``, creating it on first use.

        Raises:
            CapacityError: If every candidate code collided.
            BackendUnavailable: If the database timed out or is unreachable.
        """
        start_time = time.perf_counter()

        errors = validate_original_url(original_url)
        if errors:
            ENCODE_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.info(f"Encode rejected for {original_url!r}: {errors}")
            return EncodeResult(success=False, errors=errors)

        try:
            existing = await self._store.find_by_original_url(original_url)
            if existing is not None:
                self._logger.debug(f"Existing mapping reused: {existing.short_code}")
                result = EncodeResult(success=True, record=existing)
            else:
                result = await self._assign_code(original_url)
        except CapacityError as exc:
            ENCODE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Short code space exhausted for {original_url}: {exc}")
            raise
        except BackendUnavailable as exc:
            ENCODE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Encode failed, mapping store unavailable: {exc}")
            raise
        finally:
            ENCODE_DURATION.observe(time.perf_counter() - start_time)

        ENCODE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return result

    async def decode(self, short_code: str) -> Optional[ShortURL]:
        """Look up the mapping for ``short_code``; None when unknown.

        Codes that could never have been generated are rejected without a
        store round trip.
        """
        if not is_valid_short_code(short_code):
            DECODE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            self._logger.debug(f"Malformed short code rejected: {short_code!r}")
            return None

        try:
            record = await self._store.find_by_code(short_code)
        except BackendUnavailable as exc:
            DECODE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Decode failed, mapping store unavailable: {exc}")
            raise

        if record is None:
            DECODE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            self._logger.debug(f"Short code not found: {short_code}")
            return None

        DECODE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return record

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _assign_code(self, original_url: str) -> EncodeResult:
        max_attempts = self._settings.CODE_GENERATION_MAX_ATTEMPTS

        for attempt in range(1, max_attempts + 1):
            candidate = self._generate(self._settings.SHORT_CODE_LENGTH)
            inserted = await self._store.try_insert(original_url, candidate)

            if inserted.outcome is InsertOutcome.INSERTED:
                self._logger.info(f"Short code assigned: {candidate} -> {original_url}")
                return EncodeResult(success=True, record=inserted.record, created=True)

            if inserted.outcome is InsertOutcome.URL_CONFLICT:
                # A concurrent encode of the same URL committed first.
                self._logger.info(f"Concurrent encode won for {original_url}: {inserted.record.short_code}")
                return EncodeResult(success=True, record=inserted.record)

            CODE_COLLISIONS_TOTAL.inc()
            self._logger.warning(f"Short code collision on {candidate} (attempt {attempt}/{max_attempts})")

        raise CapacityError(max_attempts)
