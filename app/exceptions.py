"""Application error taxonomy.

Each error carries an ``error_code`` and maps to one HTTP status in
``app.main``. Validation failures and unknown codes are expected outcomes and
are returned as typed results by the service layer instead.
"""

__all__ = [
    "BackendUnavailable",
    "CapacityError",
    "CollisionRetryExhausted",
    "RateLimited",
    "URLShortenerError",
]


class URLShortenerError(Exception):
    """Base exception for all application-specific errors."""

    error_code = "app:url_shortener_error"


class CapacityError(URLShortenerError):
    """Raised when every generated candidate code collided."""

    error_code = "app:collision_retry_exhausted"

    def __init__(self, attempts: int):
        super().__init__(f"Could not assign a unique short code after {attempts} attempts")
        self.attempts = attempts


CollisionRetryExhausted = CapacityError


class RateLimited(URLShortenerError):
    """Raised when admission control denies a request."""

    error_code = "request:rate_limited"

    def __init__(self, route: str, client: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for {client} on {route}")
        self.route = route
        self.client = client
        self.retry_after = retry_after


class BackendUnavailable(URLShortenerError):
    """Raised when the database or the counter backend cannot be reached."""

    error_code = "infra:backend_unavailable"

    def __init__(self, backend: str, reason: str):
        super().__init__(f"{backend} unavailable: {reason}")
        self.backend = backend
        self.reason = reason
