"""Dependency injection with a shared service manager and per-request context.

This module provides a centralized way to inject the database session, the
admission controller and the logger into API endpoints. Shared resources are
built once at startup by ``ServiceManager``; the database session is the only
per-request resource.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.counter_store import select_counter_store
from app.database import get_db
from app.rate_limit import AdmissionController, AdmissionDecision, rules_from_settings
from app.url_service import URLShorteningService


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Holds resources shared by all requests.

    The counter store is chosen here, once, by probing Redis; the resulting
    store is handed to the admission controller explicitly.
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, settings: Optional[Settings] = None) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = settings or get_settings()
            self.logger = self._setup_logger()
            store = await select_counter_store(self.settings, self.logger)
            self.admission = AdmissionController(store, rules_from_settings(self.settings), self.logger)
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("urlshortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if self._initialized:
            await self.admission.close()
        self._initialized = False


# Process-wide manager, initialized by the application lifespan
_service_manager = ServiceManager()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and shared resource access.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Service manager with shared resources
        base_url: Scheme and host the request was addressed to
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    database: AsyncSession
    service_manager: ServiceManager
    base_url: str = ""
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def admission(self) -> AdmissionController:
        return self.service_manager.admission

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying this request's identifiers."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000

    def short_url_for(self, short_code: str) -> str:
        base_url = self.settings.BASE_URL or self.base_url
        return f"{base_url.rstrip('/')}/{short_code}"


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def client_identifier(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def get_service_manager() -> ServiceManager:
    """Get the shared service manager, initializing it on first use."""
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        database=db,
        service_manager=manager,
        base_url=str(request.base_url),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_identifier(request),
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> URLShorteningService:
    return URLShorteningService.from_context(ctx)


def throttle(route: str) -> Callable[..., Awaitable[AdmissionDecision]]:
    """Build a dependency that enforces the admission rule for ``route``.

    Denials raise ``RateLimited``, which ``app.main`` turns into a 429.
    """

    async def _enforce(
        request: Request,
        manager: ServiceManager = Depends(get_service_manager),
    ) -> AdmissionDecision:
        return await manager.admission.enforce(route, client_identifier(request))

    return _enforce
