"""Mapping store: durable original URL <-> short code relation.

The store is the single source of truth for "does this key exist". Inserts are
optimistic: both columns carry unique indexes, so a concurrent writer that
already claimed the URL or the code makes the insert fail with an
``IntegrityError``, which is classified into a conflict outcome instead of
being raised.

Flow Diagram — try_insert()
===========================
::
    ┌─────────────┐
    │ add + commit │
    └──────┬──────┘
    IntegrityError?
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│INSERTED │  │ rollback,     │
│(refresh)│  │ re-read by URL│
└─────────┘  └──────┬───────┘
              FOUND? │
              ┌─────┴─────┐
              │ YES        │ NO
              ▼            ▼
        ┌───────────┐ ┌─────────────┐
        │URL_CONFLICT│ │CODE_CONFLICT│
        └───────────┘ └─────────────┘

Every database round trip is bounded by ``STORE_TIMEOUT_SECONDS``. Timeouts and
connection-level failures surface as ``BackendUnavailable``.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.enums import InsertOutcome
from app.exceptions import BackendUnavailable
from app.models import ShortURL

__all__ = ["InsertResult", "MappingStore"]

T = TypeVar("T")


@dataclass(frozen=True)
class InsertResult:
    outcome: InsertOutcome
    record: Optional[ShortURL] = None


class MappingStore:
    """Unique-constraint-backed persistence for URL mappings."""

    def __init__(self, session: AsyncSession, timeout: float):
        self._session = session
        self._timeout = timeout

    async def find_by_original_url(self, original_url: str) -> Optional[ShortURL]:
        result = await self._bounded(
            self._session.execute(select(ShortURL).where(ShortURL.original_url == original_url))
        )
        return result.scalar_one_or_none()

    async def find_by_code(self, short_code: str) -> Optional[ShortURL]:
        result = await self._bounded(
            self._session.execute(select(ShortURL).where(ShortURL.short_code == short_code))
        )
        return result.scalar_one_or_none()

    async def try_insert(self, original_url: str, short_code: str) -> InsertResult:
        """Insert a new mapping unless either key is already taken.

        Returns:
            InsertResult: ``INSERTED`` with the persisted record, ``URL_CONFLICT``
            with the record that owns the URL, or ``CODE_CONFLICT``.

        Raises:
            BackendUnavailable: If the database times out or cannot be reached.
        """
        record = ShortURL(original_url=original_url, short_code=short_code)
        self._session.add(record)
        try:
            await self._bounded(self._session.commit())
        except IntegrityError:
            await self._bounded(self._session.rollback())
            existing = await self.find_by_original_url(original_url)
            if existing is not None:
                return InsertResult(InsertOutcome.URL_CONFLICT, existing)
            return InsertResult(InsertOutcome.CODE_CONFLICT)

        await self._bounded(self._session.refresh(record))
        return InsertResult(InsertOutcome.INSERTED, record)

    async def _bounded(self, operation: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self._timeout)
        except IntegrityError:
            raise
        except asyncio.TimeoutError as exc:
            raise BackendUnavailable("database", f"no response within {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            raise BackendUnavailable("database", str(exc)) from exc
