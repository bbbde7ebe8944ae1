"""SQLAlchemy ORM models for the URL shortener application.

This module defines the database schema using SQLAlchemy declarative models.
Both natural keys carry a unique index; the indexes are what detect
concurrent collisions in the mapping store.

Data Model Layout
=================
::
    short_urls table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ original_url (VARCHAR(2048) UNIQUE, INDEXED)
    ├─ short_code (VARCHAR(10) UNIQUE, INDEXED)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

How to Use
===========
**Step 1 — Import**::
    from app.models import ShortURL

**Step 2 — Query by either key**::
    result = await db.execute(select(ShortURL).where(ShortURL.short_code == "abc123"))
    record = result.scalar_one_or_none()

Key Behaviours
===============
- original_url is matched byte-exact; no normalization is applied.
- short_code and original_url are never updated after insert.
- Records are never deleted by the application.

Classes:
    ShortURL:  A single original URL to short code mapping.
"""

import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

__all__ = ["ShortURL"]

MAX_URL_LENGTH = 2048
MAX_SHORT_CODE_LENGTH = 10


class ShortURL(Base):
    __tablename__ = "short_urls"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    original_url: Mapped[str] = mapped_column(String(MAX_URL_LENGTH), unique=True, index=True, nullable=False)
    short_code: Mapped[str] = mapped_column(
        String(MAX_SHORT_CODE_LENGTH), unique=True, index=True, nullable=False
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ShortURL(id={self.id}, short_code='{self.short_code}', original_url='{self.original_url}')>"
