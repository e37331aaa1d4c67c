"""SQLAlchemy ORM models for the PasteLink text store.

This module defines the database schema using SQLAlchemy declarative models
with the indexes the read path and the expiry sweep rely on.

Data Model Layout
=================
::
    texts table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(10) UNIQUE, INDEXED)
    ├─ content (TEXT NOT NULL)
    ├─ views (INTEGER DEFAULT 0)
    ├─ view_limit (INTEGER NULL)
    ├─ created_at (TIMESTAMPTZ, INDEXED)
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    ├─ ip_address (VARCHAR(45))
    └─ is_encrypted (BOOLEAN DEFAULT FALSE)

    ix_texts_expires_view_limit (expires_at, view_limit)

How to Use
===========
**Step 1 — Import**::
    from pastelink.models import Text

**Step 2 — Query live texts** (see pastelink.eviction.live_clause)::
    result = await db.execute(select(Text).where(Text.code == code, live_clause(now)))
    text = result.scalar_one_or_none()

**Step 3 — Count a view** (atomic, never read-modify-write)::
    await db.execute(update(Text).where(Text.code == code).values(views=Text.views + 1))
    await db.commit()

Key Behaviours
===============
- code is unique at the database level; the insert path relies on it as the
  final word on collisions.
- views starts at 0 and is only ever changed by an atomic increment.
- Dead rows (expired or exhausted) stay in the table until the sweep.
- content is stored verbatim; is_encrypted is carried through, never acted on.

Classes:
    Text:  A shared text with its expiry and view-limit bounds.
"""

import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text as TextType, func
from sqlalchemy.orm import Mapped, mapped_column

from pastelink.database import Base

__all__ = ["Text"]


class Text(Base):
    __tablename__ = "texts"
    __table_args__ = (Index("ix_texts_expires_view_limit", "expires_at", "view_limit"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10), unique=True, index=True, nullable=False)
    content: Mapped[str] = mapped_column(TextType, nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    view_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)
    ip_address: Mapped[str] = mapped_column(String(45), default="", nullable=False)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Text(id={self.id}, code='{self.code}', views={self.views}, view_limit={self.view_limit})>"
