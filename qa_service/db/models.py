# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐       ┌──────────────────────────────┐
# │  users           │       │  qa_records                  │
# ├──────────────────┤       ├──────────────────────────────┤
# │ id (PK)          │──1:N─▶│ id (PK)                      │
# │ username (uniq)  │       │ question (text)              │
# │ email (uniq)     │       │ answer (text, default '')    │
# │ key_prefix       │       │ user_id (FK → users.id, null)│
# │ api_key_hash     │       │ created_at                   │
# │ is_active        │       │ updated_at                   │
# │ created_at       │       └──────────────────────────────┘
# │ updated_at       │
# └──────────────────┘
#
# A qa_records row is created as a placeholder (empty answer) before the LLM
# is called, then updated exactly once with the final answer or a fixed
# error string. A null user_id means the question was asked anonymously.
# =============================================================================

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


class User(Base):
    """
    A registered caller.

    Callers authenticate with an API key (`Authorization: Bearer <key>`).
    Only the SHA-256 hash of the key is stored; `key_prefix` identifies the
    key in logs and profile responses.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    api_key_hash: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class QARecord(Base):
    """One question and its (eventually) persisted answer."""

    __tablename__ = "qa_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)

    # Empty until the request finishes; then the answer or an error string
    answer: Mapped[str] = mapped_column(Text, nullable=False, default="")

    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<QARecord(id={self.id}, user_id={self.user_id})>"
