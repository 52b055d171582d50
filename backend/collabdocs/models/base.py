"""
Base Model Classes
==================

Shared base classes and mixins for all SQLAlchemy models.
"""

from datetime import datetime, timezone
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all models.
    """


class CreatedAtMixin:
    """
    Mixin that adds an insert-only created_at timestamp.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Record creation timestamp",
    )


class TimestampMixin(CreatedAtMixin):
    """
    Mixin that adds created_at and updated_at timestamps.

    - created_at: Set automatically on insert
    - updated_at: Updated automatically on every change
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Last update timestamp",
    )
