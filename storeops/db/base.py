"""SQLAlchemy declarative base and common utilities."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from storeops.core.exceptions import ConflictError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    The model declares an integer ``version`` column and registers it as the
    mapper's ``version_id_col``; SQLAlchemy then bumps it on every UPDATE and
    refuses stale writes with ``StaleDataError``. ``check_version()`` compares
    it against the version a client last saw.
    """

    def check_version(self, expected: Optional[int]) -> None:
        """Raise ConflictError if *expected* doesn't match current version."""
        if expected is not None and expected != self.version:
            raise ConflictError(
                f"Version conflict: expected {expected}, current {self.version}",
                expected=expected,
                current=self.version,
            )
