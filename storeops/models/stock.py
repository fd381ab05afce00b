"""Stock movement ledger."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storeops.db.base import Base, utcnow


class MovementReason(str, Enum):
    """Reasons for stock movements."""

    INVENTORY_CHECK = "inventory_check"  # From an approved inventory check
    ADJUSTMENT = "adjustment"  # Manual adjustment


class StockMovement(Base):
    """Ledger of catalog stock changes.

    ``(ref_type, ref_id, product_id)`` is unique, so a referenced change
    (e.g. one product of one approved check) can only ever be recorded once.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint("ref_type", "ref_id", "product_id", name="uq_stock_movement_ref"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qty_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ref_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="stock_movements")


# Forward references
from storeops.models.product import Product
