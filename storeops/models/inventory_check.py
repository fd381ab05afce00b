"""Inventory check (stocktake) and item models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storeops.db.base import Base, TimestampMixin, VersionMixin


class InventoryCheckStatus(str, Enum):
    """Lifecycle status of an inventory check."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class InventoryCheck(Base, TimestampMixin, VersionMixin):
    """One stocktake document: a snapshot of the catalog and its counts."""

    __tablename__ = "inventory_checks"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[InventoryCheckStatus] = mapped_column(
        SQLEnum(InventoryCheckStatus), default=InventoryCheckStatus.DRAFT, nullable=False, index=True
    )
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reject_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Denormalized counters, always recomputed from items before flush
    total_products: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_products: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    matched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    over: Mapped[int] = mapped_column("over_count", Integer, default=0, nullable=False)
    under: Mapped[int] = mapped_column("under_count", Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    items: Mapped[list["InventoryCheckItem"]] = relationship(
        "InventoryCheckItem",
        back_populates="check",
        cascade="all, delete-orphan",
        order_by="InventoryCheckItem.position",
        lazy="selectin",
    )

    def item_for(self, product_id: int) -> Optional["InventoryCheckItem"]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


class InventoryCheckItem(Base):
    """A single product line of a check.

    ``product_name`` and ``system_quantity`` are snapshots taken when the
    check was created and are never refreshed from the catalog.
    """

    __tablename__ = "inventory_check_items"
    __table_args__ = (
        UniqueConstraint("check_id", "product_id", name="uq_inventory_check_item_product"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    check_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_checks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    # No FK: the check must keep referring to the product even if the catalog drops it
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    system_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    difference: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), default="", nullable=False)

    # Relationships
    check: Mapped["InventoryCheck"] = relationship("InventoryCheck", back_populates="items")
