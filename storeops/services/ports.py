"""Collaborators the stocktake engine consumes: the product catalog and the
user directory. Each is a Protocol with a SQLAlchemy adapter bound to the
same session as the engine, so approval can commit catalog writes and the
status flip in one transaction.
"""

import logging
from typing import List, NamedTuple, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.core.exceptions import DependencyError
from storeops.models.product import Product
from storeops.models.stock import MovementReason, StockMovement
from storeops.models.user import User

logger = logging.getLogger(__name__)


class ProductSnapshot(NamedTuple):
    id: int
    name: str
    quantity: int


class ProductStockPort(Protocol):
    def list_products(self) -> List[ProductSnapshot]: ...

    def set_quantity(
        self,
        product_id: int,
        quantity: int,
        *,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        created_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> bool: ...


class UserDirectory(Protocol):
    def get_name(self, user_id: str) -> Optional[str]: ...


class SqlProductStock:
    """Product catalog backed by the ``products`` table and the movement ledger."""

    def __init__(self, db: Session):
        self.db = db

    def list_products(self) -> List[ProductSnapshot]:
        try:
            rows = self.db.execute(
                select(Product.id, Product.name, Product.quantity).order_by(Product.id)
            ).all()
        except SQLAlchemyError as exc:
            logger.error("Product catalog unreachable: %s", exc)
            raise DependencyError("Product catalog is unavailable") from exc
        return [ProductSnapshot(r.id, r.name or "Unnamed product", r.quantity or 0) for r in rows]

    def set_quantity(
        self,
        product_id: int,
        quantity: int,
        *,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        created_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Set the absolute stock of a product and record the movement.

        Returns False without writing when a movement with the same
        ``(ref_type, ref_id, product_id)`` reference was already recorded.
        """
        try:
            if ref_type is not None and ref_id is not None:
                already = self.db.execute(
                    select(StockMovement.id).where(
                        StockMovement.ref_type == ref_type,
                        StockMovement.ref_id == ref_id,
                        StockMovement.product_id == product_id,
                    )
                ).first()
                if already:
                    logger.info(
                        "Stock write for product %s (%s %s) already applied, skipping",
                        product_id, ref_type, ref_id,
                    )
                    return False

            product = self.db.execute(
                select(Product).where(Product.id == product_id).with_for_update()
            ).scalar_one_or_none()
            if product is None:
                raise DependencyError(
                    f"Product {product_id} no longer exists in the catalog",
                    product_id=product_id,
                )

            before = product.quantity
            product.quantity = quantity
            self.db.add(
                StockMovement(
                    product_id=product_id,
                    qty_delta=quantity - before,
                    quantity_before=before,
                    quantity_after=quantity,
                    reason=MovementReason.INVENTORY_CHECK.value
                    if ref_type == "inventory_check"
                    else MovementReason.ADJUSTMENT.value,
                    ref_type=ref_type,
                    ref_id=ref_id,
                    notes=notes,
                    created_by=created_by,
                )
            )
            self.db.flush()
        except SQLAlchemyError as exc:
            raise DependencyError(
                f"Could not update stock for product {product_id}", product_id=product_id
            ) from exc
        return True

    def history(self, product_id: int, limit: int = 10) -> List[StockMovement]:
        """Latest stock movements of a product, newest first."""
        try:
            return list(
                self.db.execute(
                    select(StockMovement)
                    .where(StockMovement.product_id == product_id)
                    .order_by(StockMovement.ts.desc(), StockMovement.id.desc())
                    .limit(limit)
                ).scalars()
            )
        except SQLAlchemyError as exc:
            raise DependencyError("Product catalog is unavailable") from exc


class SqlUserDirectory:
    """Display names from the ``users`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get_name(self, user_id: str) -> Optional[str]:
        user = self.db.get(User, user_id)
        return user.name if user else None
