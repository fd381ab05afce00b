"""Persistence of inventory check aggregates."""

from typing import List, Optional

from sqlalchemy import event, select
from sqlalchemy.orm import Session

from storeops.core.exceptions import NotFoundError
from storeops.models.inventory_check import InventoryCheck, InventoryCheckItem
from storeops.services.reconciliation import refresh_counters


class InventoryCheckRepository:
    """Loads and stores whole checks. Holds no business rules."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, check: InventoryCheck) -> InventoryCheck:
        self.db.add(check)
        self.db.flush()
        return check

    def get(self, check_id: int, for_update: bool = False) -> Optional[InventoryCheck]:
        stmt = select(InventoryCheck).where(InventoryCheck.id == check_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_raise(self, check_id: int, for_update: bool = False) -> InventoryCheck:
        check = self.get(check_id, for_update=for_update)
        if check is None:
            raise NotFoundError(f"Inventory check {check_id} not found", check_id=check_id)
        return check

    def list_all(self) -> List[InventoryCheck]:
        return list(
            self.db.execute(
                select(InventoryCheck).order_by(
                    InventoryCheck.created_at.desc(), InventoryCheck.id.desc()
                )
            ).scalars()
        )

    def list_by_creator(self, user_id: str) -> List[InventoryCheck]:
        return list(
            self.db.execute(
                select(InventoryCheck)
                .where(InventoryCheck.created_by == user_id)
                .order_by(InventoryCheck.created_at.desc(), InventoryCheck.id.desc())
            ).scalars()
        )

    def save(self, check: InventoryCheck) -> InventoryCheck:
        self.db.add(check)
        self.db.flush()
        return check

    def delete(self, check: InventoryCheck) -> None:
        self.db.delete(check)
        self.db.flush()


@event.listens_for(Session, "before_flush")
def _recount_inventory_checks(session: Session, flush_context, instances) -> None:
    """Recompute counters of every check whose row or items are being written."""
    touched = {}
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, InventoryCheck):
            touched[id(obj)] = obj
        elif isinstance(obj, InventoryCheckItem) and obj.check is not None:
            touched[id(obj.check)] = obj.check
    for check in touched.values():
        if check in session.deleted:
            continue
        refresh_counters(check)
