"""Inventory check service - lifecycle of stocktake documents.

A check snapshots the whole product catalog when it is created, collects
physical counts while in draft, is submitted for review, and is finally
approved (counted quantities are written back to the catalog) or rejected.

Every operation is a single read-modify-write of one check, committed as a
unit or rolled back entirely. Concurrent writers are detected through the
check's ``version`` column and reported as ``ConflictError``.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storeops.core.config import settings
from storeops.core.exceptions import (
    ConflictError,
    DependencyError,
    InvalidStateError,
    MissingReasonsError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from storeops.db.base import utcnow
from storeops.models.inventory_check import (
    InventoryCheck,
    InventoryCheckItem,
    InventoryCheckStatus,
)
from storeops.repositories.inventory_check_repository import InventoryCheckRepository
from storeops.services.inventory_check_state import advance, require_state
from storeops.services.ports import (
    ProductStockPort,
    SqlProductStock,
    SqlUserDirectory,
    UserDirectory,
)
from storeops.services.reconciliation import (
    apply_count,
    discrepant_items,
    missing_reasons,
)

logger = logging.getLogger(__name__)

STOCK_REF_TYPE = "inventory_check"


@dataclass
class ApprovalResult:
    check: InventoryCheck
    adjusted_count: int


@dataclass
class DraftItem:
    """Counted values for one product as sent by a full-draft save."""

    product_id: int
    actual_quantity: Optional[int] = None
    note: Optional[str] = None
    reason: Optional[str] = None


def generate_check_code(prefix: Optional[str] = None) -> str:
    """Human-readable code: prefix, last 8 digits of the ms clock, 6 random hex."""
    prefix = settings.inventory_check_code_prefix if prefix is None else prefix
    millis = str(int(time.time() * 1000))[-8:]
    return f"{prefix}{millis}{secrets.token_hex(3).upper()}"


def default_title(now=None) -> str:
    now = now or utcnow()
    return f"Stocktake {now:%d/%m/%Y}"


class InventoryCheckService:
    """Orchestrates the inventory check lifecycle."""

    def __init__(
        self,
        db: Session,
        stock: Optional[ProductStockPort] = None,
        users: Optional[UserDirectory] = None,
    ):
        self.db = db
        self.repo = InventoryCheckRepository(db)
        self.stock = stock if stock is not None else SqlProductStock(db)
        self.users = users if users is not None else SqlUserDirectory(db)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, check_id: int) -> InventoryCheck:
        return self.repo.get_or_raise(check_id)

    def list_all(self) -> List[InventoryCheck]:
        return self.repo.list_all()

    def list_by_user(self, user_id: str) -> List[InventoryCheck]:
        return self.repo.list_by_creator(user_id)

    def creator_summary(self, check: InventoryCheck) -> Optional[Dict[str, Any]]:
        """Display info about the creator; never fails the caller."""
        try:
            name = self.users.get_name(check.created_by)
        except Exception as exc:
            logger.warning("User lookup failed for %s: %s", check.created_by, exc)
            return None
        if name is None:
            return None
        return {"id": check.created_by, "name": name}

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    def create(self, created_by: str, title: Optional[str] = None) -> InventoryCheck:
        """Open a draft check holding one item per catalog product."""
        if not created_by:
            raise ValidationError("Missing userId")

        products = self.stock.list_products()
        now = utcnow()
        check = InventoryCheck(
            code=generate_check_code(),
            title=title or default_title(now),
            note="",
            status=InventoryCheckStatus.DRAFT,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        check.items = [
            InventoryCheckItem(
                position=position,
                product_id=product.id,
                product_name=product.name,
                system_quantity=product.quantity,
                actual_quantity=None,
                difference=0,
                checked=False,
                note="",
                reason="",
            )
            for position, product in enumerate(products)
        ]
        self.repo.add(check)
        self._commit()
        logger.info(
            "Inventory check created: ID=%s, code=%s, products=%s, user=%s",
            check.id, check.code, check.total_products, created_by,
        )
        return check

    # ------------------------------------------------------------------
    # draft editing
    # ------------------------------------------------------------------
    def update_item(
        self,
        check_id: int,
        product_id: int,
        actual_quantity: Optional[int],
        note: Optional[str] = None,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> InventoryCheck:
        """Record the count of one product. Empty note/reason keep the old value."""
        check = self.repo.get_or_raise(check_id, for_update=True)
        require_state(check, "update_item")
        check.check_version(expected_version)

        item = check.item_for(product_id)
        if item is None:
            raise NotFoundError(
                f"Product {product_id} is not part of check {check.code}",
                check_id=check_id,
                product_id=product_id,
            )

        apply_count(item, actual_quantity)
        if note:
            item.note = note
        if reason:
            item.reason = reason
        check.updated_at = utcnow()

        self._save(check)
        return check

    def save_draft(
        self,
        check_id: int,
        items: Iterable[DraftItem],
        note: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> InventoryCheck:
        """Replace the counted values of the listed products in one write.

        Snapshot fields (name, system quantity) always come from the stored
        check; only counts, notes and reasons are taken from *items*.
        """
        check = self.repo.get_or_raise(check_id, for_update=True)
        require_state(check, "save_draft")
        check.check_version(expected_version)

        by_product = {item.product_id: item for item in check.items}
        incoming: Dict[int, DraftItem] = {}
        for draft in items:
            if draft.product_id in incoming:
                raise ValidationError(
                    f"Product {draft.product_id} appears more than once",
                    product_id=draft.product_id,
                )
            if draft.product_id not in by_product:
                raise NotFoundError(
                    f"Product {draft.product_id} is not part of check {check.code}",
                    check_id=check_id,
                    product_id=draft.product_id,
                )
            incoming[draft.product_id] = draft

        for product_id, draft in incoming.items():
            item = by_product[product_id]
            apply_count(item, draft.actual_quantity)
            item.note = draft.note or ""
            item.reason = draft.reason or ""

        if note is not None:
            check.note = note
        check.updated_at = utcnow()

        self._save(check)
        return check

    # ------------------------------------------------------------------
    # lifecycle transitions
    # ------------------------------------------------------------------
    def submit(self, check_id: int) -> InventoryCheck:
        """Send a draft for review; every discrepancy needs a reason."""
        check = self.repo.get_or_raise(check_id, for_update=True)
        require_state(check, "submit")

        missing = missing_reasons(check.items)
        if missing:
            raise MissingReasonsError([item.product_id for item in missing])

        advance(check, "submit")
        now = utcnow()
        check.submitted_at = now
        check.updated_at = now

        self._save(check)
        logger.info("Inventory check submitted: ID=%s, code=%s", check.id, check.code)
        return check

    def approve(self, check_id: int, manager_id: str) -> ApprovalResult:
        """Approve a submitted check and write counted quantities to the catalog.

        The catalog writes and the status change share one transaction; if
        any write fails everything is rolled back and the check stays
        submitted. Catalog writes carry the check as reference, so a write
        already recorded for this check is never applied twice.
        """
        if not manager_id:
            raise ValidationError("Missing managerId")

        check = self.repo.get_or_raise(check_id, for_update=True)
        require_state(check, "approve")
        if check.approved_at is not None:
            raise InvalidStateError(
                f"Check {check.code} was already approved at {check.approved_at}",
                current_status=InventoryCheckStatus.APPROVED.value,
                check_id=check_id,
            )

        to_adjust = discrepant_items(check.items)
        issued: List[int] = []
        try:
            for item in to_adjust:
                self.stock.set_quantity(
                    item.product_id,
                    item.actual_quantity,
                    ref_type=STOCK_REF_TYPE,
                    ref_id=check.id,
                    created_by=manager_id,
                    notes=f"{check.code}: {item.reason}" if item.reason else check.code,
                )
                issued.append(item.product_id)
        except (DependencyError, SQLAlchemyError) as exc:
            self.db.rollback()
            logger.error(
                "Approval of check %s failed after %s of %s stock writes: %s",
                check_id, len(issued), len(to_adjust), exc,
            )
            raise DependencyError(
                f"Catalog update failed after {len(issued)} of {len(to_adjust)} stock writes; "
                "changes were rolled back and the check is still submitted",
                partial=bool(issued),
                issued_product_ids=issued,
                check_id=check_id,
            ) from exc

        advance(check, "approve")
        now = utcnow()
        check.approved_by = manager_id
        check.approved_at = now
        check.updated_at = now

        self._save(check)
        logger.info(
            "Inventory check approved: ID=%s, code=%s, adjusted=%s, manager=%s",
            check.id, check.code, len(to_adjust), manager_id,
        )
        return ApprovalResult(check=check, adjusted_count=len(to_adjust))

    def reject(self, check_id: int, manager_id: str, reason: str) -> InventoryCheck:
        """Reject a submitted check. The catalog is left untouched."""
        if not manager_id:
            raise ValidationError("Missing managerId")

        check = self.repo.get_or_raise(check_id, for_update=True)
        require_state(check, "reject")
        if not (reason or "").strip():
            raise ValidationError("A reason is required to reject a check")

        advance(check, "reject")
        now = utcnow()
        check.rejected_by = manager_id
        check.rejected_at = now
        check.reject_reason = reason.strip()
        check.updated_at = now

        self._save(check)
        logger.info(
            "Inventory check rejected: ID=%s, code=%s, manager=%s",
            check.id, check.code, manager_id,
        )
        return check

    def delete(self, check_id: int, requester_id: str) -> None:
        """Delete a draft. Only its creator may do so."""
        check = self.repo.get_or_raise(check_id, for_update=True)
        if requester_id != check.created_by:
            raise PermissionDeniedError(
                "Only the creator can delete this check", check_id=check_id
            )
        require_state(check, "delete")

        self.repo.delete(check)
        self._commit()
        logger.info("Inventory check deleted: ID=%s, user=%s", check_id, requester_id)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _save(self, check: InventoryCheck) -> None:
        check_id = check.id
        try:
            self.repo.save(check)
        except StaleDataError as exc:
            self.db.rollback()
            raise ConflictError(
                "Inventory check was modified concurrently, reload and try again",
                check_id=check_id,
            ) from exc
        self._commit()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            raise ConflictError(
                "Inventory check was modified concurrently, reload and try again"
            ) from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise
