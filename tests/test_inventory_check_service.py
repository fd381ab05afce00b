"""Tests for the inventory check lifecycle service."""

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from storeops.core.exceptions import (
    ConflictError,
    DependencyError,
    InvalidStateError,
    MissingReasonsError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from storeops.db.base import Base
from storeops.models.inventory_check import InventoryCheck, InventoryCheckStatus
from storeops.models.product import Product
from storeops.models.stock import StockMovement
from storeops.services.inventory_check_service import DraftItem, InventoryCheckService
from storeops.services.ports import SqlProductStock
from storeops.services.reconciliation import aggregate


class RecordingStock(SqlProductStock):
    """Real catalog adapter that remembers every write request."""

    def __init__(self, db, fail_on=None):
        super().__init__(db)
        self.calls = []
        self.fail_on = fail_on

    def set_quantity(self, product_id, quantity, **kwargs):
        self.calls.append((product_id, quantity))
        if product_id == self.fail_on:
            raise DependencyError(f"catalog write timed out for {product_id}")
        return super().set_quantity(product_id, quantity, **kwargs)


class UnreachableCatalog:
    def list_products(self):
        raise DependencyError("Product catalog is unavailable")

    def set_quantity(self, product_id, quantity, **kwargs):
        raise DependencyError("Product catalog is unavailable")


class UnavailableDirectory:
    def get_name(self, user_id):
        raise ConnectionError("directory service down")


def assert_counters_consistent(check):
    counters = aggregate(check.items)
    assert check.total_products == len(check.items)
    assert check.checked_products == counters.checked_products
    assert check.matched == counters.matched
    assert check.over == counters.over
    assert check.under == counters.under


@pytest.fixture
def draft(service, catalog):
    return service.create("staff-1", "Weekly count")


@pytest.fixture
def submitted(service, catalog, draft):
    a = catalog["A"]
    service.update_item(draft.id, a.id, 12, reason="recount")
    return service.submit(draft.id)


class TestCreate:
    def test_snapshots_catalog(self, service, catalog):
        """Scenario A."""
        check = service.create("staff-1")

        assert check.status == InventoryCheckStatus.DRAFT
        assert [i.system_quantity for i in check.items] == [10, 5, 0]
        assert [i.product_name for i in check.items] == ["Product A", "Product B", "Product C"]
        assert all(i.checked is False and i.actual_quantity is None for i in check.items)
        assert check.total_products == 3
        assert (check.checked_products, check.matched, check.over, check.under) == (0, 0, 0, 0)
        assert check.code.startswith("KK")
        assert check.title.startswith("Stocktake ")
        assert check.version == 1

    def test_snapshot_does_not_follow_catalog(self, db_session, service, catalog, draft):
        catalog["A"].quantity = 99
        catalog["A"].name = "Renamed"
        db_session.commit()

        check = service.get(draft.id)
        item = check.item_for(catalog["A"].id)
        assert item.system_quantity == 10
        assert item.product_name == "Product A"

    def test_codes_are_unique(self, service, catalog):
        codes = {service.create("staff-1").code for _ in range(5)}
        assert len(codes) == 5

    def test_requires_user(self, service, catalog):
        with pytest.raises(ValidationError):
            service.create("")

    def test_unreachable_catalog(self, db_session):
        service = InventoryCheckService(db_session, stock=UnreachableCatalog())
        with pytest.raises(DependencyError):
            service.create("staff-1")
        assert db_session.execute(select(InventoryCheck)).first() is None


class TestUpdateItem:
    def test_records_count(self, service, catalog, draft):
        """Scenario B."""
        check = service.update_item(draft.id, catalog["A"].id, 12)

        item = check.item_for(catalog["A"].id)
        assert item.difference == 2
        assert item.checked is True
        assert (check.checked_products, check.matched, check.over, check.under) == (1, 0, 1, 0)
        assert check.version == 2

    def test_empty_note_and_reason_keep_existing(self, service, catalog, draft):
        a = catalog["A"].id
        service.update_item(draft.id, a, 8, note="back shelf", reason="damaged")
        check = service.update_item(draft.id, a, 7, note="", reason=None)

        item = check.item_for(a)
        assert item.note == "back shelf"
        assert item.reason == "damaged"
        assert item.difference == -3

    def test_clearing_count_unchecks(self, service, catalog, draft):
        a = catalog["A"].id
        service.update_item(draft.id, a, 12)
        check = service.update_item(draft.id, a, None)

        assert check.item_for(a).checked is False
        assert check.checked_products == 0

    def test_unknown_product(self, service, catalog, draft):
        with pytest.raises(NotFoundError):
            service.update_item(draft.id, 9999, 1)

    def test_unknown_check(self, service, catalog):
        with pytest.raises(NotFoundError):
            service.update_item(9999, catalog["A"].id, 1)

    def test_only_in_draft(self, service, catalog, submitted):
        with pytest.raises(InvalidStateError):
            service.update_item(submitted.id, catalog["B"].id, 1)
        assert service.get(submitted.id).item_for(catalog["B"].id).checked is False

    def test_stale_version_rejected(self, service, catalog, draft):
        service.update_item(draft.id, catalog["A"].id, 12)
        with pytest.raises(ConflictError):
            service.update_item(draft.id, catalog["B"].id, 4, expected_version=1)
        assert service.get(draft.id).item_for(catalog["B"].id).checked is False

    def test_counters_never_drift(self, service, catalog, draft):
        ids = [p.id for p in catalog.values()]
        for product_id, actual in [(ids[0], 12), (ids[1], 5), (ids[2], 3), (ids[0], 10), (ids[1], None)]:
            check = service.update_item(draft.id, product_id, actual)
            assert_counters_consistent(check)


class TestSaveDraft:
    def test_bulk_replace(self, service, catalog, draft):
        check = service.save_draft(
            draft.id,
            [
                DraftItem(catalog["A"].id, 10),
                DraftItem(catalog["B"].id, 2, note="top shelf", reason="expired"),
                DraftItem(catalog["C"].id, 1, reason="found one"),
            ],
            note="evening shift",
        )

        assert check.note == "evening shift"
        assert (check.checked_products, check.matched, check.over, check.under) == (3, 1, 1, 1)
        b = check.item_for(catalog["B"].id)
        assert (b.difference, b.note, b.reason) == (-3, "top shelf", "expired")
        assert_counters_consistent(check)

    def test_unlisted_items_untouched(self, service, catalog, draft):
        service.update_item(draft.id, catalog["C"].id, 2, reason="extra box")
        check = service.save_draft(draft.id, [DraftItem(catalog["A"].id, 11)])

        c = check.item_for(catalog["C"].id)
        assert (c.actual_quantity, c.reason) == (2, "extra box")
        assert check.checked_products == 2

    def test_unknown_product_rejects_whole_save(self, service, catalog, draft):
        with pytest.raises(NotFoundError):
            service.save_draft(draft.id, [DraftItem(catalog["A"].id, 3), DraftItem(4242, 1)])
        assert service.get(draft.id).checked_products == 0

    def test_duplicate_product(self, service, catalog, draft):
        with pytest.raises(ValidationError):
            service.save_draft(draft.id, [DraftItem(catalog["A"].id, 3), DraftItem(catalog["A"].id, 4)])

    def test_only_in_draft(self, service, catalog, submitted):
        with pytest.raises(InvalidStateError):
            service.save_draft(submitted.id, [DraftItem(catalog["A"].id, 3)])


class TestSubmit:
    def test_missing_reason(self, service, catalog, draft):
        """Scenario C."""
        service.update_item(draft.id, catalog["A"].id, 12)

        with pytest.raises(MissingReasonsError) as exc_info:
            service.submit(draft.id)

        assert exc_info.value.missing_count == 1
        assert "1 discrepant" in str(exc_info.value)
        assert service.get(draft.id).status == InventoryCheckStatus.DRAFT

    def test_counts_every_missing_reason(self, service, catalog, draft):
        service.update_item(draft.id, catalog["A"].id, 12)
        service.update_item(draft.id, catalog["B"].id, 1)
        service.update_item(draft.id, catalog["C"].id, 0)  # matched, no reason needed

        with pytest.raises(MissingReasonsError) as exc_info:
            service.submit(draft.id)
        assert exc_info.value.missing_count == 2

    def test_with_reason(self, service, catalog, draft):
        """Scenario D."""
        service.update_item(draft.id, catalog["A"].id, 12)
        service.update_item(draft.id, catalog["A"].id, 12, reason="recount")

        check = service.submit(draft.id)
        assert check.status == InventoryCheckStatus.SUBMITTED
        assert check.submitted_at is not None

    def test_uncounted_items_do_not_block(self, service, catalog, draft):
        assert service.submit(draft.id).status == InventoryCheckStatus.SUBMITTED

    def test_twice(self, service, catalog, submitted):
        with pytest.raises(InvalidStateError):
            service.submit(submitted.id)


class TestApprove:
    def test_applies_counts(self, db_session, service, catalog, submitted, stock_levels):
        """Scenario E."""
        result = service.approve(submitted.id, "manager-1")

        assert result.adjusted_count == 1
        assert result.check.status == InventoryCheckStatus.APPROVED
        assert result.check.approved_by == "manager-1"
        assert result.check.approved_at is not None
        assert stock_levels() == {"A": 12, "B": 5, "C": 0}

        movement = db_session.execute(select(StockMovement)).scalar_one()
        assert movement.product_id == catalog["A"].id
        assert (movement.quantity_before, movement.quantity_after, movement.qty_delta) == (10, 12, 2)
        assert movement.ref_type == "inventory_check"
        assert movement.ref_id == submitted.id

    def test_matched_items_not_written(self, db_session, catalog, draft):
        stock = RecordingStock(db_session)
        service = InventoryCheckService(db_session, stock=stock)
        service.update_item(draft.id, catalog["A"].id, 12, reason="recount")
        service.update_item(draft.id, catalog["B"].id, 5)
        service.submit(draft.id)

        service.approve(draft.id, "manager-1")
        assert stock.calls == [(catalog["A"].id, 12)]

    def test_overwrites_with_counted_quantity(self, db_session, service, catalog, submitted, stock_levels):
        # stock moved after the snapshot; the counted figure still wins
        catalog["A"].quantity = 7
        db_session.commit()

        service.approve(submitted.id, "manager-1")
        assert stock_levels()["A"] == 12

    def test_retry_does_not_reapply(self, db_session, service, catalog, submitted, stock_levels):
        service.approve(submitted.id, "manager-1")
        catalog["A"].quantity = 11  # a sale after approval
        db_session.commit()

        with pytest.raises(InvalidStateError):
            service.approve(submitted.id, "manager-1")

        assert stock_levels()["A"] == 11
        assert len(db_session.execute(select(StockMovement)).all()) == 1

    def test_only_from_submitted(self, service, catalog, draft, stock_levels):
        service.update_item(draft.id, catalog["A"].id, 12, reason="recount")
        with pytest.raises(InvalidStateError):
            service.approve(draft.id, "manager-1")
        assert stock_levels()["A"] == 10

    def test_failed_write_rolls_back(self, db_session, catalog, draft, stock_levels):
        stock = RecordingStock(db_session, fail_on=catalog["B"].id)
        service = InventoryCheckService(db_session, stock=stock)
        service.update_item(draft.id, catalog["A"].id, 12, reason="recount")
        service.update_item(draft.id, catalog["B"].id, 1, reason="broken")
        service.submit(draft.id)

        with pytest.raises(DependencyError) as exc_info:
            service.approve(draft.id, "manager-1")

        assert exc_info.value.partial is True
        assert exc_info.value.issued_product_ids == [catalog["A"].id]
        assert stock_levels() == {"A": 10, "B": 5, "C": 0}
        assert service.get(draft.id).status == InventoryCheckStatus.SUBMITTED
        assert db_session.execute(select(StockMovement)).first() is None

        # retry once the catalog is healthy again
        stock.fail_on = None
        result = service.approve(draft.id, "manager-1")
        assert result.adjusted_count == 2
        assert stock_levels() == {"A": 12, "B": 1, "C": 0}

    def test_requires_manager(self, service, submitted):
        with pytest.raises(ValidationError):
            service.approve(submitted.id, "")


class TestReject:
    def test_reject_leaves_catalog(self, db_session, catalog, stock_levels):
        """Scenario F."""
        stock = RecordingStock(db_session)
        service = InventoryCheckService(db_session, stock=stock)
        check = service.create("staff-2")
        service.update_item(check.id, catalog["B"].id, 3, reason="miscount")
        service.submit(check.id)

        rejected = service.reject(check.id, "manager-1", "price tag mismatch")

        assert rejected.status == InventoryCheckStatus.REJECTED
        assert rejected.reject_reason == "price tag mismatch"
        assert rejected.rejected_by == "manager-1"
        assert rejected.rejected_at is not None
        assert stock.calls == []
        assert stock_levels() == {"A": 10, "B": 5, "C": 0}

    def test_requires_reason(self, service, submitted):
        with pytest.raises(ValidationError):
            service.reject(submitted.id, "manager-1", "  ")
        assert service.get(submitted.id).status == InventoryCheckStatus.SUBMITTED

    def test_draft_cannot_be_rejected(self, service, draft):
        with pytest.raises(InvalidStateError):
            service.reject(draft.id, "manager-1", "not ready")

    def test_terminal_states_are_final(self, service, catalog, submitted):
        service.reject(submitted.id, "manager-1", "redo")
        with pytest.raises(InvalidStateError):
            service.approve(submitted.id, "manager-1")
        with pytest.raises(InvalidStateError):
            service.reject(submitted.id, "manager-1", "again")
        with pytest.raises(InvalidStateError):
            service.update_item(submitted.id, catalog["A"].id, 1)


class TestDelete:
    def test_creator_deletes_draft(self, db_session, service, draft):
        service.delete(draft.id, "staff-1")
        with pytest.raises(NotFoundError):
            service.get(draft.id)

    def test_other_user_cannot_delete(self, service, draft):
        with pytest.raises(PermissionDeniedError):
            service.delete(draft.id, "staff-2")
        assert service.get(draft.id) is not None

    def test_submitted_cannot_be_deleted(self, service, submitted):
        with pytest.raises(InvalidStateError):
            service.delete(submitted.id, "staff-1")


class TestListing:
    def test_by_user_newest_first(self, service, catalog):
        first = service.create("staff-1", "first")
        service.create("staff-2", "other")
        second = service.create("staff-1", "second")

        checks = service.list_by_user("staff-1")
        assert [c.id for c in checks] == [second.id, first.id]
        assert len(service.list_all()) == 3

    def test_creator_summary(self, service, catalog, staff_user, draft):
        assert service.creator_summary(draft) == {"id": "staff-1", "name": "Lan Nguyen"}

    def test_creator_summary_unknown_user(self, service, catalog):
        check = service.create("ghost")
        assert service.creator_summary(check) is None

    def test_creator_summary_directory_down(self, db_session, catalog, draft):
        service = InventoryCheckService(db_session, users=UnavailableDirectory())
        assert service.creator_summary(draft) is None
        assert service.get(draft.id).id == draft.id


@pytest.fixture
def file_sessions(tmp_path):
    """Independent sessions on a file database, with a two-product draft."""
    engine = create_engine(f"sqlite:///{tmp_path / 'checks.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    setup.add_all([Product(name="A", quantity=10), Product(name="B", quantity=5)])
    setup.commit()
    check = InventoryCheckService(setup).create("staff-1")
    check_id = check.id
    product_ids = [i.product_id for i in check.items]
    setup.close()

    yield Session, check_id, product_ids
    engine.dispose()


def test_concurrent_edits_conflict(file_sessions):
    Session, check_id, product_ids = file_sessions
    first, second = Session(), Session()
    try:
        # both writers read the check before either saves; the second keeps
        # its copy referenced so the session identity map holds on to it
        stale = InventoryCheckService(second).get(check_id)
        InventoryCheckService(first).update_item(check_id, product_ids[0], 12)

        with pytest.raises(ConflictError):
            InventoryCheckService(second).update_item(check_id, product_ids[1], 4)
    finally:
        first.close()
        second.close()

    verify = Session()
    stored = InventoryCheckService(verify).get(check_id)
    assert stored.item_for(product_ids[0]).actual_quantity == 12
    assert stored.item_for(product_ids[1]).checked is False
    assert stored.version == 2
    verify.close()


def test_concurrent_draft_save_conflict(file_sessions):
    Session, check_id, product_ids = file_sessions
    first, second = Session(), Session()
    try:
        stale = InventoryCheckService(second).get(check_id)
        InventoryCheckService(first).update_item(check_id, product_ids[0], 12)

        with pytest.raises(ConflictError):
            InventoryCheckService(second).save_draft(
                check_id, [DraftItem(product_ids[0], 9), DraftItem(product_ids[1], 4)]
            )
    finally:
        first.close()
        second.close()

    verify = Session()
    stored = InventoryCheckService(verify).get(check_id)
    assert stored.item_for(product_ids[0]).actual_quantity == 12
    assert stored.item_for(product_ids[1]).checked is False
    assert stored.version == 2
    verify.close()


def test_stock_write_idempotent_per_reference(db_session, catalog, stock_levels):
    stock = SqlProductStock(db_session)
    a = catalog["A"].id

    assert stock.set_quantity(a, 14, ref_type="inventory_check", ref_id=7) is True
    assert stock.set_quantity(a, 14, ref_type="inventory_check", ref_id=7) is False
    db_session.commit()

    assert stock_levels()["A"] == 14
    assert [m.qty_delta for m in stock.history(a)] == [4]
