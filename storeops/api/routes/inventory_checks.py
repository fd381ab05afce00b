"""Inventory check (stocktake) routes."""

from typing import Annotated, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, Request

from storeops.core.config import settings
from storeops.core.rate_limit import limiter
from storeops.core.responses import success_response
from storeops.db.session import DbSession
from storeops.models.inventory_check import InventoryCheck
from storeops.schemas.inventory_check import (
    InventoryCheckApprove,
    InventoryCheckCreate,
    InventoryCheckDelete,
    InventoryCheckReject,
    InventoryCheckResponse,
    InventoryDraftSave,
    InventoryItemUpdate,
    InventoryStatsResponse,
    UserSummary,
)
from storeops.services.inventory_check_service import DraftItem, InventoryCheckService
from storeops.services.inventory_stats import compute_inventory_stats


router = APIRouter()


def get_inventory_check_service(db: DbSession) -> InventoryCheckService:
    return InventoryCheckService(db)


CheckService = Annotated[InventoryCheckService, Depends(get_inventory_check_service)]


def serialize_check(check: InventoryCheck, service: Optional[InventoryCheckService] = None) -> dict:
    data = InventoryCheckResponse.model_validate(check)
    if service is not None:
        creator = service.creator_summary(check)
        if creator:
            data.created_by_user = UserSummary(**creator)
    return data.model_dump(mode="json")


@router.post("/inventory-checks")
@limiter.limit(settings.rate_limit_write)
def create_check(request: Request, payload: InventoryCheckCreate, service: CheckService):
    """Create a draft check from the current catalog."""
    check = service.create(payload.user_id, payload.title)
    return success_response(serialize_check(check))


@router.get("/inventory-checks")
@limiter.limit(settings.rate_limit_read)
def list_checks(request: Request, service: CheckService):
    """List every check, newest first (manager view)."""
    return success_response([serialize_check(c, service) for c in service.list_all()])


@router.get("/inventory-checks/user/{user_id}")
@limiter.limit(settings.rate_limit_read)
def list_user_checks(request: Request, user_id: str, service: CheckService):
    """List the checks created by one staff member, newest first."""
    return success_response([serialize_check(c) for c in service.list_by_user(user_id)])


@router.get("/inventory-checks/{check_id}")
@limiter.limit(settings.rate_limit_read)
def get_check(request: Request, check_id: int, service: CheckService):
    """Get a check with its items."""
    return success_response(serialize_check(service.get(check_id), service))


@router.put("/inventory-checks/{check_id}/items/{product_id}")
@limiter.limit(settings.rate_limit_write)
def update_item(
    request: Request,
    check_id: int,
    product_id: int,
    payload: InventoryItemUpdate,
    service: CheckService,
):
    """Record the count of one product."""
    check = service.update_item(
        check_id,
        product_id,
        payload.actual_quantity,
        note=payload.note,
        reason=payload.reason,
        expected_version=payload.version,
    )
    return success_response(serialize_check(check))


@router.put("/inventory-checks/{check_id}/draft")
@limiter.limit(settings.rate_limit_write)
def save_draft(request: Request, check_id: int, payload: InventoryDraftSave, service: CheckService):
    """Save the full edited item list of a draft."""
    items = [DraftItem(**item.model_dump()) for item in payload.items]
    check = service.save_draft(
        check_id, items, note=payload.note, expected_version=payload.version
    )
    return success_response(serialize_check(check))


@router.delete("/inventory-checks/{check_id}")
@limiter.limit(settings.rate_limit_write)
def delete_check(request: Request, check_id: int, payload: InventoryCheckDelete, service: CheckService):
    """Delete a draft check (creator only)."""
    service.delete(check_id, payload.user_id)
    return success_response({"id": check_id, "deleted": True})


@router.post("/inventory-checks/{check_id}/submit")
@limiter.limit(settings.rate_limit_write)
def submit_check(request: Request, check_id: int, service: CheckService):
    """Submit a draft for manager review."""
    check = service.submit(check_id)
    return success_response(serialize_check(check))


@router.post("/inventory-checks/{check_id}/approve")
@limiter.limit(settings.rate_limit_write)
def approve_check(request: Request, check_id: int, payload: InventoryCheckApprove, service: CheckService):
    """Approve a submitted check and apply counted quantities to the catalog."""
    result = service.approve(check_id, payload.manager_id)
    return success_response(
        {"check": serialize_check(result.check), "adjustedCount": result.adjusted_count}
    )


@router.post("/inventory-checks/{check_id}/reject")
@limiter.limit(settings.rate_limit_write)
def reject_check(request: Request, check_id: int, payload: InventoryCheckReject, service: CheckService):
    """Reject a submitted check."""
    check = service.reject(check_id, payload.manager_id, payload.reason)
    return success_response(serialize_check(check))


@router.get("/inventory-stats")
@limiter.limit(settings.rate_limit_read)
def inventory_stats(
    request: Request,
    service: CheckService,
    user_id: Optional[str] = Query(None, alias="userId"),
):
    """Dashboard statistics, optionally limited to one creator."""
    checks = service.list_by_user(user_id) if user_id else service.list_all()
    stats = compute_inventory_stats(checks, tz=ZoneInfo(settings.timezone))
    return success_response(
        InventoryStatsResponse.model_validate(stats).model_dump(mode="json", by_alias=True)
    )
