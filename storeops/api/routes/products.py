"""Product stock history routes."""

from fastapi import APIRouter, Query, Request

from storeops.core.config import settings
from storeops.core.rate_limit import limiter
from storeops.core.responses import success_response
from storeops.db.session import DbSession
from storeops.schemas.inventory_check import StockMovementResponse
from storeops.services.ports import SqlProductStock

router = APIRouter()


@router.get("/products/{product_id}/transactions")
@limiter.limit(settings.rate_limit_read)
def product_transactions(
    request: Request,
    product_id: int,
    db: DbSession,
    limit: int = Query(settings.product_history_limit, ge=1, le=200),
):
    """Latest stock movements of a product, newest first."""
    movements = SqlProductStock(db).history(product_id, limit=limit)
    return success_response(
        [StockMovementResponse.model_validate(m).model_dump(mode="json") for m in movements]
    )
