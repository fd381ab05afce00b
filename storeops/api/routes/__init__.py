"""API routes."""

from fastapi import APIRouter

from storeops.api.routes import inventory_checks, products

api_router = APIRouter()

api_router.include_router(inventory_checks.router, tags=["inventory-checks"])
api_router.include_router(products.router, tags=["products"])
