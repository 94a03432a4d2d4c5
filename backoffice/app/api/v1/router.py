"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backoffice.app.api.v1.endpoints import deliveries

router = APIRouter()

# Delivery workflow endpoints
router.include_router(deliveries.router)
