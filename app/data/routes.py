"""Data API routes - mounts the ledger routers under one prefix."""
from fastapi import APIRouter

from app.data.exchange_rates import routes as exchange_rate_routes
from app.data.payments import routes as payment_routes
from app.data.pledges import routes as pledge_routes

router = APIRouter()

router.include_router(payment_routes.router, tags=["Payments"])
router.include_router(pledge_routes.router, tags=["Pledges"])
router.include_router(exchange_rate_routes.router, prefix="/exchange-rates", tags=["Exchange Rates"])
