from fastapi import APIRouter

from app.api.v1.endpoints import domain_orders, public, webhooks

api_router = APIRouter()
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(domain_orders.router, prefix="/domain-orders", tags=["domain-orders"])
api_router.include_router(public.router, prefix="/public", tags=["public"])
