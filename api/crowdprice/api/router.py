from fastapi import APIRouter

from crowdprice.api.routes import admin, health, prices, products

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(products.router, prefix="/products", tags=["public"])
api_router.include_router(prices.router, prefix="/prices", tags=["submissions"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
