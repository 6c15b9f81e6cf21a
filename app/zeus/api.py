from fastapi import APIRouter

from app.zeus.routers.features import router as features_router
from app.zeus.routers.health import router as health_router
from app.zeus.routers.ops import router as ops_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(features_router, prefix="/zeus", tags=["features"])
api_router.include_router(ops_router, tags=["ops"])
