from fastapi import APIRouter

from app.cuadraturas.routers.drafts import router as drafts_router
from app.cuadraturas.routers.health import router as health_router
from app.cuadraturas.routers.rectifications import router as rectifications_router
from app.cuadraturas.routers.reference import router as reference_router
from app.cuadraturas.routers.sessions import router as sessions_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(sessions_router, tags=["sessions"])
api_router.include_router(rectifications_router, tags=["rectifications"])
api_router.include_router(drafts_router, tags=["drafts"])
api_router.include_router(reference_router, tags=["reference"])
