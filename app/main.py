from fastapi import FastAPI

from app.cuadraturas.api import api_router
from app.cuadraturas.core.config import settings
from app.cuadraturas.core.errors import setup_exception_handlers
from app.cuadraturas.core.logging import configure_logging
from app.cuadraturas.middleware.observability import RequestLogMiddleware
from app.cuadraturas.middleware.trace import TraceIdMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(RequestLogMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
