from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import panel
from app.api.v1 import api_router
from app.core.config import settings
from app.core.logging_config import configure_logging, configure_paypal_log
from app.core.startup_checks import validate_production_settings
from app.db.session import get_registry
from app.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.schemas.error import ErrorResponse
from app.services.dispatcher import DispatcherConfigError


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_production_settings()
    configure_paypal_log(settings.paypal_log_path)
    yield
    await get_registry().dispose()


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "payments", "description": "PayPal instant payment notifications"},
        {"name": "health", "description": "Liveness and server group readiness"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")
    app.include_router(panel.router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(DispatcherConfigError)
    async def dispatcher_config_handler(request: Request, exc: DispatcherConfigError):
        payload = ErrorResponse(detail=str(exc), code="dispatcher_config")
        return JSONResponse(status_code=500, content=payload.model_dump())

    return app


app = get_application()
