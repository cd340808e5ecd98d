"""
Mock backend HTTP surface: data, jsonstore and users services over in-memory stores.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

from . import data, jsonstore, users
from .deps import build_services, get_services
from .schemas import ErrorResponse, HealthResponse
from ..core import config
from ..core.errors import ServiceError
from ..util.logging import logger


def create_app(seed_data: Optional[Dict[str, Any]] = None, rules: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Build the application with its own set of stores.

    Args:
        seed_data: Seed mapping; read from SEED_PATH when None
        rules: Access rules; read from RULES_PATH when None
    """
    for issue in config.validate_config():
        logger.warning(f"Configuration issue: {issue}")

    if seed_data is None:
        seed_data = config.load_seed_data()
    if rules is None:
        rules = config.load_rules()

    app = FastAPI(
        title="Mock Backend API",
        version=config.VERSION,
        description="In-memory mock REST backend with queries and rule-based access control",
        docs_url="/docs" if config.debug_enabled() else None,
        redoc_url="/redoc" if config.debug_enabled() else None,
    )
    app.state.services = build_services(seed_data, rules)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(data.router, prefix="/data", tags=["data"])
    app.include_router(jsonstore.router, prefix="/jsonstore", tags=["jsonstore"])
    app.include_router(users.router, prefix="/users", tags=["users"])

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint(request: Request):
        """Check service health."""
        services = get_services(request)
        return HealthResponse(
            status="healthy",
            version=config.VERSION,
            collections=services.data.list_collections(),
        )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        logger.warning(f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(code=exc.status_code, message=exc.message).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = ", ".join(".".join(str(p) for p in error["loc"][1:]) for error in exc.errors())
        message = f"Invalid request fields: {fields}" if fields else "Invalid request"
        logger.warning(f"{request.method} {request.url.path} failed with 400: {message}")
        return JSONResponse(status_code=400, content=ErrorResponse(code=400, message=message).model_dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        content = {"code": 500, "message": "Internal server error"}
        if config.debug_enabled():
            content["debug"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    logger.log_operation("app.startup", "success", {
        "collections": len(app.state.services.data.list_collections()),
        "rule_sets": len(app.state.services.rules),
    })
    return app


app = create_app()


def run():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("mockbackend.api.main:app", host=config.HOST, port=config.PORT)
