from fastapi import FastAPI, HTTPException, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
from typing import Optional

from storefront import __version__
from storefront.shared.utils import (
    Settings, HealthResponse, ErrorResponse, ValidationErrorResponse, FieldError, get_db_client
)
from storefront.shared.logging_config import setup_logging, RequestLoggingMiddleware
from storefront.shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware

from storefront.auth.routes import router as auth_router
from storefront.products.routes import router as products_router
from storefront.products.store import CatalogStore
from storefront.orders.routes import cart_router, order_router
from storefront.orders.cart import CartEngine
from storefront.orders.engine import OrderEngine



def field_errors(exc: RequestValidationError) -> ValidationErrorResponse:
    errors = []
    for error in exc.errors():
        # Drop the "body"/"query" location prefix
        location = [str(part) for part in error.get("loc", ())[1:]]
        errors.append(FieldError(field=".".join(location) or "body", message=error.get("msg", "Invalid value")))
    return ValidationErrorResponse(errors=errors)


def create_app(settings: Optional[Settings] = None, mongodb_client=None) -> FastAPI:
    settings = settings or Settings()
    service_logger = setup_logging(settings.SERVICE_NAME, settings.LOG_LEVEL)

    app = FastAPI(title="Storefront", version=__version__)
    app.state.settings = settings

    # Security Setup
    setup_rate_limiting(app, enabled=settings.RATE_LIMIT_ENABLED)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware, service_name=settings.SERVICE_NAME)

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_db_client():
        app.mongodb_client = mongodb_client if mongodb_client is not None else get_db_client(settings.MONGO_URL)
        app.state.mongodb = app.mongodb_client[settings.MONGO_DB_NAME]
        db = app.state.mongodb

        # Indexes
        await db.users.create_index("email", unique=True)
        await db.carts.create_index("customer_id", unique=True)
        await db.orders.create_index([("customer_id", 1), ("order_date", -1)])
        await db.products.create_index("category")

        catalog = CatalogStore(db)
        app.state.catalog = catalog
        app.state.cart_engine = CartEngine(db, catalog, max_retries=settings.CART_MAX_RETRIES)
        app.state.order_engine = OrderEngine(
            db, catalog, app.state.cart_engine, max_retries=settings.CART_MAX_RETRIES
        )
        service_logger.info(f"Storefront started, database={settings.MONGO_DB_NAME}")

    @app.on_event("shutdown")
    async def shutdown_db_client():
        app.mongodb_client.close()

    # --- Error handlers ---
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).dict(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(field_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        service_logger.error(
            "Unhandled error",
            extra={"path": request.url.path, "request_id": getattr(request.state, "request_id", None)},
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Something went wrong!").dict(),
        )

    # --- Routes ---
    app.include_router(auth_router)
    app.include_router(products_router)
    app.include_router(cart_router)
    app.include_router(order_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        try:
            await app.mongodb_client.admin.command('ping')
            db_status = "connected"
        except Exception:
            db_status = "disconnected"

        if db_status != "connected":
            service_logger.error(f"Health Check Failed: DB={db_status}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Service Unhealthy"
            )

        return HealthResponse(
            service=settings.SERVICE_NAME,
            status="healthy",
            timestamp=datetime.utcnow(),
            version=__version__,
            database=db_status
        )

    return app


def run():
    import uvicorn

    uvicorn.run("storefront.main:create_app", factory=True, host="0.0.0.0", port=3000)
