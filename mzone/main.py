import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from mzone.core.config import settings, validate_config
from mzone.core.database import create_all_tables, database_configured
from mzone.core.logging import configure_logging
from mzone.core.middleware.request_id import RequestIdMiddleware
from mzone.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from mzone.api import auth, health, payment, plans, profile

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("mzone")
    logger.info("Starting MZone backend...")
    if database_configured():
        create_all_tables()
    logger.info(
        "startup.config",
        extra={
            "jwt": bool(settings.JWT_SECRET),
            "paystack": bool(settings.PAYSTACK_SECRET_KEY),
            "database": database_configured(),
        },
    )
    try:
        yield
    finally:
        logger.info("Stopping MZone backend...")


app = FastAPI(title="MZone - Backend", lifespan=lifespan)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

app.include_router(auth.router)
app.include_router(plans.router)
app.include_router(payment.router)
app.include_router(profile.router)
app.include_router(health.router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
