"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.container import build_container
from src.cs_common.errors import AppError, MissingFieldsError, ValidationError
from src.cs_common.response import settlement_error
from src.cs_gateway.api.router import router as settlement_router
from src.cs_gateway.application.schemas import SETTLEMENT_REQUIRED_FIELDS
from src.cs_gateway.middleware.request_log import RequestLogMiddleware
from src.cs_provider.api.router import router as provider_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("cs.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: build clients, verify DB + Redis. Shutdown: dispose."""
    container = build_container(settings)
    app.state.container = container
    async with container.engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await container.redis.ping()
    if not settings.PROVIDER_SECRET:
        logging.getLogger("cs.security").error(
            "PROVIDER_SECRET is not set; provider callbacks will be rejected"
        )
    # Warm the rate caches so the first callback does not pay for an upstream fetch.
    rate = await container.oracle.current_rate()
    logger.info("Started with SOL/USD %.4f", rate)
    yield
    await container.close()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: [%d] %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=settlement_error(exc.message).to_wire(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    error: ValidationError
    if any(err.get("type") == "json_invalid" for err in errors):
        error = ValidationError("Invalid JSON format")
    elif any(err.get("type") == "missing" for err in errors):
        error = MissingFieldsError(list(SETTLEMENT_REQUIRED_FIELDS))
    else:
        fields = sorted({str(err["loc"][-1]) for err in errors if err.get("loc")})
        error = ValidationError(f"Invalid fields: {', '.join(fields)}" if fields else "Invalid request")
    return await app_error_handler(request, error)


app.include_router(settlement_router)
app.include_router(provider_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
