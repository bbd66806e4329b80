import logging
import traceback
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.azure_storage import ConfigurationError, StorageConfig
from app.core.config import settings
from app.core.logging_config import setup_logging
from app.routers import health, storage

setup_logging()
logger = logging.getLogger("coachpro.storage")

app = FastAPI(title="CoachPro Storage API", version="0.1.0")


@app.on_event("startup")
def startup_log_config():
    """Log config status at startup (no secrets). Helps troubleshoot env var issues."""
    logger.info("CoachPro Storage API starting up")
    try:
        storage_config = StorageConfig.from_settings(settings)
        account = storage_config.account_name or "(empty)"
        key_set = bool(storage_config.account_key)
    except ConfigurationError as e:
        logger.error("startup: storage config unusable: %s", e)
        account, key_set = "(invalid)", False
    cfg = {
        "APP_ENV": settings.app_env,
        "AZURE_STORAGE_ACCOUNT_NAME": account,
        "AZURE_STORAGE_ACCOUNT_KEY_set": key_set,
        "AZURE_STORAGE_CONNECTION_STRING_set": bool(settings.azure_storage_connection_string),
        "CORS_ALLOW_ORIGINS": settings.cors_allow_origins[:80] + ("..." if len(settings.cors_allow_origins) > 80 else ""),
        "container": settings.azure_storage_container_name,
        "sas_ttl_minutes": settings.sas_ttl_minutes,
    }
    logger.info("CoachPro Storage API startup config: %s", cfg)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request and response for troubleshooting. Query strings are left out (they can carry SAS tokens)."""
    rid = f"{id(request):x}"
    path = request.url.path
    method = request.method
    start = time.perf_counter()
    logger.info("[%s] -> %s %s", rid, method, path)
    try:
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        status = response.status_code
        level = logging.WARNING if status >= 400 else logging.INFO
        logger.log(level, "[%s] <- %s %s %d %.0fms", rid, method, path, status, elapsed_ms)
        return response
    except Exception as e:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.exception("[%s] ERROR %s %s after %.0fms: %s", rid, method, path, elapsed_ms, e)
        raise


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions, log full traceback, return 500."""
    logger.exception(
        "Unhandled exception %s %s: %s\n%s",
        request.method,
        request.url.path,
        exc,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "_traceback": traceback.format_exc() if settings.app_env != "production" else None,
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(storage.router)
