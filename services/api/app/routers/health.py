import logging
from pathlib import Path

from fastapi import APIRouter

from app.core.azure_storage import ConfigurationError, StorageConfig
from app.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()

# Baked in at Docker build (ARG BUILD_SHA); used to verify production runs the exact image we built
BUILD_SHA_PATH = Path("/app/.build_sha")


def _read_build_sha() -> str | None:
    try:
        if BUILD_SHA_PATH.exists():
            return BUILD_SHA_PATH.read_text().strip() or None
    except OSError as e:
        logger.warning("health: could not read build sha: %s", e)
    return None


def _storage_configured() -> bool:
    try:
        return StorageConfig.from_settings(settings).configured
    except ConfigurationError as e:
        logger.warning("health: storage config unusable: %s", e)
        return False


@router.get("/health")
def health():
    logger.info("health: OK")
    out: dict = {"status": "ok", "storage_configured": _storage_configured()}
    build_sha = _read_build_sha()
    if build_sha:
        out["build_sha"] = build_sha
    return out
