import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from app.core.azure_storage import (
    BlobSasSigner,
    ConfigurationError,
    CryptoError,
    InvalidInput,
    StorageConfig,
    format_sas_time,
    generate_blob_name,
    progress_photo_blob_name,
    strip_query,
)
from app.core.config import settings
from app.schemas.storage import DeleteResponse, FileUploadResponse, SasUrlRequest, SasUrlResponse, UploadResponse
from app.services.blob_storage import BlobStorageClient, BlobStorageError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/storage", tags=["storage"])

CONFIG_ERROR_DETAIL = "Azure Storage credentials not configured"


def get_storage_config() -> StorageConfig:
    try:
        return StorageConfig.from_settings(settings)
    except ConfigurationError as e:
        logger.error("storage: %s", e)
        raise HTTPException(status_code=500, detail=CONFIG_ERROR_DETAIL)


def get_signer(config: StorageConfig = Depends(get_storage_config)) -> BlobSasSigner:
    return BlobSasSigner(config)


def get_blob_client(config: StorageConfig = Depends(get_storage_config)) -> BlobStorageClient:
    return BlobStorageClient(config)


def _to_http_error(op: str, e: Exception) -> HTTPException:
    if isinstance(e, InvalidInput):
        logger.info("%s: invalid input: %s", op, e)
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConfigurationError):
        logger.error("%s: %s", op, e)
        return HTTPException(status_code=500, detail=CONFIG_ERROR_DETAIL)
    if isinstance(e, CryptoError):
        logger.exception("%s: signing failed", op, exc_info=e)
        return HTTPException(status_code=500, detail="Signing failed")
    if isinstance(e, BlobStorageError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _read_upload(file: UploadFile) -> bytes:
    data = file.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")
    return data


@router.post("/sas-url", response_model=SasUrlResponse)
def create_sas_url(body: SasUrlRequest, signer: BlobSasSigner = Depends(get_signer)):
    """Mint a time-limited read-only URL for a stored blob (e.g. a progress photo)."""
    expires_in = body.expiresInMinutes if body.expiresInMinutes is not None else settings.sas_ttl_minutes
    logger.info("storage/sas-url: blobUrl=%s expiresInMinutes=%s", strip_query(body.blobUrl or "")[:120], expires_in)
    try:
        signed = signer.sign(body.blobUrl, expires_in)
    except (InvalidInput, ConfigurationError, CryptoError) as e:
        raise _to_http_error("storage/sas-url", e)
    return SasUrlResponse(signedUrl=signed.url, expiresAt=format_sas_time(signed.expires_at))


@router.post("/upload", response_model=UploadResponse)
def upload_progress_photo(
    file: UploadFile = File(..., description="Image to store"),
    clientId: str = Form(...),
    poseType: str = Form("photo"),
    blob_client: BlobStorageClient = Depends(get_blob_client),
):
    """Upload a progress photo as {clientId}/{timestamp}-{poseType}.{ext}. Returns the unsigned blob URL."""
    if not clientId.strip():
        raise HTTPException(status_code=400, detail="File and clientId are required")
    data = _read_upload(file)
    blob_name = progress_photo_blob_name(clientId.strip(), poseType.strip() or "photo", file.filename or "")
    content_type = file.content_type or "image/jpeg"
    logger.info("storage/upload: clientId=%s blobName=%s bytes=%d", clientId, blob_name, len(data))
    try:
        photo_url = blob_client.upload(blob_name, data, content_type)
    except (InvalidInput, ConfigurationError, CryptoError, BlobStorageError) as e:
        raise _to_http_error("storage/upload", e)
    return UploadResponse(photoUrl=photo_url, blobName=blob_name)


@router.post("/files", response_model=FileUploadResponse)
def upload_file(
    file: UploadFile = File(...),
    userId: str = Form(...),
    folder: str | None = Form(None),
    blob_client: BlobStorageClient = Depends(get_blob_client),
):
    """Generic user upload (avatars, attachments): {userId}[/{folder}]/{timestamp}-{fileName}."""
    if not userId.strip():
        raise HTTPException(status_code=400, detail="userId is required")
    data = _read_upload(file)
    blob_name = generate_blob_name(userId.strip(), file.filename or "file", folder)
    content_type = file.content_type or "application/octet-stream"
    logger.info("storage/files: userId=%s blobName=%s bytes=%d", userId, blob_name, len(data))
    try:
        url = blob_client.upload(blob_name, data, content_type)
    except (InvalidInput, ConfigurationError, CryptoError, BlobStorageError) as e:
        raise _to_http_error("storage/files", e)
    return FileUploadResponse(url=url, blobName=blob_name)


@router.delete("/files", response_model=DeleteResponse)
def delete_file(
    blobName: str = Query(..., min_length=1),
    blob_client: BlobStorageClient = Depends(get_blob_client),
):
    logger.info("storage/files: delete blobName=%s", blobName)
    try:
        deleted = blob_client.delete(blobName)
    except (InvalidInput, ConfigurationError, CryptoError, BlobStorageError) as e:
        raise _to_http_error("storage/files", e)
    return DeleteResponse(deleted=deleted)
