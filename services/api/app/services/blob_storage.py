"""Azure Blob Storage REST calls (Put Blob / Delete Blob) signed with SharedKey."""
import logging

import httpx

from app.core.azure_storage import BlobSasSigner, InvalidInput, StorageConfig, build_blob_url

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30.0


class BlobStorageError(Exception):
    """Storage service rejected the request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BlobStorageClient:
    def __init__(
        self,
        config: StorageConfig,
        signer: BlobSasSigner | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.config = config
        self.signer = signer or BlobSasSigner(config)
        self._transport = transport
        self._timeout = timeout

    def blob_url(self, blob_name: str, container: str | None = None) -> str:
        return build_blob_url(
            self.config.account_name,
            container or self.config.container_name,
            blob_name,
            self.config.endpoint_suffix,
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def upload(self, blob_name: str, data: bytes, content_type: str, container: str | None = None) -> str:
        """Upload data as a block blob. Returns the (unsigned) blob URL."""
        if not data:
            raise InvalidInput("File is empty")
        container = container or self.config.container_name
        headers = self.signer.sign_for_upload(blob_name, len(data), content_type, container=container)
        url = self.blob_url(blob_name, container)
        try:
            with self._client() as client:
                r = client.put(url, headers=headers, content=data)
        except httpx.HTTPError as e:
            logger.warning("blob_storage: upload %s failed: %s", blob_name, e)
            raise BlobStorageError(f"Failed to upload to Azure: {e}") from e
        if not r.is_success:
            logger.error("blob_storage: Azure upload error %s: %s", r.status_code, (r.text or "")[:300])
            raise BlobStorageError(f"Failed to upload to Azure: {r.status_code}", status_code=r.status_code)
        logger.info("blob_storage: uploaded %s (%d bytes) to container=%s", blob_name, len(data), container)
        return url

    def delete(self, blob_name: str, container: str | None = None) -> bool:
        """Delete a blob if it exists. Returns False when it was already gone."""
        container = container or self.config.container_name
        headers = self.signer.sign_for_delete(blob_name, container=container)
        url = self.blob_url(blob_name, container)
        try:
            with self._client() as client:
                r = client.delete(url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("blob_storage: delete %s failed: %s", blob_name, e)
            raise BlobStorageError(f"Failed to delete from Azure: {e}") from e
        if r.status_code == 404:
            logger.info("blob_storage: %s not found, nothing to delete", blob_name)
            return False
        if not r.is_success:
            logger.error("blob_storage: Azure delete error %s: %s", r.status_code, (r.text or "")[:300])
            raise BlobStorageError(f"Failed to delete from Azure: {r.status_code}", status_code=r.status_code)
        logger.info("blob_storage: deleted %s from container=%s", blob_name, container)
        return True
