from __future__ import annotations

import os
from datetime import datetime, timezone

import httpx
import pytest

# Keep a developer's real storage credentials out of the test run.
os.environ["APP_ENV"] = "test"
os.environ["AZURE_STORAGE_ACCOUNT_NAME"] = ""
os.environ["AZURE_STORAGE_ACCOUNT_KEY"] = ""
os.environ["AZURE_STORAGE_CONNECTION_STRING"] = ""
os.environ["STORAGE_SAS_TTL_MINUTES"] = "60"

# ruff: noqa: E402
from fastapi.testclient import TestClient

from app.core.azure_storage import BlobSasSigner, StorageConfig
from app.main import app
from app.routers.storage import get_blob_client, get_signer, get_storage_config
from app.services.blob_storage import BlobStorageClient

# Publicly documented storage-emulator key; not a real secret.
TEST_ACCOUNT = "coachpro"
TEST_KEY = "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="
FIXED_NOW = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)  # epoch 1700000000
PHOTO_URL = "https://coachpro.blob.core.windows.net/progress-photos/user123/1700000000000-front.jpg"


@pytest.fixture()
def storage_config() -> StorageConfig:
    return StorageConfig(account_name=TEST_ACCOUNT, account_key=TEST_KEY)


@pytest.fixture()
def signer(storage_config: StorageConfig) -> BlobSasSigner:
    return BlobSasSigner(storage_config, clock=lambda: FIXED_NOW)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, status_code: int = 201, text: str = ""):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.text = text
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.text)


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def blob_client(storage_config: StorageConfig, signer: BlobSasSigner, transport: RecordingTransport) -> BlobStorageClient:
    return BlobStorageClient(storage_config, signer=signer, transport=transport)


@pytest.fixture()
def api_client(storage_config, signer, blob_client):
    app.dependency_overrides[get_storage_config] = lambda: storage_config
    app.dependency_overrides[get_signer] = lambda: signer
    app.dependency_overrides[get_blob_client] = lambda: blob_client
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
