from __future__ import annotations

import httpx
import pytest

from app.core.azure_storage import InvalidInput
from app.services.blob_storage import BlobStorageClient, BlobStorageError
from conftest import PHOTO_URL, RecordingTransport

BLOB_NAME = "user123/1700000000000-front.jpg"


def test_upload_puts_block_blob_with_shared_key(blob_client, transport):
    url = blob_client.upload(BLOB_NAME, b"\xff\xd8jpeg-bytes", "image/jpeg")

    assert url == PHOTO_URL
    [request] = transport.requests
    assert request.method == "PUT"
    assert str(request.url) == PHOTO_URL
    assert request.content == b"\xff\xd8jpeg-bytes"
    assert request.headers["x-ms-blob-type"] == "BlockBlob"
    assert request.headers["x-ms-version"] == "2020-10-02"
    assert request.headers["content-type"] == "image/jpeg"
    assert request.headers["content-length"] == "12"
    assert request.headers["authorization"].startswith("SharedKey coachpro:")


def test_upload_to_other_container(blob_client, transport):
    url = blob_client.upload("u/a.png", b"png", "image/png", container="avatars")

    assert url == "https://coachpro.blob.core.windows.net/avatars/u/a.png"
    assert str(transport.requests[0].url) == url


def test_upload_rejects_empty_data(blob_client, transport):
    with pytest.raises(InvalidInput):
        blob_client.upload(BLOB_NAME, b"", "image/jpeg")
    assert transport.requests == []


def test_upload_error_status_raises(storage_config, signer):
    transport = RecordingTransport(status_code=403, text="<Error><Code>AuthenticationFailed</Code></Error>")
    client = BlobStorageClient(storage_config, signer=signer, transport=transport)

    with pytest.raises(BlobStorageError) as exc_info:
        client.upload(BLOB_NAME, b"data", "image/jpeg")
    assert exc_info.value.status_code == 403
    assert str(exc_info.value) == "Failed to upload to Azure: 403"


def test_transport_failure_is_wrapped(storage_config, signer):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = BlobStorageClient(storage_config, signer=signer, transport=httpx.MockTransport(boom))

    with pytest.raises(BlobStorageError) as exc_info:
        client.upload(BLOB_NAME, b"data", "image/jpeg")
    assert exc_info.value.status_code is None


def test_delete_existing_blob(storage_config, signer):
    transport = RecordingTransport(status_code=202)
    client = BlobStorageClient(storage_config, signer=signer, transport=transport)

    assert client.delete(BLOB_NAME) is True
    [request] = transport.requests
    assert request.method == "DELETE"
    assert str(request.url) == PHOTO_URL
    assert request.headers["authorization"].startswith("SharedKey coachpro:")
    assert "x-ms-blob-type" not in request.headers


def test_delete_missing_blob_is_not_an_error(storage_config, signer):
    client = BlobStorageClient(storage_config, signer=signer, transport=RecordingTransport(status_code=404))

    assert client.delete(BLOB_NAME) is False


def test_delete_error_status_raises(storage_config, signer):
    client = BlobStorageClient(storage_config, signer=signer, transport=RecordingTransport(status_code=500))

    with pytest.raises(BlobStorageError) as exc_info:
        client.delete(BLOB_NAME)
    assert exc_info.value.status_code == 500


def test_default_signer_is_built_from_config(storage_config):
    client = BlobStorageClient(storage_config)

    assert client.signer.config is storage_config


def test_delete_sends_the_path_it_signed(blob_client, transport):
    blob_client.delete("user123/a?comp=metadata")

    [request] = transport.requests
    assert request.url.raw_path == b"/progress-photos/user123/a%3Fcomp%3Dmetadata"
    assert request.url.query == b""
    assert request.headers["authorization"] == blob_client.signer.sign_for_delete("user123/a?comp=metadata")["Authorization"]


def test_upload_url_encodes_spaces(blob_client, transport):
    url = blob_client.upload("user 1/a b.jpg", b"x", "image/jpeg")

    assert url == "https://coachpro.blob.core.windows.net/progress-photos/user%201/a%20b.jpg"
    assert transport.requests[0].url.raw_path == b"/progress-photos/user%201/a%20b.jpg"


def test_unusable_blob_name_sends_nothing(blob_client, transport):
    with pytest.raises(InvalidInput):
        blob_client.delete("user123/../other/a.jpg")
    assert transport.requests == []
