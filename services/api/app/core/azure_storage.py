"""
Azure Blob Storage request signing. Used for read (display) URLs and for upload/delete requests.
Read access is granted with a service SAS appended to the blob URL; uploads and deletes carry a
SharedKey Authorization header. Both are computed locally from the account key, no round trip
to the storage service.
"""
import base64
import binascii
import hashlib
import hmac
import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from email.utils import format_datetime
from typing import Callable, NamedTuple
from urllib.parse import quote, unquote, urlencode, urlparse

from app.core.config import DEFAULT_CONTAINER_NAME

logger = logging.getLogger(__name__)

# Both string-to-sign layouts below are the ones defined for this version.
API_VERSION = "2020-10-02"
DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"
# Service SAS permission letters, in the order the service expects them.
PERMISSION_ORDER = "racwd"
SIGNED_RESOURCE_BLOB = "b"
SAS_PROTOCOL = "https"
BLOB_TYPE = "BlockBlob"

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class StorageSigningError(Exception):
    """Base class for blob signing failures."""


class ConfigurationError(StorageSigningError):
    """Storage account name or key missing or unusable."""


class InvalidInput(StorageSigningError):
    """Caller passed a malformed blob URL, path, duration or header value."""


class CryptoError(StorageSigningError):
    """Account key could not be imported or the digest could not be computed."""


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """Parse 'Key=Value;Key=Value' storage connection strings. Values may contain '=' (base64 keys)."""
    out: dict[str, str] = {}
    for part in connection_string.split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep or not key:
            raise ConfigurationError("Malformed storage connection string")
        out[key] = value
    return out


@dataclass(frozen=True)
class StorageConfig:
    account_name: str
    account_key: str  # base64, as issued by the portal
    container_name: str = DEFAULT_CONTAINER_NAME
    endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX

    @property
    def configured(self) -> bool:
        return bool(self.account_name and self.account_key)

    def __repr__(self) -> str:
        # never print the key
        return (
            f"StorageConfig(account_name={self.account_name!r}, account_key_set={bool(self.account_key)}, "
            f"container_name={self.container_name!r}, endpoint_suffix={self.endpoint_suffix!r})"
        )

    @classmethod
    def from_settings(cls, settings) -> "StorageConfig":
        """Explicit account name/key win over the connection string."""
        account_name = (settings.azure_storage_account_name or "").strip()
        account_key = (settings.azure_storage_account_key or "").strip()
        endpoint_suffix = DEFAULT_ENDPOINT_SUFFIX
        conn = (settings.azure_storage_connection_string or "").strip()
        if conn:
            parts = parse_connection_string(conn)
            account_name = account_name or parts.get("AccountName", "")
            account_key = account_key or parts.get("AccountKey", "")
            endpoint_suffix = parts.get("EndpointSuffix") or DEFAULT_ENDPOINT_SUFFIX
        return cls(
            account_name=account_name,
            account_key=account_key,
            container_name=settings.azure_storage_container_name or DEFAULT_CONTAINER_NAME,
            endpoint_suffix=endpoint_suffix,
        )


@dataclass(frozen=True)
class SigningRequest:
    account_name: str
    account_key: bytes = field(repr=False)
    container: str
    blob_path: str
    permissions: str
    start_time: datetime
    expiry_time: datetime
    protocol: str = SAS_PROTOCOL
    api_version: str = API_VERSION

    def __post_init__(self):
        if not self.container:
            raise InvalidInput("Container name is required")
        if not self.blob_path:
            raise InvalidInput("Blob path is required")
        if not self.start_time < self.expiry_time:
            raise InvalidInput("Start time must be before expiry time")
        if self.api_version != API_VERSION:
            raise InvalidInput(f"Only SAS version {API_VERSION} is supported")
        _check_permissions(self.permissions)

    @property
    def canonicalized_resource(self) -> str:
        return f"/blob/{self.account_name}/{self.container}/{self.blob_path}"


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: datetime


class BlobLocation(NamedTuple):
    url: str  # without query string or fragment
    container: str
    blob_path: str  # percent-decoded


def _check_permissions(permissions: str) -> None:
    if not permissions:
        raise InvalidInput("Permissions are required")
    positions = [PERMISSION_ORDER.find(p) for p in permissions]
    if -1 in positions:
        raise InvalidInput(f"Unsupported SAS permissions: {permissions!r}")
    if positions != sorted(set(positions)):
        raise InvalidInput(f"SAS permissions must be unique and in '{PERMISSION_ORDER}' order: {permissions!r}")


def format_sas_time(dt: datetime) -> str:
    """ISO-8601 UTC without fractional seconds, e.g. 2023-11-14T22:13:20Z."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_blob_url(blob_url: str) -> BlobLocation:
    """Split https://{host}/{container}/{blob...} into its parts. Raises InvalidInput."""
    if not isinstance(blob_url, str) or not blob_url.strip():
        raise InvalidInput("blobUrl is required")
    try:
        parsed = urlparse(blob_url.strip())
    except ValueError as e:
        raise InvalidInput("Invalid blob URL format") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInput("Invalid blob URL format")
    segments = [s for s in parsed.path.split("/") if s]
    if len(segments) < 2:
        raise InvalidInput("Invalid blob URL format")
    return BlobLocation(
        url=parsed._replace(query="", fragment="").geturl(),
        container=unquote(segments[0]),
        blob_path="/".join(unquote(s) for s in segments[1:]),
    )


def strip_query(url: str) -> str:
    """URL without query string or fragment, safe to log."""
    return url.split("#", 1)[0].split("?", 1)[0]


def encode_blob_name(blob_name: str) -> str:
    """Percent-encode a blob name for use in a request path and its SharedKey resource."""
    if not blob_name:
        raise InvalidInput("Blob name is required")
    segments = blob_name.split("/")
    if any(s in ("", ".", "..") for s in segments):
        raise InvalidInput(f"Invalid blob name: {blob_name!r}")
    return quote(blob_name, safe="/")


def build_blob_url(account: str, container: str, blob_name: str, endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX) -> str:
    return f"https://{account}.blob.{endpoint_suffix}/{container}/{encode_blob_name(blob_name)}"


def sanitize_name(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", value)


def generate_blob_name(user_id: str, file_name: str, folder: str | None = None, now_ms: int | None = None) -> str:
    """Unique blob name for a user upload: {user_id}[/{folder}]/{timestamp_ms}-{file_name}."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    folders = [sanitize_name(s) for s in (folder or "").split("/") if s.strip(". ")]
    base_path = "/".join([sanitize_name(user_id), *folders])
    return f"{base_path}/{timestamp}-{sanitize_name(file_name)}"


def progress_photo_blob_name(client_id: str, pose_type: str, file_name: str, now_ms: int | None = None) -> str:
    """Blob name for a progress photo: {client_id}/{timestamp_ms}-{pose_type}.{ext}."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    _, dot, ext = (file_name or "").rpartition(".")
    extension = sanitize_name(ext) if dot and ext else "jpg"
    return f"{sanitize_name(client_id)}/{timestamp}-{sanitize_name(pose_type)}.{extension}"


# --- String-to-sign layouts. Field order is fixed by the storage service. ---

def sas_string_to_sign(req: SigningRequest) -> str:
    """Service SAS (blob) string-to-sign for version 2020-10-02."""
    return "\n".join([
        req.permissions,
        format_sas_time(req.start_time),
        format_sas_time(req.expiry_time),
        req.canonicalized_resource,
        "",  # signed identifier
        "",  # signed IP
        req.protocol,
        req.api_version,
        "",  # signed resource
        "",  # rscc
        "",  # rscd
        "",  # rsce
        "",  # rscl
        "",  # rsct
    ])


def shared_key_string_to_sign(
    verb: str,
    account_name: str,
    container: str,
    encoded_blob_name: str,
    ms_headers: dict[str, str],
    *,
    content_length: str = "",
    content_type: str = "",
) -> str:
    """SharedKey string-to-sign for Blob service requests without query parameters."""
    canonical_headers = [f"{name}:{ms_headers[name]}" for name in sorted(ms_headers)]
    return "\n".join([
        verb,
        "",  # Content-Encoding
        "",  # Content-Language
        content_length,
        "",  # Content-MD5
        content_type,
        "",  # Date (x-ms-date is used instead)
        "",  # If-Modified-Since
        "",  # If-Match
        "",  # If-None-Match
        "",  # If-Unmodified-Since
        "",  # Range
        *canonical_headers,
        f"/{account_name}/{container}/{encoded_blob_name}",
    ])


def decode_account_key(account_key: str) -> bytes:
    try:
        return base64.b64decode(account_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("Storage account key is not valid base64") from e


def compute_signature(key: bytes, string_to_sign: str) -> str:
    """base64(HMAC-SHA256(key, utf8(string_to_sign)))."""
    try:
        digest = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
    except (TypeError, ValueError) as e:
        raise CryptoError("Could not compute HMAC-SHA256 signature") from e
    return base64.b64encode(digest).decode("ascii")


class BlobSasSigner:
    """Mints read SAS URLs and SharedKey headers for one storage account."""

    def __init__(self, config: StorageConfig, clock: Callable[[], datetime] = utcnow):
        self.config = config
        self._clock = clock

    def _require_credentials(self) -> None:
        if not self.config.configured:
            raise ConfigurationError("Azure Storage credentials not configured")

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc).replace(microsecond=0)

    def _sign(self, string_to_sign: str) -> str:
        key = decode_account_key(self.config.account_key)
        return compute_signature(key, string_to_sign)

    def sign(self, blob_url: str, expires_in_minutes: float = 60) -> SignedUrl:
        """Return blob_url with a read-only SAS valid from now for expires_in_minutes."""
        self._require_credentials()
        if isinstance(expires_in_minutes, bool) or not isinstance(expires_in_minutes, (int, float)):
            raise InvalidInput("expiresInMinutes must be a number")
        if not math.isfinite(expires_in_minutes) or expires_in_minutes <= 0:
            raise InvalidInput("expiresInMinutes must be positive")

        location = parse_blob_url(blob_url)
        start = self._now()
        try:
            expiry = (start + timedelta(minutes=expires_in_minutes)).replace(microsecond=0)
        except OverflowError as e:
            raise InvalidInput("expiresInMinutes is too large") from e
        if expiry <= start:
            raise InvalidInput("expiresInMinutes must be at least one second")
        req = SigningRequest(
            account_name=self.config.account_name,
            account_key=decode_account_key(self.config.account_key),
            container=location.container,
            blob_path=location.blob_path,
            permissions="r",
            start_time=start,
            expiry_time=expiry,
        )
        signature = compute_signature(req.account_key, sas_string_to_sign(req))
        query = urlencode({
            "sv": req.api_version,
            "st": format_sas_time(req.start_time),
            "se": format_sas_time(req.expiry_time),
            "sr": SIGNED_RESOURCE_BLOB,
            "sp": req.permissions,
            "spr": req.protocol,
            "sig": signature,
        })
        logger.debug("sas: signed container=%s blob=%s expires=%s", req.container, req.blob_path, format_sas_time(expiry))
        return SignedUrl(url=f"{location.url}?{query}", expires_at=expiry)

    def _ms_date(self) -> str:
        return format_datetime(self._now(), usegmt=True)

    def sign_for_upload(
        self,
        blob_name: str,
        content_length: int,
        content_type: str,
        *,
        container: str | None = None,
    ) -> dict[str, str]:
        """Headers for a Put Blob (BlockBlob) request, including the SharedKey Authorization."""
        self._require_credentials()
        container = container or self.config.container_name
        encoded_name = encode_blob_name(blob_name)
        if isinstance(content_length, bool) or not isinstance(content_length, int) or content_length <= 0:
            raise InvalidInput("Content length must be a positive integer")
        ms_headers = {
            "x-ms-blob-type": BLOB_TYPE,
            "x-ms-date": self._ms_date(),
            "x-ms-version": API_VERSION,
        }
        string_to_sign = shared_key_string_to_sign(
            "PUT",
            self.config.account_name,
            container,
            encoded_name,
            ms_headers,
            content_length=str(content_length),
            content_type=content_type,
        )
        return {
            **ms_headers,
            "Content-Type": content_type,
            "Content-Length": str(content_length),
            "Authorization": f"SharedKey {self.config.account_name}:{self._sign(string_to_sign)}",
        }

    def sign_for_delete(self, blob_name: str, *, container: str | None = None) -> dict[str, str]:
        """Headers for a Delete Blob request."""
        self._require_credentials()
        container = container or self.config.container_name
        encoded_name = encode_blob_name(blob_name)
        ms_headers = {
            "x-ms-date": self._ms_date(),
            "x-ms-version": API_VERSION,
        }
        string_to_sign = shared_key_string_to_sign("DELETE", self.config.account_name, container, encoded_name, ms_headers)
        return {
            **ms_headers,
            "Authorization": f"SharedKey {self.config.account_name}:{self._sign(string_to_sign)}",
        }
