from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
import asyncio
import hashlib
import hmac
import logging
import time
from urllib.parse import urlencode

import httpx

from loan_engine.core.settings import Settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when a document could not be stored."""


def _sign_local_url(secret_key: str, object_key: str, expires: int) -> str:
    """Create HMAC-SHA256 signature for a local document URL."""
    message = f"{object_key}:{expires}"
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_local_url_signature(
    secret_key: str, object_key: str, expires: int, signature: str
) -> bool:
    """Verify HMAC signature and expiry for a local document URL.

    Returns False if the signature is invalid or the URL has expired.
    """
    if int(time.time()) > expires:
        return False
    expected = _sign_local_url(secret_key, object_key, expires)
    return hmac.compare_digest(expected, signature)


class DocumentStorageAdapter(ABC):
    provider: str = "local"

    @abstractmethod
    async def upload(self, object_key: str, content: bytes, content_type: str) -> str:
        """Store the document and return a URL it can be fetched from."""


class LocalFileSystemAdapter(DocumentStorageAdapter):
    def __init__(
        self,
        base_path: str,
        base_url: str,
        *,
        signing_key: str = "",
        expires_in: int = 3600,
    ):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.expires_in = expires_in
        self.provider = "local"

    def _resolve_safe_path(self, object_key: str) -> Path:
        if "\\" in object_key:
            raise ValueError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if not object_key or key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved != base and base not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def resolve_path(self, object_key: str) -> Path:
        return self._resolve_safe_path(object_key)

    def generate_download_url(self, object_key: str, expires_in: int | None = None) -> str:
        expires = int(time.time()) + (expires_in or self.expires_in)
        sig = _sign_local_url(self.signing_key, object_key, expires)
        params = urlencode({"key": object_key, "expires": expires, "signature": sig})
        return f"{self.base_url}/api/v1/documents/local-content?{params}"

    def write_file(self, object_key: str, content: bytes) -> Path:
        path = self._resolve_safe_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    async def upload(self, object_key: str, content: bytes, content_type: str) -> str:
        try:
            path = await asyncio.to_thread(self.write_file, object_key, content)
        except OSError as exc:
            raise StorageError(f"failed to write document {object_key}: {exc}") from exc
        logger.info("Stored document %s (%d bytes) at %s", object_key, len(content), path)
        return self.generate_download_url(object_key)


class HttpUploadAdapter(DocumentStorageAdapter):
    """Multipart upload to a file-hosting endpoint answering ``{"success", "link"}``."""

    def __init__(
        self,
        upload_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.upload_url = upload_url
        self.timeout = timeout
        self.transport = transport
        self.provider = "http"

    async def upload(self, object_key: str, content: bytes, content_type: str) -> str:
        filename = PurePosixPath(object_key).name
        files = {"file": (filename, content, content_type)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.upload_url, files=files)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StorageError(f"failed to upload document {object_key}: {exc}") from exc

        if not isinstance(payload, dict) or not payload.get("success") or not payload.get("link"):
            raise StorageError(f"upload failed: {payload}")
        logger.info("Uploaded document %s to %s", object_key, self.upload_url)
        return str(payload["link"])


def get_storage_adapter(settings: Settings) -> DocumentStorageAdapter:
    if settings.storage_provider == "http":
        return HttpUploadAdapter(settings.document_upload_url)
    return LocalFileSystemAdapter(
        settings.local_upload_dir,
        settings.public_base_url,
        signing_key=settings.secret_key,
        expires_in=settings.document_url_expiry_seconds,
    )
