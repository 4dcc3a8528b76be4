"""Supabase Storage client for uploading, downloading and signing artifacts."""

from urllib.parse import quote

import httpx
import structlog

from bedtime.core.config import Settings
from bedtime.services.exceptions import (
    PermanentError,
    StorageAuthError,
    StorageNetworkError,
    StorageNotFoundError,
    StorageRequestError,
    StorageUnavailableError,
)
from bedtime.services.storage.artifact_store import PNG_CONTENT_TYPE

logger = structlog.get_logger(__name__)


class SupabaseStorageClient:
    """Artifact store backed by the Supabase Storage REST API."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        uploads_bucket: str = "uploads",
        images_bucket: str = "images",
        signed_url_ttl_seconds: int = 3600,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize Supabase Storage client.

        Args:
            base_url: Supabase project URL (from SUPABASE_URL env var)
            service_role_key: Service role key (from SUPABASE_SERVICE_ROLE_KEY env var)
            uploads_bucket: Private bucket holding source photos and character sheets
            images_bucket: Bucket holding generated cover and page illustrations
            signed_url_ttl_seconds: Default lifetime of signed URLs (default: 1 hour)
            timeout_seconds: Per-request timeout
            http_client: Optional shared client; a short-lived client is used per call otherwise
        """
        self.storage_url = f"{base_url.rstrip('/')}/storage/v1"
        self._uploads_bucket = uploads_bucket
        self._images_bucket = images_bucket
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    @property
    def uploads_bucket(self) -> str:
        return self._uploads_bucket

    @property
    def images_bucket(self) -> str:
        return self._images_bucket

    async def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = PNG_CONTENT_TYPE
    ) -> str:
        """Upload bytes, overwriting any existing object at the same key.

        Args:
            bucket: Storage bucket name
            path: Object key within the bucket (e.g., "<book_id>/cover.png")
            data: Raw object bytes
            content_type: MIME type stored with the object

        Returns:
            The object key that was written

        Raises:
            TransientError: Network timeout, rate limit (429), service unavailable (5xx)
            PermanentError: Invalid key (401/403), bad request (400)
        """
        headers = {**self.headers, "Content-Type": content_type, "x-upsert": "true"}
        await self._send(
            "POST",
            f"{self.storage_url}/object/{bucket}/{_quote_key(path)}",
            action=f"upload {bucket}/{path}",
            headers=headers,
            content=data,
        )
        logger.info("storage.uploaded", bucket=bucket, path=path, size_bytes=len(data))
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        """Download object bytes.

        Raises:
            StorageNotFoundError: Object does not exist
            TransientError: Network timeout, rate limit (429), service unavailable (5xx)
        """
        response = await self._send(
            "GET",
            f"{self.storage_url}/object/authenticated/{bucket}/{_quote_key(path)}",
            action=f"download {bucket}/{path}",
            headers=self.headers,
        )
        return response.content

    async def create_signed_url(self, bucket: str, path: str, expires_in: int | None = None) -> str:
        """Issue a time-limited URL for reading a private object.

        Args:
            bucket: Storage bucket name
            path: Object key within the bucket
            expires_in: Lifetime in seconds (default: signed_url_ttl_seconds)

        Returns:
            Absolute signed URL
        """
        response = await self._send(
            "POST",
            f"{self.storage_url}/object/sign/{bucket}/{_quote_key(path)}",
            action=f"sign {bucket}/{path}",
            headers=self.headers,
            json={"expiresIn": expires_in or self.signed_url_ttl_seconds},
        )
        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageRequestError(f"No signedURL in response for {bucket}/{path}")
        if signed_path.startswith("http"):
            return signed_path
        return f"{self.storage_url}/{signed_path.lstrip('/')}"

    async def _send(self, method: str, url: str, action: str, **kwargs) -> httpx.Response:
        try:
            if self._http_client is not None:
                response = await self._http_client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageNetworkError(
                f"Storage {action} timed out after {self.timeout_seconds}s: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Storage {action} network error: {e}") from e

        _raise_for_status(response, action)
        return response


def _raise_for_status(response: httpx.Response, action: str) -> None:
    """Translate a storage HTTP status into the pipeline error hierarchy."""
    code = response.status_code
    if code < 400:
        return
    if code == 429 or code >= 500:
        raise StorageUnavailableError(f"Storage {action} unavailable ({code}): {response.text}")
    if code in (401, 403):
        raise StorageAuthError(
            f"Storage {action} unauthorized ({code}). "
            "Check SUPABASE_SERVICE_ROLE_KEY configuration."
        )
    if code == 404:
        raise StorageNotFoundError(f"Storage {action}: object not found")
    if code == 400:
        # Supabase reports missing objects as 400 with an embedded 404 status
        if '"404"' in response.text or "not found" in response.text.lower():
            raise StorageNotFoundError(f"Storage {action}: object not found")
        raise StorageRequestError(f"Storage {action} bad request: {response.text}")
    raise PermanentError(f"Storage {action} failed ({code}): {response.text}")


def _quote_key(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")


def build_artifact_store(settings: Settings) -> SupabaseStorageClient:
    """Create the production artifact store from settings."""
    return SupabaseStorageClient(
        base_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        uploads_bucket=settings.uploads_bucket,
        images_bucket=settings.images_bucket,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        timeout_seconds=settings.storage_timeout_seconds,
    )
