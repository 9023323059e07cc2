"""Object storage client for uploaded onboarding files."""

import httpx
import structlog

from onboardhub.config import Settings
from onboardhub.exceptions import UpstreamError

logger = structlog.get_logger()


class BlobStore:
    """Thin client for a Supabase-compatible storage REST API.

    Stored paths are returned as ``<bucket>/<path>`` and accepted in the
    same form by :meth:`download`.
    """

    def __init__(self, settings: Settings):
        self.base_url = settings.storage_url.rstrip("/")
        self.service_key = settings.storage_service_key.get_secret_value()
        self.bucket = settings.storage_bucket
        self.timeout = settings.storage_timeout

    def _headers(self) -> dict[str, str]:
        if not self.service_key:
            raise UpstreamError("storage", "Storage credentials are not configured")
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }

    def _object_url(self, full_path: str) -> str:
        return f"{self.base_url}/object/{full_path}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        full_path = f"{self.bucket}/{path}"
        headers = self._headers()
        headers["Content-Type"] = content_type
        headers["x-upsert"] = "true"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self._object_url(full_path), content=data, headers=headers
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "storage_upload_failed", path=full_path, status=e.response.status_code
            )
            raise UpstreamError(
                "storage", f"Upload failed ({e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            logger.error("storage_upload_failed", path=full_path, error=str(e))
            raise UpstreamError("storage", "Upload failed") from e

        logger.info("storage_uploaded", path=full_path, size=len(data))
        return full_path

    async def download(self, full_path: str) -> bytes:
        if "/" not in full_path:
            full_path = f"{self.bucket}/{full_path}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self._object_url(full_path), headers=self._headers()
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "storage_download_failed", path=full_path, status=e.response.status_code
            )
            raise UpstreamError(
                "storage", f"Download failed ({e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            logger.error("storage_download_failed", path=full_path, error=str(e))
            raise UpstreamError("storage", "Download failed") from e

        return response.content
