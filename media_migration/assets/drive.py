"""Google Drive source adapter (download original photo bytes by file id).

Authentication uses a long-lived OAuth pair: the access token is used as-is
until Drive answers 401, then it is exchanged once via the refresh-token grant
and the request is retried.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import MigrationSettings
from .results import FetchResult

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class SourceConfigError(Exception):
    """Source provider credentials are missing or unusable."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class TokenRefreshError(Exception):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class GoogleDriveSource:
    def __init__(
        self,
        access_token: str | None,
        refresh_token: str | None,
        client_id: str | None,
        client_secret: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        api_url: str = DRIVE_API_URL,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout_seconds: float = 60.0,
    ):
        credentials = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        missing = [name for name, value in credentials.items() if not (value or "").strip()]
        if missing:
            raise SourceConfigError(
                "Google Drive credentials not configured (missing: " + ", ".join(missing) + ")",
                missing=missing,
            )

        self.access_token = access_token.strip()
        self.refresh_token = refresh_token.strip()
        self.client_id = client_id.strip()
        self.client_secret = client_secret.strip()
        self.api_url = api_url.rstrip("/")
        self.token_url = token_url

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
        )

    @classmethod
    def from_settings(
        cls,
        settings: MigrationSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> "GoogleDriveSource":
        return cls(
            settings.google_drive_access_token,
            settings.google_drive_refresh_token,
            settings.google_client_id,
            settings.google_client_secret,
            client=client,
            api_url=settings.google_drive_api_url,
            token_url=settings.google_token_url,
            timeout_seconds=settings.source_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def refresh_access_token(self) -> str:
        response = await self.client.post(
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 200:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"raw_response": response.text[:500]}
            raise TokenRefreshError(
                f"Token refresh failed: {response.status_code}",
                details=error_data,
            )

        try:
            data = response.json()
        except ValueError:
            raise TokenRefreshError(
                "Invalid token response",
                details={"raw_response": response.text[:500]},
            ) from None
        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenRefreshError("Invalid token response: missing access_token", details=data)

        self.access_token = token
        # Google only rotates the refresh token occasionally.
        if isinstance(data.get("refresh_token"), str) and data["refresh_token"]:
            self.refresh_token = data["refresh_token"]
        return token

    async def _get_media(self, file_id: str) -> httpx.Response:
        return await self.client.get(
            f"{self.api_url}/files/{file_id}",
            params={"alt": "media", "supportsAllDrives": "true"},
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    async def fetch(self, source_ref: str) -> FetchResult:
        """Download the file bytes; every failure comes back as a result."""
        if not isinstance(source_ref, str) or not source_ref.strip():
            return FetchResult.failure("source reference required")

        file_id = source_ref.strip()
        try:
            response = await self._get_media(file_id)
            if response.status_code == 401:
                logger.info("Drive access token rejected; refreshing")
                await self.refresh_access_token()
                response = await self._get_media(file_id)
            response.raise_for_status()
        except TokenRefreshError as e:
            logger.warning("Drive token refresh failed for %s: %s", file_id, e)
            return FetchResult.failure(str(e))
        except httpx.HTTPStatusError as e:
            logger.warning("Drive download failed for %s: HTTP %s", file_id, e.response.status_code)
            return FetchResult.failure(f"download failed ({e.response.status_code}): {file_id}")
        except httpx.HTTPError as e:
            logger.warning("Drive download failed for %s: %s", file_id, e)
            return FetchResult.failure(f"download failed: {e}")

        return FetchResult.success(
            response.content,
            content_type=response.headers.get("content-type"),
        )
