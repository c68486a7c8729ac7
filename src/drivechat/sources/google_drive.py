"""Google Drive document source using the Drive v3 REST API."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from drivechat.errors import DocumentSourceError
from drivechat.ingest.models import RemoteFile

LOGGER = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_SCOPES = ("https://www.googleapis.com/auth/drive.readonly",)
TOKEN_URI = "https://oauth2.googleapis.com/token"
PAGE_SIZE = 100

TokenProvider = Callable[[], Awaitable[str]]


class ServiceAccountTokenProvider:
    """Mint and cache OAuth access tokens for a service account."""

    def __init__(self, client_email: str, private_key: str) -> None:
        info = {
            "type": "service_account",
            "client_email": client_email,
            "private_key": private_key,
            "token_uri": TOKEN_URI,
        }
        self._credentials = service_account.Credentials.from_service_account_info(
            info, scopes=list(DRIVE_SCOPES)
        )
        self._lock = asyncio.Lock()

    async def __call__(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                LOGGER.info("Refreshing Google Drive access token for %s", self._credentials.service_account_email)
                await asyncio.to_thread(self._credentials.refresh, Request())
            return str(self._credentials.token)


class GoogleDriveSource:
    """List and download the files of a Drive folder."""

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self._token_provider = token_provider
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_service_account(cls, client_email: str, private_key: str, **kwargs) -> "GoogleDriveSource":
        return cls(ServiceAccountTokenProvider(client_email, private_key), **kwargs)

    async def list_files(self, folder_id: str) -> List[RemoteFile]:
        files: List[RemoteFile] = []
        page_token: Optional[str] = None
        while True:
            params = {
                "q": f"'{folder_id}' in parents and trashed = false",
                "fields": "nextPageToken, files(id, name, mimeType, webViewLink)",
                "pageSize": str(PAGE_SIZE),
            }
            if page_token:
                params["pageToken"] = page_token
            response = await self._request("GET", "/files", params=params)
            payload = response.json()
            for item in payload.get("files", []):
                files.append(
                    RemoteFile(
                        id=str(item["id"]),
                        name=str(item.get("name") or item["id"]),
                        mime_type=str(item.get("mimeType") or "application/octet-stream"),
                        web_view_link=item.get("webViewLink"),
                    )
                )
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        LOGGER.info("Listed %d files in Drive folder %s", len(files), folder_id)
        return files

    async def fetch_bytes(self, file_id: str) -> bytes:
        response = await self._request("GET", f"/files/{file_id}", params={"alt": "media"})
        return response.content

    async def _request(self, method: str, path: str, *, params: dict[str, str]) -> httpx.Response:
        token = await self._token_provider()
        headers = {"Authorization": f"Bearer {token}"}
        url = f"{DRIVE_API_URL}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, params=params, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise DocumentSourceError(f"Drive request {method} {path} failed: {exc}") from exc

        if response.status_code != 200:
            LOGGER.error(
                "Drive request failed: %s %s -> %d %s",
                method,
                path,
                response.status_code,
                response.text[:200],
            )
            raise DocumentSourceError(
                f"Drive request {method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response
