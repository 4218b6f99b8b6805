"""Google Drive adapter built on the Drive REST API v3."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from cloud_drive_gateway.drives.listing import unique_by_location, walk_recursive
from cloud_drive_gateway.drives.models import File, Provider, RecursiveFile
from cloud_drive_gateway.drives.session import OAuthSession

if TYPE_CHECKING:
    import httpx

    from cloud_drive_gateway.drives.models import ProviderConfig, Token

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SCOPE = "https://www.googleapis.com/auth/drive.readonly"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_FILE_FIELDS = "id, name, mimeType, size, parents"
_PAGE_SIZE = 1000


def _to_file(item: dict[str, Any]) -> File:
    """Convert a Drive ``File`` resource to our ``File`` model."""
    mime_type = item.get("mimeType") or "application/octet-stream"
    return File(
        name=item.get("name") or "",
        is_folder=mime_type == FOLDER_MIME_TYPE,
        location=item["id"],
        mime_type=mime_type,
        size=int(item.get("size") or 0),
    )


def _escape(value: str) -> str:
    """Escape a value for use inside a quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDrive:
    """Google Drive implementation of the cloud drive contract.

    Drive only lists one folder level per call, so recursive listings are
    walked folder by folder.
    """

    provider = Provider.GOOGLE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        root_folder: str = "root",
        max_concurrency: int | None = None,
    ) -> None:
        self.session = OAuthSession(self.provider, TOKEN_URL, http_client)
        self.root_folder = root_folder
        self._max_concurrency = max_concurrency

    def configure(self, config: ProviderConfig) -> None:
        self.session.config = config

    @property
    def token(self) -> Token | None:
        return self.session.token

    @token.setter
    def token(self, token: Token | None) -> None:
        self.session.token = token

    def clear_token(self) -> None:
        self.session.clear_token()

    # ------------------------------------------------------------------
    # Metadata / listing
    # ------------------------------------------------------------------

    async def get_metadata(self, file_id: str) -> File | None:
        data = await self.session.request_json(
            "GET",
            f"{DRIVE_API}/files/{quote(file_id, safe='')}",
            params={"fields": _FILE_FIELDS},
        )
        if data is None:
            return None
        try:
            return _to_file(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Malformed metadata for %s", file_id)
            return None

    async def list_children(self, folder_id: str) -> list[File]:
        """List a folder, following ``nextPageToken`` until exhausted.

        If a page fails the pages fetched so far are returned.
        """
        files: list[File] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "q": f"'{_escape(folder_id)}' in parents and trashed = false",
                "fields": f"nextPageToken, files({_FILE_FIELDS})",
                "orderBy": "folder, name",
                "pageSize": _PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self.session.request_json("GET", f"{DRIVE_API}/files", params=params)
            if data is None:
                break
            try:
                page = [_to_file(item) for item in data.get("files", [])]
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.exception("Malformed listing page for folder %s", folder_id)
                break
            files.extend(page)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return unique_by_location(files)

    async def list_recursive(self, folder_id: str) -> list[RecursiveFile]:
        return await walk_recursive(
            self.list_children, folder_id, max_concurrency=self._max_concurrency
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def fetch_raw(self, file_id: str, byte_range: str | None = None) -> httpx.Response:
        headers = {"Range": byte_range} if byte_range else None
        return await self.session.open_stream(
            "GET",
            f"{DRIVE_API}/files/{quote(file_id, safe='')}",
            params={"alt": "media"},
            headers=headers,
        )

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def build_auth_url(self, state: str | None = None) -> str:
        config = self.session.config
        params = {
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "response_type": "code",
            "scope": SCOPE,
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Token | None:
        return await self.session.exchange_code(code)
