"""Dropbox adapter built on the Dropbox API v2."""

from __future__ import annotations

import json
import logging
import mimetypes
import posixpath
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from cloud_drive_gateway.drives.listing import unique_by_location
from cloud_drive_gateway.drives.models import File, Provider, RecursiveFile
from cloud_drive_gateway.drives.session import OAuthSession

if TYPE_CHECKING:
    import httpx

    from cloud_drive_gateway.drives.models import ProviderConfig, Token

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"
AUTH_URL = "https://www.dropbox.com/oauth2/authorize"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
SCOPE = "files.metadata.read files.content.read"
FOLDER_MIME_TYPE = "inode/directory"


def _mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name, strict=False)
    return mime_type or "application/octet-stream"


def _to_file(entry: dict[str, Any]) -> File:
    """Convert a Dropbox ``Metadata`` entry to our ``File`` model."""
    is_folder = entry[".tag"] == "folder"
    name = entry.get("name") or ""
    return File(
        name=name,
        is_folder=is_folder,
        location=entry["id"],
        mime_type=FOLDER_MIME_TYPE if is_folder else _mime_type(name),
        size=int(entry.get("size") or 0),
    )


def _parent_path(entry: dict[str, Any]) -> str:
    return posixpath.dirname(entry.get("path_lower") or "")


class DropBox:
    """Dropbox implementation of the cloud drive contract.

    ``list_folder`` can return a whole subtree in one (paginated) call, so
    recursive listings are filtered client-side instead of walked.
    """

    provider = Provider.DROPBOX
    root_folder = ""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self.session = OAuthSession(self.provider, TOKEN_URL, http_client)

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
            "POST", f"{API_URL}/files/get_metadata", json={"path": file_id}
        )
        if data is None:
            return None
        try:
            return _to_file(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Malformed metadata for %s", file_id)
            return None

    async def list_children(self, folder_id: str) -> list[File]:
        return unique_by_location(_to_file(entry) for entry in await self._list_folder(folder_id))

    async def list_recursive(self, folder_id: str) -> list[RecursiveFile]:
        """List every file below *folder_id* with one recursive listing.

        Each file is tagged with the id of the folder holding it; files held
        directly by *folder_id* are tagged with *folder_id* as given.
        """
        entries = await self._list_folder(folder_id, recursive=True)
        folder_ids = {
            entry.get("path_lower"): entry["id"]
            for entry in entries
            if entry[".tag"] == "folder"
        }
        files = [
            RecursiveFile.from_file(
                _to_file(entry), folder_ids.get(_parent_path(entry), folder_id)
            )
            for entry in entries
            if entry[".tag"] == "file"
        ]
        return unique_by_location(files)

    async def _list_folder(self, path: str, *, recursive: bool = False) -> list[dict[str, Any]]:
        """Return raw entries of ``list_folder``, following the cursor.

        Entries that cannot be converted are skipped; if a page fails the
        entries fetched so far are returned.
        """
        entries: list[dict[str, Any]] = []
        data = await self.session.request_json(
            "POST",
            f"{API_URL}/files/list_folder",
            json={
                "path": path,
                "recursive": recursive,
                "include_deleted": False,
                "include_mounted_folders": True,
                "include_non_downloadable_files": False,
            },
        )
        while isinstance(data, dict):
            entries.extend(
                entry
                for entry in data.get("entries", [])
                if isinstance(entry, dict) and entry.get(".tag") in ("file", "folder") and entry.get("id")
            )
            if not data.get("has_more"):
                break
            data = await self.session.request_json(
                "POST",
                f"{API_URL}/files/list_folder/continue",
                json={"cursor": data.get("cursor")},
            )
        return entries

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def fetch_raw(self, file_id: str, byte_range: str | None = None) -> httpx.Response:
        headers = {"Dropbox-API-Arg": json.dumps({"path": file_id})}
        if byte_range:
            headers["Range"] = byte_range
        return await self.session.open_stream(
            "POST", f"{CONTENT_URL}/files/download", headers=headers
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
            "token_access_type": "offline",
            "scope": SCOPE,
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Token | None:
        return await self.session.exchange_code(code)
