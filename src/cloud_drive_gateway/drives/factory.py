"""The cloud drive contract and per-request adapter construction."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from cloud_drive_gateway.drives.dropbox import DropBox
from cloud_drive_gateway.drives.google import GoogleDrive
from cloud_drive_gateway.drives.models import Provider
from cloud_drive_gateway.errors import InvalidProviderError

if TYPE_CHECKING:
    import httpx

    from cloud_drive_gateway.config import Settings
    from cloud_drive_gateway.drives.models import File, ProviderConfig, RecursiveFile, Token


class CloudDrive(Protocol):
    """Capabilities every storage backend adapter offers.

    Metadata and listing calls never raise on backend failure: they return
    ``None`` or an empty list.  Any authenticated call raises
    ``AuthRequiredError`` when no usable token can be obtained.
    """

    provider: Provider
    root_folder: str
    token: Token | None

    def configure(self, config: ProviderConfig) -> None: ...

    def clear_token(self) -> None: ...

    async def get_metadata(self, file_id: str) -> File | None: ...

    async def list_children(self, folder_id: str) -> list[File]: ...

    async def list_recursive(self, folder_id: str) -> list[RecursiveFile]: ...

    async def fetch_raw(self, file_id: str, byte_range: str | None = None) -> httpx.Response: ...

    def build_auth_url(self, state: str | None = None) -> str: ...

    async def exchange_code(self, code: str) -> Token | None: ...


def create_drive(
    provider: str, settings: Settings, http_client: httpx.AsyncClient
) -> CloudDrive:
    """Construct and configure a fresh adapter for *provider*.

    Adapters hold the request's token, so one must never outlive the
    request it was created for.

    Raises
    ------
    InvalidProviderError
        If *provider* is not a supported provider tag.
    """
    try:
        tag = Provider(provider)
    except ValueError:
        raise InvalidProviderError(provider) from None

    drive: CloudDrive
    match tag:
        case Provider.GOOGLE:
            concurrency = settings.traversal_concurrency or None
            drive = GoogleDrive(
                http_client,
                root_folder=settings.google_root_folder,
                max_concurrency=concurrency,
            )
        case Provider.DROPBOX:
            drive = DropBox(http_client)

    drive.configure(settings.provider_config(tag))
    return drive
