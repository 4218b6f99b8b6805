"""Per-provider routes, the authorization gate and share-link redemption."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from cloud_drive_gateway.auth import encode_token, is_authorized
from cloud_drive_gateway.config import Settings, get_settings
from cloud_drive_gateway.drives.factory import CloudDrive, create_drive
from cloud_drive_gateway.drives.models import Disposition, File
from cloud_drive_gateway.errors import AuthRequiredError, InvalidShareLinkError
from cloud_drive_gateway.links import ShareLinkStore
from cloud_drive_gateway.proxy import relay

logger = logging.getLogger(__name__)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Return the backend HTTP client opened by the app lifespan."""
    return request.app.state.http_client


def get_link_store(request: Request) -> ShareLinkStore:
    """Return the share-link store opened by the app lifespan."""
    return request.app.state.link_store


SettingsDep = Annotated[Settings, Depends(get_settings)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
LinkStoreDep = Annotated[ShareLinkStore, Depends(get_link_store)]
RangeHeader = Annotated[str | None, Header(alias="range")]


def authorized_drive(
    request: Request,
    provider: str,
    settings: SettingsDep,
    http_client: HttpClientDep,
) -> CloudDrive:
    """Build this request's drive and decide whether the caller may use it.

    The drive is attached to ``request.state`` so that error handlers can
    reach it.  Unauthorized callers get ``AuthRequiredError``, which the app
    turns into a redirect to the consent screen.
    """
    drive = create_drive(provider, settings, http_client)
    request.state.drive = drive

    route = request.url.path.removeprefix(f"/{provider}") or "/"
    authorized = is_authorized(
        drive,
        route,
        code=request.query_params.get("code"),
        authorization=request.headers.get("Authorization"),
    )
    if not authorized:
        logger.info("[%s] Unauthorized request to %s", provider, route)
        raise AuthRequiredError(drive.provider)
    return drive


DriveDep = Annotated[CloudDrive, Depends(authorized_drive)]


@contextmanager
def scoped_token(drive: CloudDrive) -> Iterator[CloudDrive]:
    """Clear the drive's token when the block exits, however it exits."""
    try:
        yield drive
    finally:
        drive.clear_token()


async def require_file(drive: CloudDrive, file_id: str) -> File:
    file = await drive.get_metadata(file_id)
    if file is None:
        raise HTTPException(status_code=404, detail="Not Found")
    if file.is_folder:
        raise HTTPException(status_code=400, detail="Not a file")
    return file


async def require_folder(drive: CloudDrive, folder_id: str) -> File:
    folder = await drive.get_metadata(folder_id)
    if folder is None:
        raise HTTPException(status_code=404, detail="Not Found")
    if not folder.is_folder:
        raise HTTPException(status_code=400, detail="Not a folder")
    return folder


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = "&".join(filter(None, [parts.query, urlencode(params)]))
    return urlunsplit(parts._replace(query=query))


router = APIRouter(prefix="/{provider}")


@router.get("/auth")
async def auth(drive: DriveDep, state: str | None = None) -> RedirectResponse:
    """Redirect to the provider's consent screen."""
    return RedirectResponse(drive.build_auth_url(state), status_code=302)


@router.get("/oauth2callback")
async def oauth2callback(
    drive: DriveDep,
    settings: SettingsDep,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Exchange the authorization code and hand the token back to the client.

    Clients that passed a ``state`` receive ``{"token": <blob>}``; browsers
    without one are redirected to the configured post-auth page with the
    blob in the ``token`` query parameter.
    """
    if not code:
        raise HTTPException(status_code=400, detail="Missing code")

    with scoped_token(drive):
        token = await drive.exchange_code(code)
    if token is None:
        raise HTTPException(status_code=500, detail="Failed to get token")

    blob = encode_token(token)
    if state:
        return JSONResponse({"token": blob})
    return RedirectResponse(
        _with_query(settings.post_auth_redirect_url, token=blob), status_code=302
    )


@router.get("")
@router.get("/")
async def list_root(drive: DriveDep) -> JSONResponse:
    """List the immediate children of the provider's root folder."""
    with scoped_token(drive):
        files = await drive.list_children(drive.root_folder)
    return JSONResponse([file.to_dict() for file in files])


@router.get("/file/{file_id}")
async def file_metadata(file_id: str, drive: DriveDep) -> JSONResponse:
    with scoped_token(drive):
        file = await require_file(drive, file_id)
    return JSONResponse(file.to_dict())


@router.get("/file/{file_id}/stream")
async def stream_file(file_id: str, drive: DriveDep, range_header: RangeHeader = None) -> Response:
    """Stream a file inline, forwarding the caller's ``Range`` header."""
    with scoped_token(drive):
        file = await require_file(drive, file_id)
        upstream = await drive.fetch_raw(file_id, range_header)
    return await relay(upstream, file, Disposition.INLINE)


@router.get("/file/{file_id}/download")
async def download_file(
    file_id: str, drive: DriveDep, range_header: RangeHeader = None
) -> Response:
    """Serve a file as an attachment."""
    with scoped_token(drive):
        file = await require_file(drive, file_id)
        upstream = await drive.fetch_raw(file_id, range_header)
    return await relay(upstream, file, Disposition.ATTACHMENT)


@router.get("/kv/write/{file_id}")
async def write_share_link(
    file_id: str,
    drive: DriveDep,
    store: LinkStoreDep,
    download: str | None = None,
) -> JSONResponse:
    """Issue a share link for a file.

    The link serves the file inline unless ``download=true`` is given.
    """
    with scoped_token(drive):
        file = await drive.get_metadata(file_id)
        if file is None:
            raise HTTPException(status_code=404, detail="Not Found")
        if file.is_folder:
            raise HTTPException(status_code=400, detail="Cannot write folder")
        token = drive.token

    if token is None:
        raise HTTPException(status_code=500, detail="Failed to get token")

    disposition = (
        Disposition.ATTACHMENT
        if (download or "").lower() == "true"
        else Disposition.INLINE
    )
    link_id = await store.issue(drive.provider, file_id, token, disposition)
    return JSONResponse({"id": link_id})


@router.get("/{path}")
async def folder_children(path: str, drive: DriveDep) -> JSONResponse:
    """Return a folder's metadata and its immediate children."""
    with scoped_token(drive):
        parent = await require_folder(drive, path)
        files = await drive.list_children(path)
    return JSONResponse(
        {"parent": parent.to_dict(), "files": [file.to_dict() for file in files]}
    )


@router.get("/{path}/recursive")
async def folder_recursive(path: str, drive: DriveDep) -> JSONResponse:
    """Return a folder's metadata and every file below it."""
    with scoped_token(drive):
        parent = await require_folder(drive, path)
        files = await drive.list_recursive(path)
    return JSONResponse(
        {"parent": parent.to_dict(), "files": [file.to_dict() for file in files]}
    )


@router.get("/{rest:path}", include_in_schema=False)
async def unknown_endpoint(rest: str, drive: DriveDep) -> None:
    drive.clear_token()
    raise HTTPException(status_code=404, detail="Invalid endpoint")


share_router = APIRouter()


@share_router.get("/{link_id:uuid}")
async def redeem_share_link(
    link_id: uuid.UUID,
    request: Request,
    settings: SettingsDep,
    http_client: HttpClientDep,
    store: LinkStoreDep,
    range_header: RangeHeader = None,
) -> Response:
    """Serve the file behind a share link with the stored disposition."""
    link = await store.redeem(str(link_id))
    if link is None:
        raise InvalidShareLinkError(str(link_id))

    drive = create_drive(link.provider, settings, http_client)
    request.state.drive = drive
    drive.token = link.token
    with scoped_token(drive):
        file = await require_file(drive, link.file_id)
        upstream = await drive.fetch_raw(link.file_id, range_header)
    return await relay(upstream, file, link.disposition)
