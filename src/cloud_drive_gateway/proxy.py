"""Relay of backend byte streams to the caller."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from cloud_drive_gateway.drives.models import Disposition

if TYPE_CHECKING:
    import httpx
    from starlette.responses import Response

    from cloud_drive_gateway.drives.models import File

logger = logging.getLogger(__name__)

# Backend headers that still describe the body after it is relayed as-is.
_PASSTHROUGH_HEADERS = (
    "content-length",
    "content-range",
    "content-encoding",
    "accept-ranges",
    "etag",
    "last-modified",
)


def content_disposition(disposition: Disposition, filename: str) -> str:
    """Build a ``Content-Disposition`` value for *disposition*."""
    if disposition is Disposition.INLINE:
        return "inline"
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


async def relay(upstream: httpx.Response, file: File, disposition: Disposition) -> Response:
    """Turn an unread backend response into the response sent to the caller.

    Failed backend responses are surfaced with their own status and reason.
    Successful ones are streamed chunk by chunk, never buffered, and the
    backend response is closed once the body has been sent.
    """
    if not upstream.is_success:
        await upstream.aclose()
        logger.warning(
            "Backend refused %s; status:%s", file.location, upstream.status_code
        )
        return PlainTextResponse(upstream.reason_phrase, status_code=upstream.status_code)

    headers = {
        name: upstream.headers[name]
        for name in _PASSTHROUGH_HEADERS
        if name in upstream.headers
    }
    headers["Content-Type"] = file.mime_type
    headers["Content-Disposition"] = content_disposition(disposition, file.name)
    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
