"""Tests for relaying backend byte streams."""

from __future__ import annotations

import httpx
from fastapi.responses import PlainTextResponse, StreamingResponse

from cloud_drive_gateway.drives.models import Disposition, File
from cloud_drive_gateway.proxy import content_disposition, relay

CLIP = File(name="clip.mp4", is_folder=False, location="clip", mime_type="video/mp4", size=10)


class _ClosingStream(httpx.AsyncByteStream):
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class TestContentDisposition:
    def test_inline(self) -> None:
        assert content_disposition(Disposition.INLINE, "clip.mp4") == "inline"

    def test_attachment_with_plain_name(self) -> None:
        assert (
            content_disposition(Disposition.ATTACHMENT, "clip.mp4")
            == 'attachment; filename="clip.mp4"'
        )

    def test_attachment_with_name_needing_encoding(self) -> None:
        assert (
            content_disposition(Disposition.ATTACHMENT, "résumé 2024.pdf")
            == "attachment; filename*=utf-8''r%C3%A9sum%C3%A9%202024.pdf"
        )


class TestRelay:
    async def test_error_status_and_reason_are_surfaced(self) -> None:
        # Arrange
        stream = _ClosingStream([b"denied"])
        upstream = httpx.Response(403, stream=stream)

        # Act
        response = await relay(upstream, CLIP, Disposition.INLINE)

        # Assert
        assert isinstance(response, PlainTextResponse)
        assert response.status_code == 403
        assert response.body == b"Forbidden"
        assert stream.closed is True

    async def test_streams_chunks_and_copies_range_headers(self) -> None:
        # Arrange
        stream = _ClosingStream([b"01234", b"56789"])
        upstream = httpx.Response(
            206,
            stream=stream,
            headers={
                "Content-Length": "10",
                "Content-Range": "bytes 0-9/100",
                "Accept-Ranges": "bytes",
                "X-Goog-Hash": "crc32c=abc",
            },
        )

        # Act
        response = await relay(upstream, CLIP, Disposition.ATTACHMENT)
        body = [chunk async for chunk in response.body_iterator]

        # Assert
        assert isinstance(response, StreamingResponse)
        assert response.status_code == 206
        assert body == [b"01234", b"56789"]
        assert response.headers["content-range"] == "bytes 0-9/100"
        assert response.headers["content-length"] == "10"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["content-disposition"] == 'attachment; filename="clip.mp4"'
        assert "x-goog-hash" not in response.headers

    async def test_backend_response_closed_by_background_task(self) -> None:
        # Arrange
        stream = _ClosingStream([b"x"])
        upstream = httpx.Response(200, stream=stream)

        # Act
        response = await relay(upstream, CLIP, Disposition.INLINE)
        assert response.background is not None
        await response.background()

        # Assert
        assert stream.closed is True

    async def test_text_content_type_is_not_given_a_charset(self) -> None:
        # Arrange
        notes = File(name="notes.txt", is_folder=False, location="n", mime_type="text/plain")
        upstream = httpx.Response(200, stream=_ClosingStream([b"caf\xe9"]))

        # Act
        response = await relay(upstream, notes, Disposition.INLINE)

        # Assert
        assert response.headers["content-type"] == "text/plain"
