"""Tests for the bearer-token codec and the authorization gate."""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING

import httpx
import pytest

from cloud_drive_gateway.auth import decode_bearer, decode_token, encode_token, is_authorized
from cloud_drive_gateway.drives.factory import create_drive

if TYPE_CHECKING:
    from cloud_drive_gateway.config import Settings
    from cloud_drive_gateway.drives.factory import CloudDrive
    from cloud_drive_gateway.drives.models import Token


@pytest.fixture()
def drive(settings: Settings) -> CloudDrive:
    return create_drive("google", settings, httpx.AsyncClient())


class TestTokenCodec:
    def test_encode_is_base64_json_of_three_fields(self, token: Token) -> None:
        # Act
        blob = encode_token(token)

        # Assert
        assert json.loads(base64.b64decode(blob)) == {
            "access_token": "access-1",
            "expiry": token.expiry,
            "refresh_token": "refresh-1",
        }
        assert decode_token(blob) == token

    def test_decode_rejects_garbage(self) -> None:
        assert decode_token("not base64!") is None
        assert decode_token(base64.b64encode(b"not json").decode()) is None
        assert decode_token(base64.b64encode(b'{"access_token": "a"}').decode()) is None

    def test_decode_bearer_requires_bearer_scheme(self, token: Token) -> None:
        blob = encode_token(token)

        assert decode_bearer(f"Bearer {blob}") == token
        assert decode_bearer(f"Basic {blob}") is None
        assert decode_bearer("Bearer") is None
        assert decode_bearer(None) is None


class TestIsAuthorized:
    def test_rejects_bare_request(self, drive: CloudDrive) -> None:
        assert is_authorized(drive, "/file/abc") is False
        assert drive.token is None

    def test_accepts_drive_already_holding_token(self, drive: CloudDrive, token: Token) -> None:
        # Arrange
        drive.token = token

        # Act & Assert
        assert is_authorized(drive, "/file/abc") is True

    @pytest.mark.parametrize("route", ["/auth", "/oauth2callback"])
    def test_exempt_routes_need_no_token(self, drive: CloudDrive, route: str) -> None:
        assert is_authorized(drive, route) is True
        assert drive.token is None

    def test_code_parameter_means_mid_flow(self, drive: CloudDrive) -> None:
        assert is_authorized(drive, "/", code="auth-code") is True

    def test_bearer_header_hydrates_drive(self, drive: CloudDrive, token: Token) -> None:
        # Act
        result = is_authorized(drive, "/", authorization=f"Bearer {encode_token(token)}")

        # Assert
        assert result is True
        assert drive.token == token

    def test_incomplete_bearer_token_is_rejected(self, drive: CloudDrive) -> None:
        # Arrange
        blob = base64.b64encode(json.dumps({"access_token": "a", "expiry": 1}).encode()).decode()

        # Act & Assert
        assert is_authorized(drive, "/", authorization=f"Bearer {blob}") is False
        assert drive.token is None
