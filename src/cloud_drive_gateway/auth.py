"""Bearer-token codec and the per-request authorization gate."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import TYPE_CHECKING

from cloud_drive_gateway.drives.models import Token

if TYPE_CHECKING:
    from cloud_drive_gateway.drives.factory import CloudDrive

logger = logging.getLogger(__name__)

# Provider-relative routes reachable without credentials.
AUTH_EXEMPT_ROUTES = frozenset({"/auth", "/oauth2callback"})


def encode_token(token: Token) -> str:
    """Serialize a token into the opaque base64 blob handed to clients."""
    return base64.b64encode(json.dumps(token.to_dict()).encode()).decode()


def decode_token(blob: str) -> Token | None:
    """Inverse of :func:`encode_token`; ``None`` for anything malformed."""
    try:
        data = json.loads(base64.b64decode(blob, validate=True))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return Token.from_dict(data)


def decode_bearer(authorization: str | None) -> Token | None:
    """Extract a token from an ``Authorization: Bearer <base64>`` header."""
    if not authorization:
        return None
    scheme, _, blob = authorization.partition(" ")
    if scheme != "Bearer" or not blob:
        return None
    return decode_token(blob.strip())


def is_authorized(
    drive: CloudDrive,
    route: str,
    *,
    code: str | None = None,
    authorization: str | None = None,
) -> bool:
    """Decide whether a request may proceed, hydrating *drive* if possible.

    Checked in order: a token already held by the drive, an auth-exempt
    route, an OAuth ``code`` query parameter (mid-flow), then a bearer
    header carrying a complete token.
    """
    if drive.token is not None:
        return True
    if route in AUTH_EXEMPT_ROUTES:
        return True
    if code:
        return True

    token = decode_bearer(authorization)
    if token is None:
        if authorization:
            logger.info("[%s] Ignoring malformed Authorization header", drive.provider)
        return False

    drive.token = token
    return True
