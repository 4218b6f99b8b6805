"""Ephemeral share links stored in Redis.

A share link maps a random identifier to everything needed to fetch one
file later: the provider, the file id, a snapshot of the token and the
disposition.  Records are written once and expire on their own.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cloud_drive_gateway.drives.models import Disposition, Provider, Token

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60 * 60


@dataclass(frozen=True)
class ShareLink:
    """A stored share-link record."""

    provider: Provider
    file_id: str
    token: Token
    disposition: Disposition

    def to_json(self) -> str:
        return json.dumps(
            {
                "fileId": self.file_id,
                "token": self.token.to_dict(),
                "provider": str(self.provider),
                "disposition": str(self.disposition),
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> ShareLink:
        """Parse a stored record.

        Raises
        ------
        ValueError
            If the record is not valid JSON or misses a field.
        """
        data = json.loads(raw)
        token = Token.from_dict(data.get("token")) if isinstance(data, dict) else None
        if token is None:
            msg = "Share link record has no usable token"
            raise ValueError(msg)
        return cls(
            provider=Provider(data["provider"]),
            file_id=str(data["fileId"]),
            token=token,
            disposition=Disposition(data.get("disposition", Disposition.INLINE)),
        )


class ShareLinkStore:
    """Issue and redeem share links.

    Parameters
    ----------
    redis:
        An ``redis.asyncio`` client created with ``decode_responses=True``.
    ttl:
        Lifetime of each record in seconds.
    """

    def __init__(self, redis: Redis, ttl: int = DEFAULT_TTL) -> None:
        self._redis = redis
        self.ttl = ttl

    async def issue(
        self,
        provider: Provider,
        file_id: str,
        token: Token,
        disposition: Disposition = Disposition.INLINE,
    ) -> str:
        """Store a new record and return its identifier."""
        link_id = str(uuid.uuid4())
        link = ShareLink(provider=provider, file_id=file_id, token=token, disposition=disposition)
        await self._redis.set(link_id, link.to_json(), ex=self.ttl)
        logger.info("Issued %s share link for %s file %s", disposition, provider, file_id)
        return link_id

    async def redeem(self, link_id: str) -> ShareLink | None:
        """Look up a record; unknown, expired and unreadable ids give ``None``."""
        raw = await self._redis.get(link_id)
        if raw is None:
            return None
        try:
            return ShareLink.from_json(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable share link record %s", link_id)
            return None
