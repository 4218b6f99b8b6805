"""Data models shared by every cloud drive backend."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class Provider(StrEnum):
    """Tag of a supported cloud storage backend, also its URL prefix."""

    GOOGLE = "google"
    DROPBOX = "dropbox"


class Disposition(StrEnum):
    """How a served file is presented to the browser."""

    INLINE = "inline"
    ATTACHMENT = "attachment"


_TOKEN_FIELDS = ("access_token", "expiry", "refresh_token")


def now_ms() -> int:
    """Return the current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class File:
    """Metadata about a file or folder, local to one provider.

    ``location`` is the provider's opaque identifier; comparing locations
    across providers is meaningless.
    """

    name: str
    is_folder: bool
    location: str
    mime_type: str
    size: int = 0

    @property
    def is_file(self) -> bool:
        """Return True if this item is a file."""
        return not self.is_folder

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "isFolder": self.is_folder,
            "location": self.location,
            "mimeType": self.mime_type,
            "size": self.size,
        }


@dataclass(frozen=True)
class RecursiveFile(File):
    """A file found by a recursive listing, tagged with its immediate parent."""

    parent: str = ""

    @classmethod
    def from_file(cls, file: File, parent: str) -> RecursiveFile:
        return cls(**asdict(file), parent=parent)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "parent": self.parent}


@dataclass(frozen=True)
class Token:
    """OAuth credentials for one provider.

    ``expiry`` is expressed in milliseconds since the epoch, which is the
    representation carried inside bearer headers and share-link records.
    """

    access_token: str
    expiry: int
    refresh_token: str

    def is_expired(self, at: int | None = None) -> bool:
        """Return True if the token is unusable at *at* (defaults to now)."""
        return self.expiry <= (now_ms() if at is None else at)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Token | None:
        """Build a token from decoded JSON, or ``None`` if a field is missing."""
        if not isinstance(data, dict) or any(
            data.get(field) is None for field in _TOKEN_FIELDS
        ):
            return None
        try:
            return cls(
                access_token=str(data["access_token"]),
                expiry=int(data["expiry"]),
                refresh_token=str(data["refresh_token"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class ProviderConfig:
    """OAuth client settings for one provider."""

    client_id: str
    client_secret: str
    redirect_uri: str
