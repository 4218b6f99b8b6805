"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from cloud_drive_gateway.drives.models import Provider, ProviderConfig


@dataclass(frozen=True)
class Settings:
    """Centralized application configuration.

    Every field has a default so the app can start for local development;
    OAuth flows only work once the client credentials are provided.
    """

    google_client_id: str = ""
    google_client_secret: str = ""
    google_root_folder: str = "root"
    dropbox_client_id: str = ""
    dropbox_client_secret: str = ""
    base_url: str = "http://localhost:8000"
    redis_url: str = "redis://localhost:6379/0"
    share_link_ttl: int = 5 * 60 * 60
    traversal_concurrency: int = 8
    post_auth_redirect_url: str = "/"
    log_level: str = "INFO"

    def provider_config(self, provider: Provider) -> ProviderConfig:
        """Return the OAuth client settings for *provider*."""
        redirect_uri = f"{self.base_url.rstrip('/')}/{provider}/oauth2callback"
        match provider:
            case Provider.GOOGLE:
                return ProviderConfig(
                    client_id=self.google_client_id,
                    client_secret=self.google_client_secret,
                    redirect_uri=redirect_uri,
                )
            case Provider.DROPBOX:
                return ProviderConfig(
                    client_id=self.dropbox_client_id,
                    client_secret=self.dropbox_client_secret,
                    redirect_uri=redirect_uri,
                )


def load_settings() -> Settings:
    """Construct a Settings instance from the environment (and ``.env``).

    Environment variables:
        GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET: Google OAuth client.
        GOOGLE_ROOT_FOLDER: Folder listed by ``GET /google/`` (default: root).
        DROPBOX_CLIENT_ID, DROPBOX_CLIENT_SECRET: Dropbox OAuth client.
        BASE_URL: Public URL of this service, used for OAuth redirect URIs.
        REDIS_URL: Connection URL of the share-link store.
        SHARE_LINK_TTL: Share-link lifetime in seconds (default: 18000).
        TRAVERSAL_CONCURRENCY: Max concurrent folder listings during a
            recursive walk; 0 disables the bound (default: 8).
        POST_AUTH_REDIRECT_URL: Where the OAuth callback sends browsers that
            did not pass a ``state`` value (default: /).
        LOG_LEVEL: Logging level name (default: INFO).
    """
    load_dotenv()
    return Settings(
        google_client_id=os.environ.get("GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.environ.get("GOOGLE_CLIENT_SECRET", ""),
        google_root_folder=os.environ.get("GOOGLE_ROOT_FOLDER", "root"),
        dropbox_client_id=os.environ.get("DROPBOX_CLIENT_ID", ""),
        dropbox_client_secret=os.environ.get("DROPBOX_CLIENT_SECRET", ""),
        base_url=os.environ.get("BASE_URL", "http://localhost:8000"),
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        share_link_ttl=int(os.environ.get("SHARE_LINK_TTL", str(5 * 60 * 60))),
        traversal_concurrency=int(os.environ.get("TRAVERSAL_CONCURRENCY", "8")),
        post_auth_redirect_url=os.environ.get("POST_AUTH_REDIRECT_URL", "/"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


@lru_cache
def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return load_settings()
