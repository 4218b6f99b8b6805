"""OAuth-authenticated HTTP session used by every drive adapter.

A session lives for exactly one inbound request. It owns the request's
``Token`` and guarantees that no backend call is made with an expired one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

import httpx

from cloud_drive_gateway.drives.models import Provider, ProviderConfig, Token, now_ms
from cloud_drive_gateway.errors import (
    AuthRequiredError,
    BackendRequestFailedError,
    ConfigNotSetError,
    TokenRefreshFailedError,
)

logger = logging.getLogger(__name__)

# Used when a token endpoint omits ``expires_in``.
_DEFAULT_EXPIRES_IN = 3600


class OAuthSession:
    """Token lifecycle plus authenticated JSON and streaming requests.

    Parameters
    ----------
    provider:
        Tag of the backend this session talks to.
    token_url:
        The provider's OAuth 2.0 token endpoint.
    http_client:
        Shared ``httpx.AsyncClient``.  It never stores credentials; the
        bearer header is attached to each request individually.
    """

    def __init__(
        self, provider: Provider, token_url: str, http_client: httpx.AsyncClient
    ) -> None:
        self.provider = provider
        self.token: Token | None = None
        self._token_url = token_url
        self._http = http_client
        self._config: ProviderConfig | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def config(self) -> ProviderConfig:
        if self._config is None:
            msg = f"Config not set for provider {self.provider}"
            raise ConfigNotSetError(msg)
        return self._config

    @config.setter
    def config(self, config: ProviderConfig) -> None:
        self._config = config

    def clear_token(self) -> None:
        """Forget the held token; called before every response is emitted."""
        self.token = None

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def ensure_token(self) -> Token:
        """Return a token that is valid right now, refreshing it if needed.

        Raises
        ------
        AuthRequiredError
            If no token (or no refresh token) is held.
        TokenRefreshFailedError
            If the provider rejects the refresh grant.  The held token is
            cleared so that no backend call is attempted with it.
        """
        async with self._refresh_lock:
            current = self.token
            if current is not None and not current.is_expired():
                return current
            if current is None or not current.refresh_token:
                raise AuthRequiredError(self.provider)

            refreshed = await self._grant(
                {"grant_type": "refresh_token", "refresh_token": current.refresh_token}
            )
            if refreshed is None:
                self.token = None
                raise TokenRefreshFailedError(self.provider, "Token refresh failed")

            # Some providers omit refresh_token from refresh responses.
            if not refreshed.refresh_token:
                refreshed = replace(refreshed, refresh_token=current.refresh_token)
            self.token = refreshed
            return refreshed

    async def exchange_code(self, code: str) -> Token | None:
        """Trade an authorization code for a token and hold it."""
        self.token = None
        self.token = await self._grant(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            }
        )
        return self.token

    async def _grant(self, data: dict[str, str]) -> Token | None:
        form = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            **data,
        }
        try:
            payload = await self._send_json("POST", self._token_url, data=form)
            access_token = payload["access_token"]
            expires_in = int(payload.get("expires_in") or _DEFAULT_EXPIRES_IN)
        except BackendRequestFailedError as exc:
            logger.warning(
                "[%s] %s grant failed; status:%s reason:%s",
                self.provider,
                data["grant_type"],
                exc.status_code,
                exc.reason,
            )
            return None
        except (KeyError, TypeError, ValueError):
            logger.exception("[%s] Malformed token response", self.provider)
            return None

        return Token(
            access_token=access_token,
            expiry=now_ms() + expires_in * 1000,
            refresh_token=payload.get("refresh_token") or "",
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform an authenticated request and decode its JSON body.

        Returns ``None`` when the backend fails or answers with something
        that is not JSON; the failure is logged, never raised.
        """
        token = await self.ensure_token()
        try:
            return await self._send_json(
                method,
                url,
                params=params,
                json=json,
                headers={**(headers or {}), "Authorization": f"Bearer {token.access_token}"},
            )
        except BackendRequestFailedError as exc:
            logger.warning(
                "[%s] %s %s failed; status:%s reason:%s",
                self.provider,
                method,
                url,
                exc.status_code,
                exc.reason,
            )
            return None

    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request and return the unread response.

        The caller owns the response and must ``aclose()`` it.  Transport
        failures come back as a synthetic 502 response instead of raising.
        """
        token = await self.ensure_token()
        request = self._http.build_request(
            method,
            url,
            params=params,
            headers={**(headers or {}), "Authorization": f"Bearer {token.access_token}"},
        )
        try:
            return await self._http.send(request, stream=True)
        except httpx.HTTPError:
            logger.exception("[%s] Raw download failed for %s", self.provider, url)
            return httpx.Response(502, request=request)

    async def _send_json(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendRequestFailedError(502, str(exc)) from exc

        if not response.is_success:
            raise BackendRequestFailedError(response.status_code, response.text[:200])
        try:
            return response.json()
        except ValueError as exc:
            msg = "Malformed response body"
            raise BackendRequestFailedError(response.status_code, msg) from exc
