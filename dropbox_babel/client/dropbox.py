"""
Dropbox Client

``DropboxClient`` is the authenticated Babel client with the namespace
routes attached. ``DropboxContext`` owns the auth manager and the currently
authorized client for hosts with a single linked user; the host creates one
at its composition root and passes it where it is needed.
"""

from __future__ import annotations

import os
import ssl
from collections.abc import Callable

import httpx
import structlog

from dropbox_babel.auth.oauth2 import (
    AccessToken,
    AuthFailure,
    AuthResult,
    AuthSuccess,
    DropboxAuthManager,
)
from dropbox_babel.auth.platform import ConnectController
from dropbox_babel.client.babel import BabelClient
from dropbox_babel.config import Settings, get_settings
from dropbox_babel.kernel.errors import ConfigurationError
from dropbox_babel.routes.users import UsersRoutes

logger = structlog.get_logger()


def build_ssl_context(settings: Settings) -> ssl.SSLContext | bool:
    """
    TLS verification for API connections.

    With ``ca_bundle`` set, only the certificates in that bundle are
    trusted as roots. With ``crl_file`` set, leaf certificates listed as
    revoked are rejected. Without either, httpx's default verification
    is used.
    """
    if not settings.ca_bundle and not settings.crl_file:
        return True

    cafile = os.path.expanduser(settings.ca_bundle) if settings.ca_bundle else None
    try:
        context = ssl.create_default_context(cafile=cafile)
        if settings.crl_file:
            context.load_verify_locations(cafile=os.path.expanduser(settings.crl_file))
            context.verify_flags |= ssl.VERIFY_CRL_CHECK_LEAF
    except OSError as e:
        raise ConfigurationError(
            message=f"Unable to load TLS trust settings: {e}",
            code="config.invalid_tls",
            meta={"ca_bundle": settings.ca_bundle, "crl_file": settings.crl_file},
        ) from e

    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class DropboxClient(BabelClient):
    """
    Authenticated client for the Dropbox API.

    Example usage:
        async with DropboxClient(token) as client:
            result = await client.users.get_current_account()
            if result.ok:
                print(result.value.name.display_name)
    """

    def __init__(
        self,
        access_token: AccessToken | str,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = settings or get_settings()
        self.access_token = str(access_token)
        self.settings = settings
        self._owns_http_client = http_client is None

        super().__init__(
            http_client=http_client
            or httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                verify=build_ssl_context(settings),
            ),
            base_hosts=settings.base_hosts,
        )

        self.users = UsersRoutes(self)

    def additional_headers(self, noauth: bool) -> dict[str, str]:
        headers = {"User-Agent": self.settings.user_agent}
        if not noauth:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> DropboxClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


ClientFactory = Callable[[AccessToken], DropboxClient]


class DropboxContext:
    """
    Single-user convenience wrapper around the auth manager.

    Only one user is linked at a time; linking again requires ``unlink_client``
    first. Methods are meant to be called from one control thread.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.settings = settings or get_settings()
        self.client_factory = client_factory or (
            lambda token: DropboxClient(token, settings=self.settings)
        )
        self.auth_manager: DropboxAuthManager | None = None
        self.authorized_client: DropboxClient | None = None

    def setup(self, app_key: str | None = None, **manager_kwargs) -> DropboxAuthManager:
        """
        Set up access to the API and restore a previously linked user.

        Args:
            app_key: App key; defaults to the configured one
            **manager_kwargs: Passed through to DropboxAuthManager

        Returns:
            The auth manager
        """
        if self.auth_manager is not None:
            raise ConfigurationError(
                message="Only call `DropboxContext.setup` once",
                code="config.already_setup",
            )

        app_key = app_key or self.settings.app_key
        if not app_key:
            raise ConfigurationError(
                message="An app key is required (argument or DROPBOX_APP_KEY)",
                code="config.missing_app_key",
            )

        manager_kwargs.setdefault("host", self.settings.auth_host)
        self.auth_manager = DropboxAuthManager(app_key, **manager_kwargs)

        token = self.auth_manager.get_first_access_token()
        if token is not None:
            self.authorized_client = self.client_factory(token)
            logger.info("Restored linked Dropbox account", uid=token.uid)

        return self.auth_manager

    def _require_setup(self) -> DropboxAuthManager:
        if self.auth_manager is None:
            raise ConfigurationError(
                message="Call `DropboxContext.setup` before calling this method",
                code="config.not_setup",
            )
        return self.auth_manager

    def _require_unlinked(self) -> None:
        if self.authorized_client is not None:
            raise ConfigurationError(
                message="Client is already authorized",
                code="config.already_authorized",
            )

    def authorize(
        self,
        on_result: Callable[[AuthResult], None] | None = None,
    ) -> ConnectController | None:
        """Start linking a user; see DropboxAuthManager.authorize."""
        manager = self._require_setup()
        self._require_unlinked()

        def _on_result(result: AuthResult) -> None:
            self._adopt(result)
            if on_result is not None:
                on_result(result)

        return manager.authorize(on_result=_on_result)

    def handle_redirect_url(self, url: str) -> AuthResult | None:
        """Handle a redirect, store the token and build the authorized client."""
        manager = self._require_setup()
        self._require_unlinked()

        result = manager.handle_redirect_url(url)
        if result is not None:
            self._adopt(result)
        return result

    def _adopt(self, result: AuthResult) -> None:
        match result:
            case AuthSuccess(token=token):
                self.authorized_client = self.client_factory(token)
            case AuthFailure():
                pass

    async def unlink_client(self) -> None:
        """Unlink the user: drop every stored token and the authorized client."""
        manager = self._require_setup()
        if self.authorized_client is None:
            # already unlinked
            return

        manager.clear_stored_access_tokens()
        client, self.authorized_client = self.authorized_client, None
        await client.aclose()
        logger.info("Dropbox account unlinked")
