"""
OAuth2 Link Flow

Links a Dropbox account with the token flow (RFC6749 4.2), either through
the Dropbox app installed next to the host ("dauth") or through the hosted
consent page, and persists the resulting access token.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import unquote, urlencode, urlsplit

import structlog
from pydantic import BaseModel, ConfigDict

from dropbox_babel.auth.platform import (
    AppManifest,
    BrowserPresenter,
    ConnectController,
    SystemUrlOpener,
    UrlOpener,
    WebViewPresenter,
)
from dropbox_babel.auth.token_store import TokenStore, create_token_store
from dropbox_babel.config import get_settings
from dropbox_babel.kernel.errors import ConfigurationError

logger = structlog.get_logger()

LINK_NONCE_KEY = "dropbox.sync.nonce"
DAUTH_SCHEME = "dbapi-2"
DEFAULT_AUTH_HOST = "www.dropbox.com"

# Process-wide defaults used when the host does not supply its own mapping.
_process_defaults: dict[str, str] = {}


class AccessToken(BaseModel):
    """A Dropbox access token and the user it belongs to."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    uid: str

    def __str__(self) -> str:
        return self.access_token


class OAuth2Error(str, Enum):
    """A failed authorization. See RFC6749 4.2.2.1."""

    # The client is not authorized to request an access token using this method.
    UNAUTHORIZED_CLIENT = "unauthorized_client"

    # The resource owner or authorization server denied the request.
    ACCESS_DENIED = "access_denied"

    # The authorization server does not support obtaining an access token using this method.
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"

    # The requested scope is invalid, unknown, or malformed.
    INVALID_SCOPE = "invalid_scope"

    # The authorization server encountered an unexpected condition.
    SERVER_ERROR = "server_error"

    # The authorization server is temporarily overloaded or under maintenance.
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"

    # Some other error (outside of the OAuth2 specification)
    UNKNOWN = "unknown"

    @classmethod
    def from_error_code(cls, error_code: str) -> OAuth2Error:
        try:
            return cls(error_code)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class AuthSuccess:
    token: AccessToken


@dataclass(frozen=True)
class AuthFailure:
    error: OAuth2Error
    message: str


AuthResult = AuthSuccess | AuthFailure


def _split_params(raw: str | None) -> dict[str, str]:
    """Split ``a=1&b=2`` without any percent-decoding."""
    results: dict[str, str] = {}
    if not raw:
        return results
    for pair in raw.split("&"):
        kv = pair.split("=")
        if len(kv) < 2:
            continue
        results[kv[0]] = kv[1]
    return results


class DropboxAuthManager:
    """
    Manages access token storage and authentication.

    Handles:
    - Authorization URL generation (hosted page and dauth)
    - Starting a link attempt
    - Parsing redirects back into the app
    - Stored token lookup and removal

    Example usage:
        manager = DropboxAuthManager(
            "abc123",
            token_store=KeyringTokenStore("com.example.app.dropbox.authv2"),
            manifest=AppManifest.for_app_key("abc123"),
        )
        manager.authorize(on_result=print)

        # Later, from the host's URL handler
        result = manager.handle_redirect_url(url)
    """

    def __init__(
        self,
        app_key: str,
        host: str = DEFAULT_AUTH_HOST,
        *,
        token_store: TokenStore | None = None,
        manifest: AppManifest | None = None,
        url_opener: UrlOpener | None = None,
        presenter: WebViewPresenter | None = None,
        defaults: MutableMapping[str, str] | None = None,
    ):
        """
        Initialize the auth manager.

        Args:
            app_key: The app key from the developer console
            host: Host serving the consent page
            token_store: Credential store; built from settings if omitted
            manifest: URL schemes declared by the host application
            url_opener: Opens URLs and probes for the Dropbox app
            presenter: Shows the embedded consent browser
            defaults: Mapping the link nonce is kept in between launch and redirect
        """
        self.app_key = app_key
        self.host = host
        self.redirect_url = f"db-{app_key}://2/token"
        self.dauth_redirect_url = f"db-{app_key}://1/connect"

        self.token_store = token_store or create_token_store(get_settings())
        self.manifest = manifest or AppManifest()
        self.url_opener: UrlOpener = url_opener or SystemUrlOpener()
        self.presenter: WebViewPresenter = presenter or BrowserPresenter()
        self.defaults = defaults if defaults is not None else _process_defaults

    @property
    def app_scheme(self) -> str:
        return f"db-{self.app_key}"

    def auth_url(self) -> str:
        """Hosted consent page for the token flow."""
        params = {
            "response_type": "token",
            "client_id": self.app_key,
            "redirect_uri": self.redirect_url,
            "disable_signup": "true",
        }
        return f"https://{self.host}/1/oauth2/authorize?{urlencode(params, safe=':/')}"

    def dauth_url(self, nonce: str | None = None) -> str:
        """Inter-app handoff URL; without a nonce it is only used as a probe."""
        url = f"{DAUTH_SCHEME}://1/connect"
        if nonce is None:
            return url
        params = {
            "k": self.app_key,
            "s": "",
            "state": f"oauth2:{nonce}",
        }
        return f"{url}?{urlencode(params, safe=':')}"

    def can_handle_url(self, url: str) -> bool:
        parts = urlsplit(url)
        for known in (self.redirect_url, self.dauth_redirect_url):
            known_parts = urlsplit(known)
            if (
                parts.scheme == known_parts.scheme
                and parts.hostname == known_parts.hostname
                and parts.path == known_parts.path
            ):
                return True
        return False

    def authorize(
        self,
        on_result: Callable[[AuthResult], None] | None = None,
    ) -> ConnectController | None:
        """
        Start a link attempt.

        Hands off to the Dropbox app when it is installed, otherwise
        presents the consent page.

        Args:
            on_result: Called with the result when the embedded browser
                intercepts the redirect in-process

        Returns:
            The presented ConnectController, or None for the dauth handoff

        Raises:
            ConfigurationError: The host has not declared the required URL schemes
        """
        if not self.manifest.conforms_to_scheme(self.app_scheme):
            raise ConfigurationError(
                message=(
                    "DropboxSDK: unable to link; app isn't registered for correct "
                    f"URL scheme ({self.app_scheme})"
                ),
                code="config.url_scheme_not_registered",
                meta={"scheme": self.app_scheme},
            )
        if not self.manifest.can_query_scheme(DAUTH_SCHEME):
            raise ConfigurationError(
                message=(
                    f"DropboxSDK: unable to link; app isn't registered to query for URL "
                    f"scheme {DAUTH_SCHEME}. Add a {DAUTH_SCHEME} entry to the app's "
                    "queries schemes"
                ),
                code="config.queries_scheme_not_registered",
                meta={"scheme": DAUTH_SCHEME},
            )

        if self.url_opener.can_open_url(self.dauth_url()):
            nonce = str(uuid.uuid4()).upper()
            self.defaults[LINK_NONCE_KEY] = nonce
            logger.info("Linking through the Dropbox app", app_key=self.app_key)
            self.url_opener.open_url(self.dauth_url(nonce))
            return None

        def try_intercept(url: str) -> bool:
            if not self.can_handle_url(url):
                return False
            result = self.handle_redirect_url(url)
            if on_result is not None and result is not None:
                on_result(result)
            return True

        controller = ConnectController(self.auth_url(), try_intercept)
        logger.info("Linking through the consent page", app_key=self.app_key, host=self.host)
        self.presenter.present(controller)
        return controller

    def _extract_from_dauth_url(self, url: str) -> AuthResult:
        parts = urlsplit(url)
        if parts.path != "/connect":
            return AuthFailure(OAuth2Error.ACCESS_DENIED, "User cancelled Dropbox link")

        results = _split_params(parts.query)
        state = results["state"].split("%3A") if "state" in results else []
        nonce = self.defaults.get(LINK_NONCE_KEY)

        if nonce is not None and len(state) == 2 and state[0] == "oauth2" and state[1] == nonce:
            access_token = results.get("oauth_token_secret")
            uid = results.get("uid")
            if access_token is None or uid is None:
                return AuthFailure(OAuth2Error.UNKNOWN, "Link response is missing the token or uid")
            return AuthSuccess(AccessToken(access_token=access_token, uid=uid))

        return AuthFailure(OAuth2Error.UNKNOWN, "Unable to verify link request")

    def _extract_from_redirect_url(self, url: str) -> AuthResult:
        results = _split_params(urlsplit(url).fragment)

        if "error" in results:
            desc = results.get("error_description")
            message = unquote(desc.replace("+", " ")) if desc is not None else ""
            return AuthFailure(OAuth2Error.from_error_code(results["error"]), message)

        access_token = results.get("access_token")
        uid = results.get("uid")
        if access_token is None or uid is None:
            return AuthFailure(OAuth2Error.UNKNOWN, "Link response is missing the token or uid")
        return AuthSuccess(AccessToken(access_token=access_token, uid=uid))

    def handle_redirect_url(self, url: str) -> AuthResult | None:
        """
        Try to handle a redirect back into the application.

        Args:
            url: The URL to attempt to handle

        Returns:
            None if the URL is not a link redirect for this app,
            otherwise the AuthResult. Successful tokens are already stored.
        """
        if not self.can_handle_url(url):
            return None

        if urlsplit(url).hostname == "1":
            result = self._extract_from_dauth_url(url)
        else:
            result = self._extract_from_redirect_url(url)

        match result:
            case AuthSuccess(token=token):
                self.token_store.set(token.uid, token.access_token)
                logger.info("Dropbox account linked", uid=token.uid)
            case AuthFailure(error=error, message=message):
                logger.warning("Dropbox link failed", error=error.value, message=message)

        return result

    def get_all_access_tokens(self) -> dict[str, AccessToken]:
        """Map every stored user id to its access token."""
        tokens: dict[str, AccessToken] = {}
        for user in self.token_store.get_all():
            access_token = self.token_store.get(user)
            if access_token is not None:
                tokens[user] = AccessToken(access_token=access_token, uid=user)
        return tokens

    def has_stored_access_tokens(self) -> bool:
        return len(self.get_all_access_tokens()) != 0

    def get_access_token(self, user: str) -> AccessToken | None:
        access_token = self.token_store.get(user)
        if access_token is None:
            return None
        return AccessToken(access_token=access_token, uid=user)

    def clear_stored_access_token(self, token: AccessToken) -> bool:
        return self.token_store.delete(token.uid)

    def clear_stored_access_tokens(self) -> bool:
        return self.token_store.clear()

    def store_access_token(self, token: AccessToken) -> bool:
        return self.token_store.set(token.uid, token.access_token)

    def get_first_access_token(self) -> AccessToken | None:
        """Return an arbitrary stored token, if any."""
        return next(iter(self.get_all_access_tokens().values()), None)
