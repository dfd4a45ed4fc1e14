"""
Host Application Integration

The link flow needs three things from the host: its declared URL schemes,
a way to open URLs (inter-app handoff), and a way to present an embedded
browser. Desktop defaults fall back to the system browser.
"""

from __future__ import annotations

import webbrowser
from collections.abc import Callable
from enum import Enum
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()


class AppManifest(BaseModel):
    """URL schemes the host application has declared."""

    # Schemes the app receives redirects on (e.g. "db-<app key>")
    url_schemes: list[str] = Field(default_factory=list)

    # Schemes the app is allowed to probe for (e.g. "dbapi-2")
    queries_schemes: list[str] = Field(default_factory=list)

    @classmethod
    def for_app_key(cls, app_key: str) -> AppManifest:
        """Manifest declaring everything linking needs for this app key."""
        return cls(url_schemes=[f"db-{app_key}"], queries_schemes=["dbapi-2"])

    def conforms_to_scheme(self, scheme: str) -> bool:
        return scheme in self.url_schemes

    def can_query_scheme(self, scheme: str) -> bool:
        return scheme in self.queries_schemes


class UrlOpener(Protocol):
    def can_open_url(self, url: str) -> bool: ...

    def open_url(self, url: str) -> bool: ...


class SystemUrlOpener:
    """
    Opens URLs through the system browser.

    There is no sibling Dropbox app on a desktop host, so only http(s)
    URLs are reported as openable.
    """

    def can_open_url(self, url: str) -> bool:
        return url.startswith(("http://", "https://"))

    def open_url(self, url: str) -> bool:
        return webbrowser.open(url)


class NavigationPolicy(str, Enum):
    ALLOW = "allow"
    CANCEL = "cancel"


class ConnectController:
    """
    Model of the embedded consent browser.

    An embedded web view calls ``decide_policy`` for every navigation.
    When the interceptor claims a URL the navigation is cancelled and the
    controller dismisses itself, so the redirect never reaches the network.
    """

    title = "Link to Dropbox"

    def __init__(
        self,
        start_url: str,
        try_intercept: Callable[[str], bool],
        on_will_dismiss: Callable[[bool], None] | None = None,
    ):
        self.start_url = start_url
        self.try_intercept = try_intercept
        self.on_will_dismiss = on_will_dismiss
        self.dismissed = False

    def decide_policy(self, url: str) -> NavigationPolicy:
        if self.try_intercept(url):
            self.dismiss(as_cancel=False)
            return NavigationPolicy.CANCEL
        return NavigationPolicy.ALLOW

    def cancel(self) -> None:
        self.dismiss(as_cancel=True)

    def dismiss(self, as_cancel: bool) -> None:
        if self.dismissed:
            return
        self.dismissed = True
        logger.debug("Connect controller dismissed", cancelled=as_cancel)
        if self.on_will_dismiss is not None:
            self.on_will_dismiss(as_cancel)


class WebViewPresenter(Protocol):
    def present(self, controller: ConnectController) -> None: ...


class BrowserPresenter:
    """Shows the consent page in the system browser.

    The system browser cannot be intercepted; the redirect comes back
    through the OS URL handler and must be passed to
    ``DropboxAuthManager.handle_redirect_url`` by the host.
    """

    def present(self, controller: ConnectController) -> None:
        webbrowser.open(controller.start_url)
