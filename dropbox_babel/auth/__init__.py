"""
Authentication System

Provides the OAuth2 link flow and access token storage.
"""

from dropbox_babel.auth.oauth2 import (
    AccessToken,
    AuthFailure,
    AuthResult,
    AuthSuccess,
    DropboxAuthManager,
    OAuth2Error,
)
from dropbox_babel.auth.platform import AppManifest, ConnectController, NavigationPolicy
from dropbox_babel.auth.token_store import (
    EncryptedFileTokenStore,
    InMemoryTokenStore,
    KeyringTokenStore,
    TokenStore,
    create_token_store,
)

__all__ = [
    "AccessToken",
    "AppManifest",
    "AuthFailure",
    "AuthResult",
    "AuthSuccess",
    "ConnectController",
    "DropboxAuthManager",
    "EncryptedFileTokenStore",
    "InMemoryTokenStore",
    "KeyringTokenStore",
    "NavigationPolicy",
    "OAuth2Error",
    "TokenStore",
    "create_token_store",
]
