"""Dropbox Babel SDK: account linking, token storage and typed API calls."""

from dropbox_babel.auth import AccessToken, AuthFailure, AuthResult, AuthSuccess, DropboxAuthManager, OAuth2Error
from dropbox_babel.client import CallError, CallResult, DropboxClient, DropboxContext

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "AuthFailure",
    "AuthResult",
    "AuthSuccess",
    "CallError",
    "CallResult",
    "DropboxAuthManager",
    "DropboxClient",
    "DropboxContext",
    "OAuth2Error",
]
