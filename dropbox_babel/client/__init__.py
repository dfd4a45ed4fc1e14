"""
Babel RPC client and the Dropbox client built on it.
"""

from dropbox_babel.client.babel import (
    BabelClient,
    BabelDownloadRequest,
    BabelRequest,
    BabelRpcRequest,
    BabelUploadRequest,
    BadInputError,
    CallError,
    CallResult,
    HTTPError,
    InternalServerError,
    RateLimitError,
    RouteError,
    TransportError,
    UploadBody,
    UploadData,
    UploadFile,
    UploadStream,
)
from dropbox_babel.client.dropbox import DropboxClient, DropboxContext

__all__ = [
    "BabelClient",
    "BabelDownloadRequest",
    "BabelRequest",
    "BabelRpcRequest",
    "BabelUploadRequest",
    "BadInputError",
    "CallError",
    "CallResult",
    "DropboxClient",
    "DropboxContext",
    "HTTPError",
    "InternalServerError",
    "RateLimitError",
    "RouteError",
    "TransportError",
    "UploadBody",
    "UploadData",
    "UploadFile",
    "UploadStream",
]
