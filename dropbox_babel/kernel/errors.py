from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class BabelError(Exception):
    """Base typed error for the SDK.

    Only faults the caller cannot recover from at runtime are raised.
    Link failures and API call failures are returned as values instead.
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.meta:
            payload["meta"] = self.meta
        return payload


class ConfigurationError(BabelError):
    """The host application is set up wrongly; fatal by contract."""

    def __init__(
        self,
        *,
        message: str,
        code: str = "config.invalid",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, meta=meta)


class TokenStoreError(BabelError):
    def __init__(
        self,
        *,
        message: str = "Credential storage failed",
        code: str = "token_store.error",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, meta=meta)
