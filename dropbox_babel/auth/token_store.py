"""
Token Storage

Persists access tokens keyed by user id, namespaced under a fixed
service label (``<bundle id>.dropbox.authv2``).
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import structlog
from cryptography.fernet import Fernet, InvalidToken
from keyring.errors import KeyringError, PasswordDeleteError

from dropbox_babel.config import Settings
from dropbox_babel.kernel.errors import ConfigurationError, TokenStoreError

logger = structlog.get_logger()

# Reserved keyring account holding the JSON list of stored account keys.
INDEX_ACCOUNT = "__accounts__"


class TokenStore(ABC):
    """
    Abstract base class for credential storage.

    Keys are user ids, values are access token strings.
    There is at most one value per key; ``set`` overwrites.
    """

    @abstractmethod
    def set(self, key: str, value: str) -> bool:
        """
        Store a value, replacing any existing entry for the key.

        Returns:
            True if the value was stored
        """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    def get_all(self) -> list[str]:
        """Return every stored key."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove one entry.

        Returns:
            True if an entry was removed
        """

    @abstractmethod
    def clear(self) -> bool:
        """Remove every entry in the namespace."""


class InMemoryTokenStore(TokenStore):
    """
    In-memory token storage for development/testing.

    Tokens are not persisted across processes.
    """

    def __init__(self, service: str = ".dropbox.authv2"):
        self.service = service
        self._tokens: dict[str, str] = {}

    def set(self, key: str, value: str) -> bool:
        self._tokens.pop(key, None)
        self._tokens[key] = value
        logger.debug("Stored token", service=self.service, key=key)
        return True

    def get(self, key: str) -> str | None:
        return self._tokens.get(key)

    def get_all(self) -> list[str]:
        return list(self._tokens)

    def delete(self, key: str) -> bool:
        if key in self._tokens:
            del self._tokens[key]
            logger.debug("Deleted token", service=self.service, key=key)
            return True
        return False

    def clear(self) -> bool:
        self._tokens.clear()
        return True


class KeyringTokenStore(TokenStore):
    """
    OS credential store (macOS Keychain, Windows Credential Manager,
    Secret Service) through ``keyring``.

    keyring cannot enumerate entries, so the stored keys are tracked in an
    index entry under the same service.
    """

    def __init__(self, service: str):
        self.service = service

    def _read_index(self) -> list[str]:
        raw = self._call(keyring.get_password, self.service, INDEX_ACCOUNT)
        if not raw:
            return []
        try:
            keys = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable token index", service=self.service)
            return []
        return [k for k in keys if isinstance(k, str)]

    def _write_index(self, keys: list[str]) -> None:
        if keys:
            self._call(keyring.set_password, self.service, INDEX_ACCOUNT, json.dumps(keys))
        else:
            self._delete_entry(INDEX_ACCOUNT)

    def _delete_entry(self, key: str) -> bool:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise TokenStoreError(
                message=f"Keyring delete failed: {e}",
                meta={"service": self.service},
            ) from e
        return True

    def _call(self, func, *args):
        try:
            return func(*args)
        except KeyringError as e:
            raise TokenStoreError(
                message=f"Keyring access failed: {e}",
                meta={"service": self.service},
            ) from e

    def set(self, key: str, value: str) -> bool:
        if key == INDEX_ACCOUNT:
            raise ValueError(f"{INDEX_ACCOUNT!r} is a reserved key")

        self._delete_entry(key)
        self._call(keyring.set_password, self.service, key, value)

        keys = self._read_index()
        if key not in keys:
            keys.append(key)
            self._write_index(keys)

        logger.debug("Stored token in keyring", service=self.service, key=key)
        return True

    def get(self, key: str) -> str | None:
        return self._call(keyring.get_password, self.service, key)

    def get_all(self) -> list[str]:
        return self._read_index()

    def delete(self, key: str) -> bool:
        deleted = self._delete_entry(key)

        keys = self._read_index()
        if key in keys:
            keys.remove(key)
            self._write_index(keys)

        if deleted:
            logger.debug("Deleted token from keyring", service=self.service, key=key)
        return deleted

    def clear(self) -> bool:
        for key in self._read_index():
            self._delete_entry(key)
        self._delete_entry(INDEX_ACCOUNT)
        return True


class EncryptedFileTokenStore(TokenStore):
    """
    Fernet-encrypted JSON file, for hosts without a keyring backend.

    The whole namespace is one encrypted document; every mutation rewrites it.
    """

    def __init__(self, path: str | Path, encryption_key: bytes, service: str):
        self.path = Path(path).expanduser()
        self.service = service
        self._fernet = Fernet(encryption_key)

    def _load(self) -> dict[str, dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            data = self._fernet.decrypt(self.path.read_bytes())
        except InvalidToken as e:
            raise TokenStoreError(
                message="Token file could not be decrypted",
                code="token_store.decrypt_failed",
                meta={"path": str(self.path)},
            ) from e
        try:
            document = json.loads(data.decode("utf-8"))
            if not isinstance(document, dict):
                raise ValueError("expected a JSON object")
        except ValueError as e:
            raise TokenStoreError(
                message="Token file is corrupt",
                code="token_store.corrupt",
                meta={"path": str(self.path)},
            ) from e
        return document

    def _save(self, document: dict[str, dict[str, str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(self._fernet.encrypt(json.dumps(document).encode("utf-8")))
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)

    def _entries(self, document: dict[str, dict[str, str]]) -> dict[str, str]:
        return document.setdefault(self.service, {})

    def set(self, key: str, value: str) -> bool:
        document = self._load()
        entries = self._entries(document)
        entries.pop(key, None)
        entries[key] = value
        self._save(document)
        logger.debug("Stored token in file", service=self.service, key=key)
        return True

    def get(self, key: str) -> str | None:
        return self._load().get(self.service, {}).get(key)

    def get_all(self) -> list[str]:
        return list(self._load().get(self.service, {}))

    def delete(self, key: str) -> bool:
        document = self._load()
        entries = self._entries(document)
        if key not in entries:
            return False
        del entries[key]
        self._save(document)
        logger.debug("Deleted token from file", service=self.service, key=key)
        return True

    def clear(self) -> bool:
        document = self._load()
        if self.service in document:
            del document[self.service]
            self._save(document)
        return True


def create_token_store(settings: Settings) -> TokenStore:
    """Build the token store selected by ``settings.token_backend``."""
    service = settings.keychain_service

    if settings.token_backend == "memory":
        return InMemoryTokenStore(service=service)

    if settings.token_backend == "file":
        if not settings.token_encryption_key:
            raise ConfigurationError(
                message="DROPBOX_TOKEN_ENCRYPTION_KEY is required for the file token backend",
                code="config.missing_encryption_key",
            )
        return EncryptedFileTokenStore(
            path=settings.token_file,
            encryption_key=settings.token_encryption_key.encode("utf-8"),
            service=service,
        )

    return KeyringTokenStore(service=service)
