"""In-memory credential cache backed by the encrypted secret store."""

from __future__ import annotations

import threading

from pydantic import SecretStr, ValidationError

from adlink.domain.models import Credential
from adlink.infrastructure.errors import SecretStoreError
from adlink.infrastructure.logging import BoundLogger, get_logger
from adlink.infrastructure.secret_store import SecretStore


class CredentialCache:
    """Source of truth for the credential the running process should use.

    The in-memory value is authoritative for the lifetime of the process;
    the :class:`SecretStore` only provides continuity across runs, so every
    persistence failure is logged and swallowed.
    """

    def __init__(
        self,
        store: SecretStore,
        *,
        configured_username: str | None = None,
        configured_password: str | None = None,
        logger: BoundLogger | None = None,
        load_saved: bool = True,
    ) -> None:
        self._store = store
        self._configured = (configured_username or "", configured_password or "")
        self._config_enabled = True
        self._cached: Credential | None = None
        self._lock = threading.RLock()
        self._logger = logger or get_logger("adlink.credentials")
        if load_saved:
            self.load_saved()

    def load_saved(self) -> Credential | None:
        """Pull a previously saved credential into memory, if one is readable."""

        loaded = self._store.try_load()
        if loaded is None:
            return None
        username, password = loaded
        try:
            credential = Credential(username=username, password=SecretStr(password))
        except ValidationError:
            self._logger.warning("credentials.saved_invalid")
            return None
        with self._lock:
            self._cached = credential
        self._logger.info("credentials.loaded", username=username)
        return credential

    def _configured_credential(self) -> Credential | None:
        username, password = self._configured
        if not self._config_enabled or not username or not password:
            return None
        return Credential(username=username, password=SecretStr(password))

    def has_credential(self) -> bool:
        with self._lock:
            return self._cached is not None or self._configured_credential() is not None

    def get(self) -> Credential | None:
        with self._lock:
            if self._cached is not None:
                return self._cached
            configured = self._configured_credential()
            if configured is not None:
                self._cached = configured
            return configured

    def set(self, username: str, password: str) -> Credential:
        credential = Credential(username=username, password=SecretStr(password))
        with self._lock:
            self._cached = credential
        try:
            self._store.save(username, password)
        except SecretStoreError as exc:
            self._logger.warning(
                "credentials.save_failed", username=username, error=exc.message
            )
        else:
            self._logger.info("credentials.saved", username=username)
        return credential

    def set_credential(self, credential: Credential) -> Credential:
        return self.set(credential.username, credential.secret)

    def clear(self) -> None:
        with self._lock:
            self._cached = None
            # A configured service account that was just rejected must not be
            # offered again by get().
            self._config_enabled = False
        try:
            self._store.delete()
        except SecretStoreError as exc:
            self._logger.warning("credentials.clear_failed", error=exc.message)
        else:
            self._logger.info("credentials.cleared")


__all__ = ["CredentialCache"]
