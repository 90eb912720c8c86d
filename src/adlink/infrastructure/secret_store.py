"""Encrypted at-rest storage for a single identity/secret pair."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from adlink.config.constants import CREDENTIALS_DIRNAME, CREDENTIALS_FILENAME
from adlink.infrastructure.errors import SecretStoreError
from adlink.infrastructure.logging import BoundLogger, get_logger
from adlink.infrastructure.protection import (
    Protector,
    default_protector,
    local_app_data_dir,
)

SEPARATOR = "\n"


def default_store_path() -> Path:
    return local_app_data_dir() / CREDENTIALS_DIRNAME / CREDENTIALS_FILENAME


class SecretStore:
    """Persist one (identity, secret) pair in user-scoped encrypted storage.

    The plaintext ``identity + "\\n" + secret`` is encoded as UTF-8 and protected
    with a :class:`~adlink.infrastructure.protection.Protector`. ``try_load``
    never raises: a missing, corrupt or foreign blob all read as "absent".
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        protector: Protector | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._path = Path(path).expanduser() if path is not None else default_store_path()
        self._protector = protector
        self._logger = logger or get_logger("adlink.secret_store")

    @property
    def path(self) -> Path:
        return self._path

    def _get_protector(self) -> Protector:
        if self._protector is None:
            self._protector = default_protector(self._path.parent)
        return self._protector

    def save(self, identity: str, secret: str) -> None:
        """Overwrite the stored pair. Raises :class:`SecretStoreError` on failure."""

        if SEPARATOR in identity:
            raise SecretStoreError("Identity must not contain a newline", path=str(self._path))
        payload = f"{identity}{SEPARATOR}{secret}".encode("utf-8")
        try:
            blob = self._get_protector().protect(payload)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._atomic_write(blob)
        except SecretStoreError:
            raise
        except Exception as exc:
            raise SecretStoreError(
                f"Failed to save credentials: {exc}", path=str(self._path)
            ) from exc
        self._logger.debug("secret_store.saved", path=str(self._path))

    def _atomic_write(self, blob: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(blob)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def try_load(self) -> tuple[str, str] | None:
        try:
            if not self._path.is_file():
                return None
            blob = self._path.read_bytes()
            plain = self._get_protector().unprotect(blob).decode("utf-8")
        except Exception as exc:
            self._logger.debug(
                "secret_store.load_failed",
                path=str(self._path),
                error_type=type(exc).__name__,
            )
            return None

        identity, sep, secret = plain.partition(SEPARATOR)
        if not sep or not identity or not secret:
            self._logger.debug("secret_store.malformed", path=str(self._path))
            return None
        return identity, secret

    def delete(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise SecretStoreError(
                f"Failed to delete credentials: {exc}", path=str(self._path)
            ) from exc
        self._logger.debug("secret_store.deleted", path=str(self._path))


__all__ = ["SEPARATOR", "SecretStore", "default_store_path"]
