"""User-scoped symmetric protection of small secrets.

On Windows the Data Protection API binds the ciphertext to the current OS
account. Elsewhere a Fernet key is generated once and kept in a file readable
only by the owning user, next to the protected data.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

from adlink.config.constants import APP_DIRNAME

KEY_FILENAME = "protect.key"


class ProtectionError(Exception):
    """Raised when data cannot be protected or unprotected."""


class Protector(Protocol):
    def protect(self, data: bytes) -> bytes: ...

    def unprotect(self, blob: bytes) -> bytes: ...


def local_app_data_dir() -> Path:
    """Return the per-user local application data directory for ADLink."""

    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    elif sys.platform == "darwin":
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_DIRNAME


class DpapiProtector:
    """CryptProtectData/CryptUnprotectData with CurrentUser scope."""

    def __init__(self) -> None:
        if sys.platform != "win32":
            raise ProtectionError("DPAPI is only available on Windows")
        import ctypes
        from ctypes import wintypes

        class _DataBlob(ctypes.Structure):
            _fields_ = [
                ("cbData", wintypes.DWORD),
                ("pbData", ctypes.POINTER(ctypes.c_byte)),
            ]

        self._ctypes = ctypes
        self._blob_type = _DataBlob
        self._crypt32 = ctypes.windll.crypt32
        self._kernel32 = ctypes.windll.kernel32

    def _blob_from_bytes(self, data: bytes):
        ctypes = self._ctypes
        buffer = ctypes.create_string_buffer(data, len(data))
        blob = self._blob_type(len(data), ctypes.cast(buffer, ctypes.POINTER(ctypes.c_byte)))
        blob._buffer = buffer
        return blob

    def _call(self, func, data: bytes) -> bytes:
        ctypes = self._ctypes
        blob_in = self._blob_from_bytes(data)
        blob_out = self._blob_type()
        if not func(ctypes.byref(blob_in), None, None, None, None, 0, ctypes.byref(blob_out)):
            raise ProtectionError(str(ctypes.WinError()))
        try:
            return ctypes.string_at(blob_out.pbData, blob_out.cbData)
        finally:
            self._kernel32.LocalFree(blob_out.pbData)

    def protect(self, data: bytes) -> bytes:
        return self._call(self._crypt32.CryptProtectData, data)

    def unprotect(self, blob: bytes) -> bytes:
        return self._call(self._crypt32.CryptUnprotectData, blob)


class KeyFileProtector:
    """Fernet encryption keyed by an owner-only key file."""

    def __init__(self, key_path: Path) -> None:
        self._key_path = key_path

    @property
    def key_path(self) -> Path:
        return self._key_path

    def _load_key(self, *, create: bool) -> bytes | None:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        if not create:
            return None
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        fd = os.open(self._key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(key)
        return key

    def protect(self, data: bytes) -> bytes:
        key = self._load_key(create=True)
        return Fernet(key).encrypt(data)

    def unprotect(self, blob: bytes) -> bytes:
        key = self._load_key(create=False)
        if key is None:
            raise ProtectionError(f"Protection key missing: {self._key_path}")
        try:
            return Fernet(key).decrypt(blob)
        except (InvalidToken, ValueError) as exc:
            raise ProtectionError("Protected data could not be decrypted") from exc


def default_protector(base_dir: Path | None = None) -> Protector:
    if sys.platform == "win32":
        return DpapiProtector()
    directory = base_dir or local_app_data_dir()
    return KeyFileProtector(directory / KEY_FILENAME)


__all__ = [
    "DpapiProtector",
    "KeyFileProtector",
    "ProtectionError",
    "Protector",
    "default_protector",
    "local_app_data_dir",
]
