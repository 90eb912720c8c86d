from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from adlink.infrastructure.protection import (
    DpapiProtector,
    KeyFileProtector,
    ProtectionError,
    default_protector,
    local_app_data_dir,
)


def test_key_file_protector_round_trip(tmp_path: Path) -> None:
    protector = KeyFileProtector(tmp_path / "keys" / "protect.key")
    blob = protector.protect(b"secret payload")

    assert blob != b"secret payload"
    assert protector.unprotect(blob) == b"secret payload"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_key_file_is_owner_only(tmp_path: Path) -> None:
    protector = KeyFileProtector(tmp_path / "protect.key")
    protector.protect(b"x")

    mode = stat.S_IMODE(os.stat(protector.key_path).st_mode)
    assert mode == 0o600


def test_unprotect_without_key_fails(tmp_path: Path) -> None:
    with pytest.raises(ProtectionError):
        KeyFileProtector(tmp_path / "missing.key").unprotect(b"anything")
    assert not (tmp_path / "missing.key").exists()


def test_unprotect_with_wrong_key_fails(tmp_path: Path) -> None:
    blob = KeyFileProtector(tmp_path / "a.key").protect(b"payload")
    with pytest.raises(ProtectionError):
        KeyFileProtector(tmp_path / "b.key").unprotect(blob)


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="XDG layout")
def test_local_app_data_dir_respects_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert local_app_data_dir() == tmp_path / "ADLink"


@pytest.mark.skipif(sys.platform == "win32", reason="DPAPI is used on Windows")
def test_default_protector_off_windows(tmp_path: Path) -> None:
    protector = default_protector(tmp_path)

    assert isinstance(protector, KeyFileProtector)
    assert protector.key_path == tmp_path / "protect.key"


@pytest.mark.skipif(sys.platform == "win32", reason="DPAPI is available on Windows")
def test_dpapi_unavailable_elsewhere() -> None:
    with pytest.raises(ProtectionError):
        DpapiProtector()
