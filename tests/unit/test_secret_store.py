from __future__ import annotations

import sys
from pathlib import Path

import pytest

from adlink.infrastructure.errors import SecretStoreError
from adlink.infrastructure.protection import KeyFileProtector
from adlink.infrastructure.secret_store import SEPARATOR, SecretStore


def _store(tmp_path: Path, *, key_name: str = "protect.key") -> SecretStore:
    return SecretStore(
        tmp_path / "credentials" / "creds.dat",
        protector=KeyFileProtector(tmp_path / key_name),
    )


def test_save_then_load_returns_pair(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save("CORP\\alice", "p@ss word\twith tabs")

    assert store.try_load() == ("CORP\\alice", "p@ss word\twith tabs")
    assert b"alice" not in store.path.read_bytes()


def test_save_overwrites_previous_pair(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save("alice", "one")
    store.save("bob", "two")

    assert store.try_load() == ("bob", "two")
    leftovers = [p.name for p in store.path.parent.iterdir() if p.name != store.path.name]
    assert leftovers == []


def test_secret_may_contain_separator(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save("alice", f"line1{SEPARATOR}line2")

    assert store.try_load() == ("alice", f"line1{SEPARATOR}line2")


def test_identity_with_separator_is_rejected(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(SecretStoreError):
        store.save(f"alice{SEPARATOR}evil", "pw")
    assert not store.path.exists()


def test_missing_blob_reads_as_absent(tmp_path: Path) -> None:
    assert _store(tmp_path).try_load() is None


def test_corrupt_blob_reads_as_absent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save("alice", "pw")
    store.path.write_bytes(b"definitely not a fernet token")

    assert store.try_load() is None


def test_blob_from_another_key_reads_as_absent(tmp_path: Path) -> None:
    _store(tmp_path, key_name="first.key").save("alice", "pw")

    assert _store(tmp_path, key_name="second.key").try_load() is None


def test_malformed_plaintext_reads_as_absent(tmp_path: Path) -> None:
    protector = KeyFileProtector(tmp_path / "protect.key")
    store = SecretStore(tmp_path / "creds.dat", protector=protector)
    store.path.write_bytes(protector.protect(b"no-separator-here"))

    assert store.try_load() is None


def test_delete_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.delete()

    store.save("alice", "pw")
    store.delete()
    assert not store.path.exists()
    assert store.try_load() is None


def test_save_failure_is_wrapped(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = SecretStore(
        blocker / "creds.dat",
        protector=KeyFileProtector(tmp_path / "protect.key"),
    )

    with pytest.raises(SecretStoreError) as excinfo:
        store.save("alice", "pw")
    assert excinfo.value.path == str(blocker / "creds.dat")


@pytest.mark.skipif(sys.platform == "win32", reason="DPAPI is used on Windows")
def test_default_protector_lives_next_to_store(tmp_path: Path) -> None:
    store = SecretStore(tmp_path / "creds.dat")
    store.save("alice", "pw")

    assert (tmp_path / "protect.key").exists()
    assert store.try_load() == ("alice", "pw")
