from __future__ import annotations

from pathlib import Path

from adlink.application.credentials import CredentialCache
from adlink.infrastructure.protection import KeyFileProtector
from adlink.infrastructure.secret_store import SecretStore


def _store(path: Path, key_dir: Path) -> SecretStore:
    return SecretStore(path, protector=KeyFileProtector(key_dir / "protect.key"))


def test_set_then_get_survives_unwritable_store(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    cache = CredentialCache(_store(blocker / "creds.dat", tmp_path))

    cache.set("CORP\\alice", "pw")

    credential = cache.get()
    assert credential is not None
    assert credential.username == "CORP\\alice"
    assert credential.secret == "pw"
    assert cache.has_credential()


def test_set_persists_for_next_process(tmp_path: Path) -> None:
    store_path = tmp_path / "creds.dat"
    CredentialCache(_store(store_path, tmp_path)).set("alice", "pw")

    reloaded = CredentialCache(_store(store_path, tmp_path))
    credential = reloaded.get()
    assert credential is not None
    assert (credential.username, credential.secret) == ("alice", "pw")


def test_load_saved_can_be_deferred(tmp_path: Path) -> None:
    store_path = tmp_path / "creds.dat"
    CredentialCache(_store(store_path, tmp_path)).set("alice", "pw")

    cache = CredentialCache(_store(store_path, tmp_path), load_saved=False)
    assert cache.get() is None
    assert cache.load_saved() is not None
    assert cache.get().username == "alice"


def test_configured_pair_is_the_fallback(tmp_path: Path) -> None:
    cache = CredentialCache(
        _store(tmp_path / "creds.dat", tmp_path),
        configured_username="svc-ldap",
        configured_password="service-pw",
    )

    assert cache.has_credential()
    credential = cache.get()
    assert credential is not None
    assert credential.username == "svc-ldap"


def test_saved_credential_wins_over_configured(tmp_path: Path) -> None:
    store_path = tmp_path / "creds.dat"
    CredentialCache(_store(store_path, tmp_path)).set("alice", "pw")

    cache = CredentialCache(
        _store(store_path, tmp_path),
        configured_username="svc-ldap",
        configured_password="service-pw",
    )
    assert cache.get().username == "alice"


def test_half_configured_pair_is_ignored(tmp_path: Path) -> None:
    cache = CredentialCache(
        _store(tmp_path / "creds.dat", tmp_path),
        configured_username="svc-ldap",
    )

    assert not cache.has_credential()
    assert cache.get() is None


def test_clear_drops_memory_disk_and_configured_fallback(tmp_path: Path) -> None:
    store_path = tmp_path / "creds.dat"
    cache = CredentialCache(
        _store(store_path, tmp_path),
        configured_username="svc-ldap",
        configured_password="service-pw",
    )
    cache.set("alice", "pw")
    assert store_path.exists()

    cache.clear()

    assert cache.get() is None
    assert not cache.has_credential()
    assert not store_path.exists()


def test_set_after_clear_is_used_again(tmp_path: Path) -> None:
    cache = CredentialCache(_store(tmp_path / "creds.dat", tmp_path))
    cache.clear()
    cache.set("bob", "pw2")

    assert cache.get().username == "bob"
