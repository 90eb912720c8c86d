from __future__ import annotations

import asyncio
import logging
import os
from collections import Counter
from typing import Any

import pytest
import structlog

from adlink.domain.models import DiagnosticTarget
from adlink.infrastructure.errors import DirectoryResultError

INVALID_CREDENTIALS_MESSAGE = (
    "80090308: LdapErr: DSID-0C09042F, comment: AcceptSecurityContext error, data 52e, v4563"
)


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("adlink")
    group.addoption(
        "--offline",
        action="store_true",
        dest="adlink_offline",
        help="Run offline tests only (deselect tests marked 'online').",
    )
    group.addoption(
        "--online-only",
        action="store_true",
        dest="adlink_online_only",
        help="Run only tests marked 'online' (deselect offline).",
    )


def _is_integration_path(s: str) -> bool:
    s = s.replace("\\", "/")
    return s.startswith("tests/integration/") or "/tests/integration/" in s


def _mark_by_path(items: list[pytest.Item]) -> None:
    for item in items:
        node_str = str(getattr(item, "fspath", item.nodeid))
        marker = (
            pytest.mark.online
            if _is_integration_path(node_str)
            else pytest.mark.offline
        )
        item.add_marker(marker)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    _mark_by_path(items)

    offline_only = bool(config.getoption("adlink_offline"))
    online_only = bool(config.getoption("adlink_online_only"))

    if offline_only and online_only:
        raise pytest.UsageError("--offline and --online-only are mutually exclusive")

    deselect: list[pytest.Item] = []
    if online_only:
        deselect = [i for i in items if "online" not in i.keywords]
    elif offline_only:
        deselect = [i for i in items if "online" in i.keywords]

    if not deselect:
        return

    config.hook.pytest_deselected(items=deselect)
    items[:] = [i for i in items if i not in deselect]


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    # Live-test switches are the only ADLINK_* variables allowed through.
    for name in list(os.environ):
        if name.startswith("ADLINK_") and not name.startswith("ADLINK_LIVE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_logging() -> Any:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class FakeTransport:
    """In-memory directory transport that counts calls per operation.

    ``failures`` maps an operation name to the exception it raises, ``delays``
    to a sleep (seconds) before it answers. When ``accounts`` is set only those
    username/password pairs authenticate.
    """

    def __init__(
        self,
        *,
        failures: dict[str, BaseException] | None = None,
        delays: dict[str, float] | None = None,
        accounts: dict[str, str] | None = None,
        addresses: list[tuple[str, str]] | None = None,
    ) -> None:
        self.calls: Counter[str] = Counter()
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.accounts = accounts
        self.addresses = [("192.0.2.10", "IPv4")] if addresses is None else addresses
        self.targets: list[DiagnosticTarget] = []

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        delay = self.delays.get(operation)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    async def resolve(self, host: str) -> list[tuple[str, str]]:
        await self._enter("resolve")
        return list(self.addresses)

    async def ping(self, host: str, timeout: float) -> float:
        await self._enter("ping")
        return 1.5

    async def connect(self, host: str, port: int) -> None:
        await self._enter("connect")

    async def open_session(self, target: DiagnosticTarget) -> dict[str, Any]:
        await self._enter("open_session")
        return {"protocol_version": 3, "encryption": "SSL/TLS" if target.use_ssl else "none"}

    async def authenticate(self, target: DiagnosticTarget) -> dict[str, Any]:
        await self._enter("authenticate")
        self.targets.append(target)
        if self.accounts is not None and self.accounts.get(target.username or "") != target.password:
            raise DirectoryResultError(
                "bind",
                result_code=49,
                description="invalidCredentials",
                server_message=INVALID_CREDENTIALS_MESSAGE,
            )
        return {"user": target.username or "current user"}

    async def query(self, target: DiagnosticTarget) -> dict[str, Any]:
        await self._enter("query")
        return {
            "root_dse": {"defaultNamingContext": "DC=corp,DC=example,DC=com"},
            "search_base": target.base_dn or "DC=corp,DC=example,DC=com",
            "sample": [
                {"username": "alice", "display_name": "Alice Example"},
                {"username": "bob", "display_name": "Bob Example"},
            ],
        }


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_transport_cls() -> type[FakeTransport]:
    return FakeTransport


@pytest.fixture
def target() -> DiagnosticTarget:
    return DiagnosticTarget(domain="corp.example.com", timeout=30.0)
