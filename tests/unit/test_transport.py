from __future__ import annotations

import asyncio
import socket
from struct import pack, unpack

import ldap3
import pytest
from ldap3.core.exceptions import LDAPPackageUnavailableError, LDAPSocketOpenError
from ldap3.utils import ntlm

from adlink.domain.models import Credential, DiagnosticTarget
from adlink.infrastructure import transport as transport_mod
from adlink.infrastructure.errors import (
    DirectoryResultError,
    ErrorCategory,
    classify_exception,
)
from adlink.infrastructure.transport import Ldap3Transport


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_connect_to_listening_port() -> None:
    server = await asyncio.start_server(lambda _r, w: w.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        await Ldap3Transport().connect("127.0.0.1", port)
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_connect_refused_is_port_unreachable() -> None:
    port = _free_port()
    with pytest.raises(OSError) as excinfo:
        await Ldap3Transport().connect("127.0.0.1", port)
    assert classify_exception(excinfo.value, stage="port") is ErrorCategory.PORT_UNREACHABLE


@pytest.mark.asyncio
async def test_resolve_literal_address() -> None:
    addresses = await Ldap3Transport().resolve("127.0.0.1")
    assert addresses == [("127.0.0.1", "IPv4")]


@pytest.mark.parametrize(
    ("platform", "expected"),
    [
        ("win32", ["ping", "-n", "1", "-w", "2500", "dc01"]),
        ("darwin", ["ping", "-c", "1", "-t", "2", "dc01"]),
        ("linux", ["ping", "-c", "1", "-W", "2", "dc01"]),
    ],
)
def test_ping_command_per_platform(
    monkeypatch: pytest.MonkeyPatch, platform: str, expected: list[str]
) -> None:
    monkeypatch.setattr(transport_mod.sys, "platform", platform)
    assert transport_mod._ping_command("dc01", 2.5) == expected


def test_result_error_carries_directory_result() -> None:
    class _Connection:
        result = {
            "result": 49,
            "description": "invalidCredentials",
            "message": "80090308: LdapErr: DSID-0C09042F, data 775, v4563",
        }

    error = transport_mod._result_error("bind", _Connection())

    assert isinstance(error, DirectoryResultError)
    assert error.result_code == 49
    assert classify_exception(error) is ErrorCategory.ACCOUNT_LOCKED_OR_EXPIRED


def test_bind_method_follows_username_form() -> None:
    transport = Ldap3Transport()
    base = DiagnosticTarget(domain="corp.example.com", timeout=5)

    anonymous = transport._connection(base, anonymous=True)
    ntlm = transport._connection(
        DiagnosticTarget(domain="corp.example.com", username="CORP\\alice", password="pw"),
        anonymous=False,
    )
    simple = transport._connection(
        DiagnosticTarget(domain="corp.example.com", username="alice@corp.example.com", password="pw"),
        anonymous=False,
    )

    assert anonymous.authentication == ldap3.ANONYMOUS
    assert ntlm.authentication == ldap3.NTLM
    assert simple.authentication == ldap3.SIMPLE
    assert not anonymous.bound


def test_ssl_server_uses_tls() -> None:
    server = Ldap3Transport()._server(
        DiagnosticTarget(domain="corp.example.com", port=636, use_ssl=True)
    )
    assert server.ssl is True
    assert server.port == 636


def test_first_unwraps_single_values() -> None:
    assert transport_mod._first(["alice"]) == "alice"
    assert transport_mod._first([]) is None
    assert transport_mod._first("bob") == "bob"


class _FailingConnection:
    def __init__(self, error: BaseException) -> None:
        self._error = error
        self.opened = False
        self.unbound = False

    def open(self) -> None:
        self.opened = True

    def bind(self) -> bool:
        raise self._error

    def unbind(self) -> None:
        self.unbound = True


@pytest.mark.parametrize(
    "error",
    [
        ValueError("unsupported hash type MD4"),
        LDAPPackageUnavailableError("package gssapi (or winkerberos) missing"),
        LDAPSocketOpenError("socket connection error"),
    ],
)
def test_failed_bind_always_unbinds(monkeypatch: pytest.MonkeyPatch, error: BaseException) -> None:
    connection = _FailingConnection(error)
    transport = Ldap3Transport()
    monkeypatch.setattr(transport, "_connection", lambda _target, *, anonymous: connection)

    with pytest.raises(type(error)):
        transport._bind(DiagnosticTarget(domain="corp.example.com"), anonymous=False)

    assert connection.opened
    assert connection.unbound


def _challenge_message() -> bytes:
    target_info = pack("<HH", ntlm.AV_END_OF_LIST, 0)
    flags = (
        (1 << ntlm.FLAG_NEGOTIATE_UNICODE)
        | (1 << ntlm.FLAG_NEGOTIATE_NTLM)
        | (1 << ntlm.FLAG_NEGOTIATE_TARGET_INFO)
    )
    return (
        ntlm.NTLM_SIGNATURE
        + pack("<I", ntlm.NTLM_MESSAGE_TYPE_NTLM_CHALLENGE)
        + pack("<HHI", 0, 0, 56)
        + pack("<I", flags)
        + b"\x11" * 8
        + b"\x00" * 8
        + pack("<HHI", len(target_info), len(target_info), 56)
        + b"\x00" * 8
        + target_info
    )


def test_ntlm_authenticate_message_for_domain_account() -> None:
    credential = Credential.from_pair("CORP\\alice", "correct horse")
    # Same split ldap3 applies to an NTLM bind user.
    domain, user = credential.username.split("\\", 1)
    client = ntlm.NtlmClient(domain=domain, user_name=user, password=credential.secret)
    client.parse_challenge_message(_challenge_message())

    message = client.create_authenticate_message()

    assert message[:8] == ntlm.NTLM_SIGNATURE
    assert unpack("<I", message[8:12])[0] == ntlm.NTLM_MESSAGE_TYPE_NTLM_AUTHENTICATE
    assert "alice".encode("utf-16-le") in message
    assert "CORP".encode("utf-16-le") in message
    assert len(client.ntowf_v2()) == 16
