"""Network and LDAP operations used by the diagnostics pipeline.

:class:`DirectoryTransport` is the seam between the pipeline and the network.
Each method performs exactly one operation and raises on failure; timeouts and
classification are the caller's concern. :class:`Ldap3Transport` is the real
implementation built on :mod:`ldap3` and :mod:`asyncio` sockets.
"""

from __future__ import annotations

import asyncio
import errno
import re
import socket
import ssl
import sys
import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import ldap3
from ldap3.core.exceptions import LDAPException

from adlink.domain.models import DiagnosticTarget
from adlink.infrastructure.errors import DirectoryResultError

T = TypeVar("T")

ROOT_DSE_ATTRIBUTES = ("defaultNamingContext", "dnsHostName", "ldapServiceName")
SAMPLE_FILTER = "(&(objectClass=user)(objectCategory=person))"
SAMPLE_ATTRIBUTES = ("sAMAccountName", "displayName", "mail")
SAMPLE_SIZE = 5

# sizeLimitExceeded is expected for the capped sample search.
_ACCEPTED_SEARCH_RESULTS = frozenset({0, 4})
_PING_TIME_PATTERN = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)


class DirectoryTransport(Protocol):
    async def resolve(self, host: str) -> list[tuple[str, str]]:
        """Return ``(address, family)`` pairs for *host*."""

    async def ping(self, host: str, timeout: float) -> float:
        """Return the round-trip time in milliseconds."""

    async def connect(self, host: str, port: int) -> None: ...

    async def open_session(self, target: DiagnosticTarget) -> dict[str, Any]: ...

    async def authenticate(self, target: DiagnosticTarget) -> dict[str, Any]: ...

    async def query(self, target: DiagnosticTarget) -> dict[str, Any]: ...


def _family_name(family: int) -> str:
    if family == socket.AF_INET:
        return "IPv4"
    if family == socket.AF_INET6:
        return "IPv6"
    return str(family)


def _ping_command(host: str, timeout: float) -> list[str]:
    if sys.platform == "win32":
        return ["ping", "-n", "1", "-w", str(max(1, int(timeout * 1000))), host]
    if sys.platform == "darwin":
        return ["ping", "-c", "1", "-t", str(max(1, int(timeout))), host]
    return ["ping", "-c", "1", "-W", str(max(1, int(timeout))), host]


def _result_error(operation: str, connection: ldap3.Connection) -> DirectoryResultError:
    result = connection.result or {}
    code = result.get("result")
    return DirectoryResultError(
        operation,
        result_code=code if isinstance(code, int) else -1,
        description=str(result.get("description") or ""),
        server_message=str(result.get("message") or ""),
    )


class Ldap3Transport:
    """Directory transport backed by ldap3 and asyncio sockets."""

    def __init__(self, *, tls_validate: int = ssl.CERT_REQUIRED) -> None:
        self._tls_validate = tls_validate

    async def _run_blocking(self, func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    async def resolve(self, host: str) -> list[tuple[str, str]]:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        addresses: list[tuple[str, str]] = []
        for family, _type, _proto, _canon, sockaddr in infos:
            entry = (str(sockaddr[0]), _family_name(family))
            if entry not in addresses:
                addresses.append(entry)
        return addresses

    async def ping(self, host: str, timeout: float) -> float:
        started = time.perf_counter()
        process = await asyncio.create_subprocess_exec(
            *_ping_command(host, timeout),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise
        if process.returncode != 0:
            raise OSError(errno.EHOSTUNREACH, f"Ping to {host} failed")
        match = _PING_TIME_PATTERN.search(stdout.decode("utf-8", errors="replace"))
        if match:
            return float(match.group(1))
        return (time.perf_counter() - started) * 1000

    async def connect(self, host: str, port: int) -> None:
        _reader, writer = await asyncio.open_connection(host, port)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    def _server(self, target: DiagnosticTarget) -> ldap3.Server:
        tls = ldap3.Tls(validate=self._tls_validate) if target.use_ssl else None
        return ldap3.Server(
            target.host,
            port=target.port,
            use_ssl=target.use_ssl,
            tls=tls,
            get_info=ldap3.NONE,
            connect_timeout=max(1, int(target.timeout)),
        )

    def _connection(self, target: DiagnosticTarget, *, anonymous: bool) -> ldap3.Connection:
        server = self._server(target)
        options: dict[str, Any] = {
            "receive_timeout": max(1, int(target.timeout)),
            "raise_exceptions": False,
            "auto_referrals": False,
        }
        if anonymous:
            return ldap3.Connection(server, authentication=ldap3.ANONYMOUS, **options)
        credential = target.credential
        if credential is None:
            # Ambient identity of the running process (Kerberos ticket).
            return ldap3.Connection(
                server,
                authentication=ldap3.SASL,
                sasl_mechanism=ldap3.KERBEROS,
                **options,
            )
        authentication = ldap3.NTLM if "\\" in credential.username else ldap3.SIMPLE
        return ldap3.Connection(
            server,
            user=credential.username,
            password=credential.secret,
            authentication=authentication,
            **options,
        )

    def _bind(self, target: DiagnosticTarget, *, anonymous: bool) -> ldap3.Connection:
        connection = self._connection(target, anonymous=anonymous)
        try:
            connection.open()
            if not connection.bind():
                raise _result_error("bind", connection)
        except BaseException:
            connection.unbind()
            raise
        return connection

    async def open_session(self, target: DiagnosticTarget) -> dict[str, Any]:
        def _open() -> dict[str, Any]:
            connection = self._bind(target, anonymous=True)
            connection.unbind()
            return {
                "protocol_version": 3,
                "encryption": "SSL/TLS" if target.use_ssl else "none",
            }

        return await self._run_blocking(_open)

    async def authenticate(self, target: DiagnosticTarget) -> dict[str, Any]:
        def _authenticate() -> dict[str, Any]:
            connection = self._bind(target, anonymous=False)
            try:
                who = connection.extend.standard.who_am_i()
            except LDAPException:
                who = None
            finally:
                connection.unbind()
            return {
                "user": target.username or "current user",
                "identity": who or None,
            }

        return await self._run_blocking(_authenticate)

    async def query(self, target: DiagnosticTarget) -> dict[str, Any]:
        def _query() -> dict[str, Any]:
            connection = self._bind(target, anonymous=False)
            try:
                if not connection.search(
                    "",
                    "(objectClass=*)",
                    search_scope=ldap3.BASE,
                    attributes=list(ROOT_DSE_ATTRIBUTES),
                ):
                    raise _result_error("root DSE read", connection)
                root = connection.entries[0].entry_attributes_as_dict if connection.entries else {}
                root_dse = {name: _first(root.get(name)) for name in ROOT_DSE_ATTRIBUTES}

                search_base = target.base_dn or root_dse.get("defaultNamingContext") or ""
                connection.search(
                    search_base,
                    SAMPLE_FILTER,
                    search_scope=ldap3.SUBTREE,
                    attributes=list(SAMPLE_ATTRIBUTES),
                    size_limit=SAMPLE_SIZE,
                )
                code = (connection.result or {}).get("result")
                if code not in _ACCEPTED_SEARCH_RESULTS:
                    raise _result_error("sample search", connection)
                sample = [
                    {
                        "username": _first(entry.entry_attributes_as_dict.get("sAMAccountName")) or "N/A",
                        "display_name": _first(entry.entry_attributes_as_dict.get("displayName")) or "N/A",
                    }
                    for entry in connection.entries[:SAMPLE_SIZE]
                ]
            finally:
                connection.unbind()
            return {"root_dse": root_dse, "search_base": search_base, "sample": sample}

        return await self._run_blocking(_query)


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


__all__ = [
    "DirectoryTransport",
    "Ldap3Transport",
    "ROOT_DSE_ATTRIBUTES",
    "SAMPLE_SIZE",
]
