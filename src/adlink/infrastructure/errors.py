"""Error taxonomy, classification table and remediation guidance.

Every failure raised while talking to a directory service is reduced to one of
the :class:`ErrorCategory` members. Classification is table driven: each
:class:`ClassificationRule` is keyed by portable signals (LDAP result codes,
Active Directory bind sub-codes, ``errno`` values, exception types and message
fragments) and the first matching rule wins.
"""

from __future__ import annotations

import errno
import socket
import ssl
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from ldap3.core.exceptions import LDAPPackageUnavailableError


class ErrorCategory(str, Enum):
    CONFIGURATION_INVALID = "configuration_invalid"
    NAME_RESOLUTION_FAILED = "name_resolution_failed"
    HOST_UNREACHABLE = "host_unreachable"
    PORT_UNREACHABLE = "port_unreachable"
    PROTOCOL_HANDSHAKE_FAILED = "protocol_handshake_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED_OR_EXPIRED = "account_locked_or_expired"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @property
    def is_credential_problem(self) -> bool:
        return self in _CREDENTIAL_CATEGORIES


_CREDENTIAL_CATEGORIES: Final = frozenset(
    {
        ErrorCategory.INVALID_CREDENTIALS,
        ErrorCategory.ACCOUNT_LOCKED_OR_EXPIRED,
    }
)


REMEDIATION: Final[dict[ErrorCategory, str]] = {
    ErrorCategory.CONFIGURATION_INVALID: (
        "The directory configuration is incomplete or inconsistent. Set the "
        "domain, use a port between 1 and 65535, and either provide both a "
        "username and a password or leave both empty to use the current user. "
        "Signing in as the current user needs the Kerberos extra (pip install "
        "'adlink[kerberos]'); DOMAIN\\username sign-in needs pycryptodome for "
        "the NTLM password hash."
    ),
    ErrorCategory.NAME_RESOLUTION_FAILED: (
        "The directory host name could not be resolved. Check that the domain "
        "name is spelled correctly, verify the DNS server settings, or "
        "configure the domain controller's IP address as the server."
    ),
    ErrorCategory.HOST_UNREACHABLE: (
        "The directory host did not answer the reachability probe. This is "
        "often normal when ICMP is blocked by a firewall; otherwise check "
        "network connectivity and whether a VPN connection is required."
    ),
    ErrorCategory.PORT_UNREACHABLE: (
        "The directory port did not accept a connection. Make sure a firewall "
        "is not blocking it, that the server is running on this port, and that "
        "the port matches the mode (389 for LDAP, 636 for LDAPS)."
    ),
    ErrorCategory.PROTOCOL_HANDSHAKE_FAILED: (
        "The directory server is unavailable or rejected the LDAP session. "
        "Check that the domain controller is running, verify the SSL/TLS "
        "settings and certificates, and try again later if the server is busy."
    ),
    ErrorCategory.INVALID_CREDENTIALS: (
        "The username or password was rejected. Check both values and use the "
        "DOMAIN\\username or username@domain.com format."
    ),
    ErrorCategory.ACCOUNT_LOCKED_OR_EXPIRED: (
        "The account is locked, disabled or its password has expired. Ask a "
        "directory administrator to unlock or re-enable the account, or change "
        "the password before signing in again."
    ),
    ErrorCategory.INSUFFICIENT_PERMISSION: (
        "The account signed in but is not allowed to read the directory. Ask "
        "an administrator for read permission and verify the search base DN."
    ),
    ErrorCategory.TIMEOUT: (
        "The directory did not respond within the configured timeout. Check "
        "network latency, increase the timeout setting, or verify that the "
        "server is not overloaded."
    ),
    ErrorCategory.UNKNOWN: (
        "An unexpected error occurred. Check the directory server logs and the "
        "application log for the raw error message, verify the configuration, "
        "and contact a system administrator if the problem persists."
    ),
}


def remediation_for(category: ErrorCategory) -> str:
    return REMEDIATION[category]


@dataclass(frozen=True)
class ErrorContext:
    code: str
    stage: str | None = None
    host: str | None = None
    port: int | None = None
    detail: str | None = None


class AdlinkError(Exception):
    """Base error carrying a classified context and remediation hints."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext,
        hints: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        self.hints = tuple(hints)

    @property
    def category(self) -> ErrorCategory:
        try:
            return ErrorCategory(self.context.code)
        except ValueError:
            return ErrorCategory.UNKNOWN

    @property
    def user_message(self) -> str:
        if not self.hints:
            return self.message
        return "\n".join([self.message, *self.hints])


class ConfigurationError(AdlinkError):
    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = tuple(issues)
        super().__init__(
            "Configuration is invalid: " + "; ".join(self.issues),
            context=ErrorContext(code=ErrorCategory.CONFIGURATION_INVALID.value),
            hints=(remediation_for(ErrorCategory.CONFIGURATION_INVALID),),
        )


class SecretStoreError(AdlinkError):
    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(
            message,
            context=ErrorContext(code=ErrorCategory.UNKNOWN.value, detail=path),
        )
        self.path = path


class DirectoryResultError(AdlinkError):
    """An LDAP operation completed with a non-success result code."""

    def __init__(
        self,
        operation: str,
        *,
        result_code: int,
        description: str = "",
        server_message: str = "",
    ) -> None:
        self.operation = operation
        self.result_code = result_code
        self.description = description
        self.server_message = server_message
        text = f"{operation} failed: {description or 'result'} ({result_code})"
        if server_message:
            text = f"{text}: {server_message}"
        super().__init__(
            text,
            context=ErrorContext(code=ErrorCategory.UNKNOWN.value, detail=server_message),
        )


# LDAP result codes (RFC 4511) used as classification keys.
LDAP_INSUFFICIENT_ACCESS_RIGHTS: Final = 50
LDAP_INVALID_CREDENTIALS: Final = 49
LDAP_BUSY: Final = 51
LDAP_UNAVAILABLE: Final = 52
LDAP_SERVER_DOWN: Final = 81
LDAP_TIMEOUT: Final = 85
LDAP_TIME_LIMIT_EXCEEDED: Final = 3


@dataclass(frozen=True)
class ErrorSignal:
    """Portable view over an exception chain used for classification."""

    exceptions: tuple[BaseException, ...]
    message: str
    result_codes: frozenset[int]
    errnos: frozenset[int]

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorSignal:
        chain = tuple(_walk_chain(exc))
        messages: list[str] = []
        result_codes: set[int] = set()
        errnos: set[int] = set()
        for item in chain:
            text = str(item)
            if text:
                messages.append(text)
            for attr in ("result_code", "result"):
                value = getattr(item, attr, None)
                if isinstance(value, int) and not isinstance(value, bool):
                    result_codes.add(value)
            for attr in ("server_message", "description"):
                value = getattr(item, attr, None)
                if isinstance(value, str) and value:
                    messages.append(value)
            code = getattr(item, "errno", None)
            if isinstance(code, int):
                errnos.add(code)
        return cls(
            exceptions=chain,
            message=" | ".join(messages).lower(),
            result_codes=frozenset(result_codes),
            errnos=frozenset(errnos),
        )

    @property
    def raw_message(self) -> str:
        head = self.exceptions[0]
        return str(head) or type(head).__name__


def _walk_chain(exc: BaseException, *, limit: int = 6) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and len(seen) < limit and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


@dataclass(frozen=True)
class ClassificationRule:
    category: ErrorCategory
    exception_types: tuple[type[BaseException], ...] = ()
    result_codes: frozenset[int] = frozenset()
    errnos: frozenset[int] = frozenset()
    substrings: tuple[str, ...] = ()
    stages: frozenset[str] | None = None
    exclude_substrings: tuple[str, ...] = field(default=())

    def matches(self, signal: ErrorSignal, stage: str | None) -> bool:
        if self.stages is not None and stage not in self.stages:
            return False
        if any(token in signal.message for token in self.exclude_substrings):
            return False
        if self.exception_types and any(
            isinstance(item, self.exception_types) for item in signal.exceptions
        ):
            return True
        if self.result_codes & signal.result_codes:
            return True
        if self.errnos & signal.errnos:
            return True
        return any(token in signal.message for token in self.substrings)


_TIMEOUT_TYPES: Final[tuple[type[BaseException], ...]] = (TimeoutError, socket.timeout)
_TIMEOUT_TOKENS: Final = ("timed out", "timeout")
_REFUSED_ERRNOS: Final = frozenset(
    code
    for code in (
        getattr(errno, "ECONNREFUSED", None),
        getattr(errno, "WSAECONNREFUSED", None),
    )
    if code is not None
)
_UNREACHABLE_ERRNOS: Final = frozenset(
    code
    for code in (
        getattr(errno, "EHOSTUNREACH", None),
        getattr(errno, "ENETUNREACH", None),
        getattr(errno, "WSAEHOSTUNREACH", None),
        getattr(errno, "WSAENETUNREACH", None),
    )
    if code is not None
)
_TIMEOUT_ERRNOS: Final = frozenset(
    code
    for code in (getattr(errno, "ETIMEDOUT", None), getattr(errno, "WSAETIMEDOUT", None))
    if code is not None
)

# Ordered: missing local sign-in support, then stage-scoped rules, then Active
# Directory sub-codes (which arrive together with result code 49), then generic
# signals.
CLASSIFICATION_TABLE: Final[tuple[ClassificationRule, ...]] = (
    ClassificationRule(
        ErrorCategory.CONFIGURATION_INVALID,
        exception_types=(LDAPPackageUnavailableError,),
        substrings=("unsupported hash type md4", "gssapi (or winkerberos) missing"),
    ),
    ClassificationRule(
        ErrorCategory.PORT_UNREACHABLE,
        exception_types=_TIMEOUT_TYPES + (ConnectionRefusedError,),
        errnos=_REFUSED_ERRNOS | _TIMEOUT_ERRNOS,
        substrings=_TIMEOUT_TOKENS + ("connection refused",),
        stages=frozenset({"port"}),
    ),
    ClassificationRule(
        ErrorCategory.NAME_RESOLUTION_FAILED,
        exception_types=(socket.gaierror,),
        substrings=("no addresses", "could not resolve"),
        stages=frozenset({"name_resolution"}),
    ),
    ClassificationRule(
        ErrorCategory.ACCOUNT_LOCKED_OR_EXPIRED,
        substrings=(
            "data 775",
            "data 533",
            "data 532",
            "data 701",
            "data 773",
            "account locked",
            "account disabled",
            "account expired",
            "password expired",
            "password must be changed",
        ),
    ),
    ClassificationRule(
        ErrorCategory.INVALID_CREDENTIALS,
        result_codes=frozenset({LDAP_INVALID_CREDENTIALS}),
        substrings=("data 52e", "invalidcredentials", "invalid credentials", "logon failure"),
    ),
    ClassificationRule(
        ErrorCategory.INSUFFICIENT_PERMISSION,
        result_codes=frozenset({LDAP_INSUFFICIENT_ACCESS_RIGHTS}),
        substrings=(
            "insufficientaccessrights",
            "insufficient access",
            "operations error",
            "operationserror",
        ),
    ),
    ClassificationRule(
        ErrorCategory.TIMEOUT,
        exception_types=_TIMEOUT_TYPES,
        result_codes=frozenset({LDAP_TIMEOUT, LDAP_TIME_LIMIT_EXCEEDED}),
        errnos=_TIMEOUT_ERRNOS,
        substrings=_TIMEOUT_TOKENS,
    ),
    ClassificationRule(
        ErrorCategory.NAME_RESOLUTION_FAILED,
        exception_types=(socket.gaierror,),
        substrings=(
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo",
            "no address associated",
            "temporary failure in name resolution",
        ),
    ),
    ClassificationRule(
        ErrorCategory.PORT_UNREACHABLE,
        exception_types=(ConnectionRefusedError,),
        errnos=_REFUSED_ERRNOS,
        substrings=("connection refused", "actively refused"),
    ),
    ClassificationRule(
        ErrorCategory.HOST_UNREACHABLE,
        errnos=_UNREACHABLE_ERRNOS,
        substrings=("no route to host", "host unreachable", "network is unreachable"),
    ),
    ClassificationRule(
        ErrorCategory.PROTOCOL_HANDSHAKE_FAILED,
        exception_types=(ssl.SSLError,),
        result_codes=frozenset({LDAP_BUSY, LDAP_UNAVAILABLE, LDAP_SERVER_DOWN}),
        substrings=(
            "server down",
            "unavailable",
            "socket open",
            "session terminated",
            "ssl",
            "tls",
            "certificate",
            "protocol error",
        ),
    ),
)

STAGE_DEFAULT_CATEGORY: Final[dict[str, ErrorCategory]] = {
    "configuration": ErrorCategory.CONFIGURATION_INVALID,
    "name_resolution": ErrorCategory.NAME_RESOLUTION_FAILED,
    "reachability": ErrorCategory.HOST_UNREACHABLE,
    "port": ErrorCategory.PORT_UNREACHABLE,
    "handshake": ErrorCategory.PROTOCOL_HANDSHAKE_FAILED,
}


def classify_exception(exc: BaseException, *, stage: str | None = None) -> ErrorCategory:
    """Map *exc* onto the closed error taxonomy."""

    if isinstance(exc, ConfigurationError):
        return ErrorCategory.CONFIGURATION_INVALID
    signal = ErrorSignal.from_exception(exc)
    for rule in CLASSIFICATION_TABLE:
        if rule.matches(signal, stage):
            return rule.category
    if stage is not None and stage in STAGE_DEFAULT_CATEGORY:
        return STAGE_DEFAULT_CATEGORY[stage]
    return ErrorCategory.UNKNOWN


__all__ = [
    "AdlinkError",
    "CLASSIFICATION_TABLE",
    "ClassificationRule",
    "ConfigurationError",
    "DirectoryResultError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSignal",
    "REMEDIATION",
    "SecretStoreError",
    "classify_exception",
    "remediation_for",
]
