"""Top-level ADLink package API."""

from adlink.application.bootstrap import (
    BootstrapAuthenticator,
    BootstrapOutcome,
    BootstrapState,
)
from adlink.application.credentials import CredentialCache
from adlink.application.diagnostics import DiagnosticsEngine
from adlink.infrastructure.secret_store import SecretStore

__all__ = [
    "BootstrapAuthenticator",
    "BootstrapOutcome",
    "BootstrapState",
    "CredentialCache",
    "DiagnosticsEngine",
    "SecretStore",
]
