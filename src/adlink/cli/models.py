"""Normalised CLI inputs passed from Typer commands to the settings layer."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DirectoryOverrides:
    domain: str | None = None
    server: str | None = None
    port: int | None = None
    use_ssl: bool | None = None
    timeout: float | None = None
    username: str | None = None
    base_dn: str | None = None


@dataclass(frozen=True)
class RuntimeOverrides:
    debug: bool | None = None
    max_attempts: int | None = None
    probe_timeout: float | None = None


@dataclass(frozen=True)
class LoggingOverrides:
    level: str | None = None
    format: str | None = None
    file_path: str | None = None
    max_bytes: int | None = None
    backup_count: int | None = None


@dataclass(frozen=True)
class CliInvocation:
    config_path: str | None
    directory: DirectoryOverrides = field(default_factory=DirectoryOverrides)
    runtime: RuntimeOverrides = field(default_factory=RuntimeOverrides)
    logging: LoggingOverrides = field(default_factory=LoggingOverrides)


__all__ = [
    "CliInvocation",
    "DirectoryOverrides",
    "LoggingOverrides",
    "RuntimeOverrides",
]
