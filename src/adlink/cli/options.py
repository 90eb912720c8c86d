"""Typer option declarations and normalization helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Final

import typer

LOG_FORMAT_CHOICES: Final[set[str]] = {"text", "json"}
LOG_LEVEL_CHOICES: Final[list[str]] = sorted(
    name
    for name, value in logging.getLevelNamesMapping().items()
    if isinstance(name, str) and not name.isdigit()
)
LOG_LEVEL_SET: Final[set[str]] = {choice.upper() for choice in LOG_LEVEL_CHOICES}

ConfigPathOption = Annotated[
    Path,
    typer.Option(
        "--config",
        help="Path to an ADLink configuration TOML file to load",
        envvar="ADLINK_CONFIG",
        show_envvar=True,
        rich_help_panel="Configuration",
    ),
]

DomainOption = Annotated[
    str | None,
    typer.Option(
        "--domain",
        help="Directory domain name (e.g. corp.example.com)",
        rich_help_panel="Directory",
    ),
]

ServerOption = Annotated[
    str | None,
    typer.Option(
        "--server",
        help="Explicit domain controller host (defaults to the domain name)",
        rich_help_panel="Directory",
    ),
]

PortOption = Annotated[
    int | None,
    typer.Option(
        "--port",
        help="LDAP port (389 plain, 636 LDAPS)",
        rich_help_panel="Directory",
    ),
]

UseSslOption = Annotated[
    bool | None,
    typer.Option(
        "--use-ssl/--no-ssl",
        help="Use LDAPS for the directory connection",
        rich_help_panel="Directory",
    ),
]

TimeoutOption = Annotated[
    float | None,
    typer.Option(
        "--timeout",
        help="Per-operation timeout in seconds",
        rich_help_panel="Directory",
    ),
]

UsernameOption = Annotated[
    str | None,
    typer.Option(
        "--username",
        help=(
            "Service account (DOMAIN\\user or user@domain) used instead of the saved "
            "credential; password comes from ADLINK_PASSWORD or directory.password"
        ),
        rich_help_panel="Authentication",
    ),
]

BaseDnOption = Annotated[
    str | None,
    typer.Option(
        "--base-dn",
        help="Search base for the sample query (defaults to the naming context)",
        rich_help_panel="Directory",
    ),
]

MaxAttemptsOption = Annotated[
    int | None,
    typer.Option(
        "--max-attempts",
        min=1,
        help="Interactive sign-in attempts before giving up",
        envvar="ADLINK_MAX_ATTEMPTS",
        show_envvar=True,
        rich_help_panel="Authentication",
    ),
]

ProbeTimeoutOption = Annotated[
    float | None,
    typer.Option(
        "--probe-timeout",
        help="Upper bound in seconds for the start-up validation probe",
        envvar="ADLINK_PROBE_TIMEOUT",
        show_envvar=True,
        rich_help_panel="Authentication",
    ),
]

DebugOption = Annotated[
    bool | None,
    typer.Option(
        "--debug/--no-debug",
        help="Enable verbose diagnostics",
        envvar="ADLINK_DEBUG",
        show_envvar=True,
        rich_help_panel="Diagnostics",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        help="Logging level (e.g. INFO, DEBUG)",
        envvar="ADLINK_LOG_LEVEL",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFormatOption = Annotated[
    str | None,
    typer.Option(
        "--log-format",
        help="Logging format (text or json)",
        envvar="ADLINK_LOG_FORMAT",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFileOption = Annotated[
    str | None,
    typer.Option(
        "--log-file",
        help="Path to a log file (use '-', none, stderr to disable)",
        envvar="ADLINK_LOG_FILE",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogMaxBytesOption = Annotated[
    int | None,
    typer.Option(
        "--log-max-bytes",
        min=1,
        help="Maximum size in bytes for rotating log files",
        envvar="ADLINK_LOG_MAX_BYTES",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogBackupCountOption = Annotated[
    int | None,
    typer.Option(
        "--log-backup-count",
        min=1,
        help="Number of rotating log file backups to retain",
        envvar="ADLINK_LOG_BACKUP_COUNT",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]


def clean_string(value: str | None) -> str | None:
    """Normalize optional string input."""

    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def validate_positive(name: str, value: int | float | None) -> int | float | None:
    """Validate that a numeric option is positive when provided."""

    if value is None:
        return None
    if value <= 0:
        raise typer.BadParameter(
            f"{name} must be a positive number",
            param_hint=f"--{name.replace('_', '-')}",
        )
    return value


def normalize_log_format(value: str | None) -> str | None:
    """Normalize the log format option."""

    if value is None:
        return None
    candidate = value.strip().lower()
    if not candidate:
        return None
    if candidate not in LOG_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Log format must be either 'text' or 'json'",
            param_hint="--log-format",
        )
    return candidate


def normalize_log_level(value: str | None) -> str | None:
    """Normalize the log level option."""

    if value is None:
        return None
    candidate = value.strip().upper()
    if not candidate:
        return None
    if candidate not in LOG_LEVEL_SET:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(LOG_LEVEL_CHOICES)}",
            param_hint="--log-level",
        )
    return candidate


__all__ = [
    "BaseDnOption",
    "ConfigPathOption",
    "DebugOption",
    "DomainOption",
    "LOG_FORMAT_CHOICES",
    "LOG_LEVEL_CHOICES",
    "LogBackupCountOption",
    "LogFileOption",
    "LogFormatOption",
    "LogLevelOption",
    "LogMaxBytesOption",
    "MaxAttemptsOption",
    "PortOption",
    "ProbeTimeoutOption",
    "ServerOption",
    "TimeoutOption",
    "UseSslOption",
    "UsernameOption",
    "clean_string",
    "normalize_log_format",
    "normalize_log_level",
    "validate_positive",
]
