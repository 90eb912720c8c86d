"""Reusable helper utilities for the ADLink CLI."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from dynaconf import Dynaconf

from adlink.application.credentials import CredentialCache
from adlink.application.diagnostics import DiagnosticsEngine
from adlink.domain.models import DiagnosticTarget
from adlink.cli import options as cli_options
from adlink.cli.models import (
    CliInvocation,
    DirectoryOverrides,
    LoggingOverrides,
    RuntimeOverrides,
)
from adlink.config.settings import (
    DirectoryInputs,
    DirectorySettings,
    LoggingInputs,
    LoggingSettings,
    RuntimeInputs,
    RuntimeSettings,
    apply_cli_overrides,
    directory_from_settings,
    is_logfile_disabled_value,
    load_settings,
    logging_from_settings,
    runtime_from_settings,
)
from adlink.infrastructure.logging import (
    BoundLogger,
    StructlogEventSink,
    configure_logging,
    get_logger,
)
from adlink.infrastructure.secret_store import SecretStore
from adlink.infrastructure.transport import DirectoryTransport, Ldap3Transport

TransportFactory = Callable[[], DirectoryTransport]

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DEGRADED = 2
EXIT_CONFIGURATION_ERROR = 3


def build_invocation(
    *,
    config_path: Path | str | None,
    domain: str | None = None,
    server: str | None = None,
    port: int | None = None,
    use_ssl: bool | None = None,
    timeout: float | None = None,
    username: str | None = None,
    base_dn: str | None = None,
    debug: bool | None = None,
    max_attempts: int | None = None,
    probe_timeout: float | None = None,
    log_level: str | None = None,
    log_format: str | None = None,
    log_file: str | None = None,
    log_max_bytes: int | None = None,
    log_backup_count: int | None = None,
) -> CliInvocation:
    """Construct a :class:`CliInvocation` with normalized CLI parameters."""

    return CliInvocation(
        config_path=str(config_path) if config_path is not None else None,
        directory=DirectoryOverrides(
            domain=cli_options.clean_string(domain),
            server=cli_options.clean_string(server),
            port=port,
            use_ssl=use_ssl,
            timeout=cli_options.validate_positive("timeout", timeout),
            username=cli_options.clean_string(username),
            base_dn=cli_options.clean_string(base_dn),
        ),
        runtime=RuntimeOverrides(
            debug=debug,
            max_attempts=cli_options.validate_positive("max_attempts", max_attempts),
            probe_timeout=cli_options.validate_positive("probe_timeout", probe_timeout),
        ),
        logging=LoggingOverrides(
            level=cli_options.normalize_log_level(log_level),
            format=cli_options.normalize_log_format(log_format),
            file_path=cli_options.clean_string(log_file),
            max_bytes=cli_options.validate_positive("log_max_bytes", log_max_bytes),
            backup_count=cli_options.validate_positive("log_backup_count", log_backup_count),
        ),
    )


def directory_inputs(overrides: DirectoryOverrides) -> DirectoryInputs | None:
    """Convert CLI directory overrides to :class:`DirectoryInputs`."""

    if all(value is None for value in vars(overrides).values()):
        return None
    return DirectoryInputs(
        domain=overrides.domain,
        server=overrides.server,
        port=overrides.port,
        use_ssl=overrides.use_ssl,
        timeout=overrides.timeout,
        username=overrides.username,
        base_dn=overrides.base_dn,
    )


def runtime_inputs(overrides: RuntimeOverrides) -> RuntimeInputs | None:
    """Convert CLI runtime overrides to :class:`RuntimeInputs`."""

    if (
        overrides.debug is None
        and overrides.max_attempts is None
        and overrides.probe_timeout is None
    ):
        return None
    return RuntimeInputs(
        debug=overrides.debug,
        max_attempts=overrides.max_attempts,
        probe_timeout=overrides.probe_timeout,
    )


def logging_inputs(overrides: LoggingOverrides) -> LoggingInputs | None:
    """Convert CLI logging overrides to :class:`LoggingInputs`."""

    if (
        overrides.level is None
        and overrides.format is None
        and overrides.file_path is None
        and overrides.max_bytes is None
        and overrides.backup_count is None
    ):
        return None

    file_override: str | None
    if overrides.file_path is None:
        file_override = None
    elif is_logfile_disabled_value(overrides.file_path):
        file_override = ""
    else:
        file_override = overrides.file_path

    return LoggingInputs(
        level=overrides.level,
        format=overrides.format,
        file_path=file_override,
        max_bytes=overrides.max_bytes,
        backup_count=overrides.backup_count,
    )


def load_settings_from_invocation(invocation: CliInvocation) -> Dynaconf:
    """Load settings and apply CLI overrides."""

    settings = load_settings(invocation.config_path)
    apply_cli_overrides(
        settings,
        directory_inputs=directory_inputs(invocation.directory),
        runtime_inputs=runtime_inputs(invocation.runtime),
        logging_inputs=logging_inputs(invocation.logging),
    )
    return settings


def resolve_settings(
    invocation: CliInvocation,
) -> tuple[DirectorySettings, RuntimeSettings, LoggingSettings]:
    """Resolve directory, runtime and logging settings from a CLI invocation."""

    settings = load_settings_from_invocation(invocation)
    directory_settings = directory_from_settings(settings)
    runtime_settings = runtime_from_settings(settings)
    logging_settings = logging_from_settings(settings)
    if runtime_settings.debug and logging_settings.level > logging.DEBUG:
        logging_settings = replace(logging_settings, level=logging.DEBUG)
    return directory_settings, runtime_settings, logging_settings


def emit_settings_warnings(
    directory_settings: DirectorySettings,
    runtime_settings: RuntimeSettings,
    logger: BoundLogger,
) -> None:
    for message in (*directory_settings.warnings, *runtime_settings.warnings):
        logger.warning(message)


def initialize_logging(
    directory_settings: DirectorySettings,
    runtime_settings: RuntimeSettings,
    logging_settings: LoggingSettings,
) -> BoundLogger:
    """Configure logging and emit settings warnings."""

    configure_logging(logging_settings)
    logger = get_logger("adlink")
    emit_settings_warnings(directory_settings, runtime_settings, logger)
    return logger


def create_credential_cache(
    directory_settings: DirectorySettings,
    runtime_settings: RuntimeSettings,
    logger: BoundLogger,
    *,
    load_saved: bool = True,
) -> CredentialCache:
    store = SecretStore(runtime_settings.store_path, logger=logger)
    return CredentialCache(
        store,
        configured_username=directory_settings.username,
        configured_password=directory_settings.password,
        logger=logger,
        load_saved=load_saved,
    )


def resolve_target(
    invocation: CliInvocation,
    directory_settings: DirectorySettings,
    cache: CredentialCache,
) -> DiagnosticTarget:
    """Target for a diagnostics run; an explicit ``--username`` bypasses the saved credential."""

    if invocation.directory.username:
        return directory_settings.to_target()
    return directory_settings.to_target(cache.get())


def create_engine(
    runtime_settings: RuntimeSettings,
    logger: BoundLogger,
    transport_factory: TransportFactory = Ldap3Transport,
) -> DiagnosticsEngine:
    sink = StructlogEventSink(logger) if runtime_settings.debug else None
    return DiagnosticsEngine(transport_factory(), logger=logger, event_sink=sink)


__all__ = [
    "EXIT_CONFIGURATION_ERROR",
    "EXIT_DEGRADED",
    "EXIT_FAILED",
    "EXIT_OK",
    "TransportFactory",
    "build_invocation",
    "create_credential_cache",
    "create_engine",
    "directory_inputs",
    "emit_settings_warnings",
    "initialize_logging",
    "load_settings_from_invocation",
    "logging_inputs",
    "resolve_settings",
    "resolve_target",
    "runtime_inputs",
]
