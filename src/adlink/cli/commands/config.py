"""Config inspection commands for the ADLink CLI."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Final

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from adlink.cli import options as cli_options
from adlink.cli.formatting import (
    RichStyles,
    create_config_table,
    flatten_to_dotted,
    format_config_value,
)
from adlink.cli.helpers import build_invocation, resolve_settings
from adlink.cli.models import CliInvocation
from adlink.config.constants import DEFAULT_CONFIG_FILENAME
from adlink.config.settings import (
    BOOTSTRAP_MAX_ATTEMPTS_KEY,
    BOOTSTRAP_PROBE_TIMEOUT_KEY,
    BOOTSTRAP_STORE_PATH_KEY,
    DIRECTORY_BASE_DN_KEY,
    DIRECTORY_DOMAIN_KEY,
    DIRECTORY_PAGE_SIZE_KEY,
    DIRECTORY_PASSWORD_KEY,
    DIRECTORY_PORT_KEY,
    DIRECTORY_SERVER_KEY,
    DIRECTORY_TIMEOUT_KEY,
    DIRECTORY_USE_SSL_KEY,
    DIRECTORY_USERNAME_KEY,
    ENVVAR_TO_SETTINGS_KEY,
    LOGGING_BACKUP_COUNT_KEY,
    LOGGING_FILE_KEY,
    LOGGING_FORMAT_KEY,
    LOGGING_LEVEL_KEY,
    LOGGING_MAX_BYTES_KEY,
    RUNTIME_DEBUG_KEY,
    DirectorySettings,
    LoggingSettings,
    RuntimeSettings,
    resolve_config_file_candidates,
)
from adlink.infrastructure.secret_store import default_store_path

SOURCE_DEFAULT: Final = "Default"
SOURCE_CLI: Final = "CLI"

_EFFECTIVE_CONFIG_KEY_ORDER: tuple[str, ...] = (
    DIRECTORY_DOMAIN_KEY,
    DIRECTORY_SERVER_KEY,
    DIRECTORY_PORT_KEY,
    DIRECTORY_USE_SSL_KEY,
    DIRECTORY_TIMEOUT_KEY,
    DIRECTORY_USERNAME_KEY,
    DIRECTORY_PASSWORD_KEY,
    DIRECTORY_BASE_DN_KEY,
    DIRECTORY_PAGE_SIZE_KEY,
    BOOTSTRAP_MAX_ATTEMPTS_KEY,
    BOOTSTRAP_PROBE_TIMEOUT_KEY,
    BOOTSTRAP_STORE_PATH_KEY,
    RUNTIME_DEBUG_KEY,
    LOGGING_LEVEL_KEY,
    LOGGING_FORMAT_KEY,
    LOGGING_FILE_KEY,
    LOGGING_MAX_BYTES_KEY,
    LOGGING_BACKUP_COUNT_KEY,
)


def _parse_toml_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise typer.BadParameter(f"Cannot parse {path}: {exc}", param_hint="--config") from exc


def _collect_config_file_entries(files: Sequence[Path]) -> dict[str, tuple[Any, str]]:
    """Collect config entries with the file that last set them (overlays win)."""
    result: dict[str, tuple[Any, str]] = {}
    for file in files:
        if not file.exists():
            continue
        try:
            parsed = _parse_toml_file(file)
        except typer.BadParameter:
            continue
        for key, value in flatten_to_dotted(parsed).items():
            result[key] = (value, file.name)
    return result


def _collect_cli_override_values(invocation: CliInvocation) -> dict[str, Any]:
    """Extract all CLI override values from invocation."""
    directory = invocation.directory
    runtime = invocation.runtime
    logging_overrides = invocation.logging
    candidates: dict[str, Any] = {
        DIRECTORY_DOMAIN_KEY: directory.domain,
        DIRECTORY_SERVER_KEY: directory.server,
        DIRECTORY_PORT_KEY: directory.port,
        DIRECTORY_USE_SSL_KEY: directory.use_ssl,
        DIRECTORY_TIMEOUT_KEY: directory.timeout,
        DIRECTORY_USERNAME_KEY: directory.username,
        DIRECTORY_BASE_DN_KEY: directory.base_dn,
        BOOTSTRAP_MAX_ATTEMPTS_KEY: runtime.max_attempts,
        BOOTSTRAP_PROBE_TIMEOUT_KEY: runtime.probe_timeout,
        RUNTIME_DEBUG_KEY: runtime.debug,
        LOGGING_LEVEL_KEY: logging_overrides.level,
        LOGGING_FORMAT_KEY: logging_overrides.format,
        LOGGING_FILE_KEY: logging_overrides.file_path,
        LOGGING_MAX_BYTES_KEY: logging_overrides.max_bytes,
        LOGGING_BACKUP_COUNT_KEY: logging_overrides.backup_count,
    }
    return {key: value for key, value in candidates.items() if value is not None}


def _build_env_source_labels(env_overrides: Mapping[str, str]) -> dict[str, str]:
    labels: dict[str, str] = {}
    for env_var in env_overrides:
        config_key = ENVVAR_TO_SETTINGS_KEY.get(env_var)
        if config_key:
            labels[config_key] = f"ENV ({env_var})"
    return labels


def _build_env_override_rows(env_overrides: Mapping[str, str]) -> list[tuple[str, str, str]]:
    rows: list[tuple[str, str, str]] = []
    for env_var, value in env_overrides.items():
        config_key = ENVVAR_TO_SETTINGS_KEY.get(env_var)
        if not config_key:
            continue
        formatted = format_config_value(config_key, value, log_file_key=LOGGING_FILE_KEY)
        rows.append((config_key, formatted, f"ENV ({env_var})"))
    return rows


def _effective_configuration_values(
    directory_settings: DirectorySettings,
    runtime_settings: RuntimeSettings,
    logging_settings: LoggingSettings,
) -> dict[str, Any]:
    return {
        DIRECTORY_DOMAIN_KEY: directory_settings.domain,
        DIRECTORY_SERVER_KEY: directory_settings.server,
        DIRECTORY_PORT_KEY: directory_settings.port,
        DIRECTORY_USE_SSL_KEY: directory_settings.use_ssl,
        DIRECTORY_TIMEOUT_KEY: directory_settings.timeout,
        DIRECTORY_USERNAME_KEY: directory_settings.username,
        DIRECTORY_PASSWORD_KEY: directory_settings.password,
        DIRECTORY_BASE_DN_KEY: directory_settings.base_dn,
        DIRECTORY_PAGE_SIZE_KEY: directory_settings.page_size,
        BOOTSTRAP_MAX_ATTEMPTS_KEY: runtime_settings.max_attempts,
        BOOTSTRAP_PROBE_TIMEOUT_KEY: runtime_settings.probe_timeout,
        BOOTSTRAP_STORE_PATH_KEY: runtime_settings.store_path or str(default_store_path()),
        RUNTIME_DEBUG_KEY: runtime_settings.debug,
        LOGGING_LEVEL_KEY: logging_settings.level_name,
        LOGGING_FORMAT_KEY: logging_settings.format,
        LOGGING_FILE_KEY: logging_settings.file_path,
        LOGGING_MAX_BYTES_KEY: logging_settings.max_bytes,
        LOGGING_BACKUP_COUNT_KEY: logging_settings.backup_count,
    }


def _determine_source_label(
    key: str,
    cli_keys: frozenset[str],
    env_labels: Mapping[str, str],
    config_entries: Mapping[str, tuple[Any, str]],
) -> str:
    if key in cli_keys:
        return SOURCE_CLI
    if key in env_labels:
        return env_labels[key]
    if key in config_entries:
        return f"Config File ({config_entries[key][1]})"
    return SOURCE_DEFAULT


def _print_config_table(
    title: str,
    rows: Sequence[tuple[str, str, str]],
    stdout_console: Console,
) -> None:
    table = create_config_table(title)
    table.columns[1].overflow = "fold"
    for key, value, source in rows:
        table.add_row(key, value, source)
    stdout_console.print(table)


def register(
    app: typer.Typer,
    *,
    stdout_console: Console,
) -> None:
    """Register config commands with the app."""

    config_app = typer.Typer(
        help="Inspect ADLink configuration files and settings.",
        invoke_without_command=True,
        no_args_is_help=True,
    )
    app.add_typer(config_app, name="config")

    @config_app.callback(invoke_without_command=True)
    def config_group_callback(ctx: typer.Context) -> None:
        """Display help when config group is invoked without a subcommand."""
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())
            raise typer.Exit()

    @config_app.command(
        "show",
        help=(
            "Inspect configuration sources and resolved settings.\n\n"
            "Example: adlink config show --config custom.toml"
        ),
    )
    def config_show(  # NOSONAR python:S107
        config: cli_options.ConfigPathOption = Path(DEFAULT_CONFIG_FILENAME),
        domain: cli_options.DomainOption = None,
        server: cli_options.ServerOption = None,
        port: cli_options.PortOption = None,
        use_ssl: cli_options.UseSslOption = None,
        timeout: cli_options.TimeoutOption = None,
        username: cli_options.UsernameOption = None,
        base_dn: cli_options.BaseDnOption = None,
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        """Display configuration files, overrides, and effective values."""
        invocation = build_invocation(
            config_path=config,
            domain=domain,
            server=server,
            port=port,
            use_ssl=use_ssl,
            timeout=timeout,
            username=username,
            base_dn=base_dn,
            debug=debug,
            log_level=log_level,
            log_format=log_format,
            log_file=log_file,
        )
        directory_settings, runtime_settings, logging_settings = resolve_settings(invocation)
        files = resolve_config_file_candidates(invocation.config_path)
        config_entries = _collect_config_file_entries(files)

        files_table = Table(title="Configuration files", box=box.SIMPLE_HEAVY)
        files_table.add_column("File", style=RichStyles.ACCENT)
        files_table.add_column("Status", style=RichStyles.SECONDARY)
        for file in files:
            files_table.add_row(str(file), "exists" if file.exists() else "missing")
        stdout_console.print(files_table)

        env_overrides = {
            name: value
            for name in ENVVAR_TO_SETTINGS_KEY
            if (value := os.getenv(name)) is not None and value.strip()
        }
        env_labels = _build_env_source_labels(env_overrides)
        env_rows = _build_env_override_rows(env_overrides)
        if env_rows:
            stdout_console.print()
            _print_config_table("Environment overrides", env_rows, stdout_console)

        cli_values = _collect_cli_override_values(invocation)
        cli_rows = [
            (key, format_config_value(key, value, log_file_key=LOGGING_FILE_KEY), SOURCE_CLI)
            for key, value in cli_values.items()
        ]
        if cli_rows:
            stdout_console.print()
            _print_config_table("CLI overrides", cli_rows, stdout_console)

        effective_values = _effective_configuration_values(
            directory_settings, runtime_settings, logging_settings
        )
        cli_keys = frozenset(cli_values)
        effective_rows = [
            (
                key,
                format_config_value(key, effective_values.get(key), log_file_key=LOGGING_FILE_KEY),
                _determine_source_label(key, cli_keys, env_labels, config_entries),
            )
            for key in _EFFECTIVE_CONFIG_KEY_ORDER
        ]
        stdout_console.print()
        _print_config_table("Effective configuration", effective_rows, stdout_console)

        for warning in (*directory_settings.warnings, *runtime_settings.warnings):
            stdout_console.print(f"[{RichStyles.WARNING}]Warning:[/] {warning}")


__all__ = ["register"]
