"""Connection diagnostics commands: ``adlink diagnose`` and ``adlink check``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from adlink.cli import options as cli_options
from adlink.cli.formatting import RichStyles, build_target_table, render_report
from adlink.cli.helpers import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_DEGRADED,
    EXIT_FAILED,
    EXIT_OK,
    TransportFactory,
    build_invocation,
    create_credential_cache,
    create_engine,
    initialize_logging,
    resolve_settings,
    resolve_target,
)
from adlink.cli.sync_bridge import await_sync
from adlink.config.constants import DEFAULT_CONFIG_FILENAME
from adlink.infrastructure.transport import Ldap3Transport
from adlink.domain.models import DiagnosticReport

JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Print the report as JSON instead of a table"),
]


def report_exit_code(report: DiagnosticReport) -> int:
    if report.fully_operational:
        return EXIT_OK
    if report.usable:
        return EXIT_DEGRADED
    return EXIT_FAILED


def report_payload(report: DiagnosticReport) -> dict:
    payload = report.model_dump(mode="json")
    payload["flags"] = dict(report.as_flags())
    return payload


def register(
    app: typer.Typer,
    *,
    stdout_console: Console,
    stderr_console: Console,
    transport_factory: TransportFactory = Ldap3Transport,
) -> None:
    """Register the diagnostics commands with the app."""

    @app.command(
        help=(
            "Run the full seven-stage connection diagnostics.\n\n"
            "Exit code 0 when fully operational, 2 when only the reachability "
            "probe failed, 1 otherwise."
        ),
    )
    def diagnose(  # NOSONAR python:S107
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
        log_max_bytes: cli_options.LogMaxBytesOption = None,
        log_backup_count: cli_options.LogBackupCountOption = None,
        json_output: JsonOption = False,
    ) -> None:
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
            log_max_bytes=log_max_bytes,
            log_backup_count=log_backup_count,
        )
        directory_settings, runtime_settings, logging_settings = resolve_settings(invocation)
        logger = initialize_logging(directory_settings, runtime_settings, logging_settings)
        cache = create_credential_cache(directory_settings, runtime_settings, logger)
        target = resolve_target(invocation, directory_settings, cache)
        engine = create_engine(runtime_settings, logger, transport_factory)

        if not json_output:
            stdout_console.print(build_target_table(target))
        report = await_sync(engine.run(target))
        if json_output:
            typer.echo(json.dumps(report_payload(report), indent=2))
        else:
            render_report(stdout_console, report)
        raise typer.Exit(code=report_exit_code(report))

    @app.command(
        help=(
            "Quick connection test: validates connectivity and sign-in without "
            "the sample query."
        ),
    )
    def check(  # NOSONAR python:S107
        config: cli_options.ConfigPathOption = Path(DEFAULT_CONFIG_FILENAME),
        domain: cli_options.DomainOption = None,
        server: cli_options.ServerOption = None,
        port: cli_options.PortOption = None,
        use_ssl: cli_options.UseSslOption = None,
        timeout: cli_options.TimeoutOption = None,
        username: cli_options.UsernameOption = None,
        debug: cli_options.DebugOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = build_invocation(
            config_path=config,
            domain=domain,
            server=server,
            port=port,
            use_ssl=use_ssl,
            timeout=timeout,
            username=username,
            debug=debug,
            log_level=log_level,
            log_format=log_format,
            log_file=log_file,
        )
        directory_settings, runtime_settings, logging_settings = resolve_settings(invocation)
        logger = initialize_logging(directory_settings, runtime_settings, logging_settings)
        cache = create_credential_cache(directory_settings, runtime_settings, logger)
        engine = create_engine(runtime_settings, logger, transport_factory)

        target = resolve_target(invocation, directory_settings, cache)
        result = await_sync(engine.quick_check(target))
        if result.success:
            stdout_console.print(f"[{RichStyles.SUCCESS}]{escape(result.message)}[/]")
            raise typer.Exit(code=EXIT_OK)

        stderr_console.print(f"[{RichStyles.FAILURE}]{escape(result.message)}[/]")
        if result.remediation:
            stderr_console.print(escape(result.remediation))
        stderr_console.print(f"Elapsed: {result.elapsed_ms:.0f} ms")
        if result.is_configuration_error:
            raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
        raise typer.Exit(code=EXIT_FAILED)


__all__ = ["register", "report_exit_code", "report_payload"]
