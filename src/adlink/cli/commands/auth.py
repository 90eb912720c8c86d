"""Credential commands: ``adlink login`` and ``adlink logout``."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from adlink.application.bootstrap import BootstrapAuthenticator, BootstrapState
from adlink.cli import options as cli_options
from adlink.cli.collector import ConsoleCredentialCollector
from adlink.cli.formatting import RichStyles
from adlink.cli.helpers import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_FAILED,
    EXIT_OK,
    TransportFactory,
    build_invocation,
    create_credential_cache,
    create_engine,
    initialize_logging,
    resolve_settings,
)
from adlink.cli.sync_bridge import await_sync
from adlink.config.constants import DEFAULT_CONFIG_FILENAME
from adlink.infrastructure.transport import Ldap3Transport


def register(
    app: typer.Typer,
    *,
    stdout_console: Console,
    stderr_console: Console,
    transport_factory: TransportFactory = Ldap3Transport,
) -> None:
    """Register the credential commands with the app."""

    @app.command(
        help=(
            "Validate the saved credential or prompt for a new one.\n\n"
            "Exit code 0 on success, 1 when sign-in was cancelled or exhausted, "
            "3 when the configuration is invalid."
        ),
    )
    def login(  # NOSONAR python:S107
        config: cli_options.ConfigPathOption = Path(DEFAULT_CONFIG_FILENAME),
        domain: cli_options.DomainOption = None,
        server: cli_options.ServerOption = None,
        port: cli_options.PortOption = None,
        use_ssl: cli_options.UseSslOption = None,
        timeout: cli_options.TimeoutOption = None,
        max_attempts: cli_options.MaxAttemptsOption = None,
        probe_timeout: cli_options.ProbeTimeoutOption = None,
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
            max_attempts=max_attempts,
            probe_timeout=probe_timeout,
            debug=debug,
            log_level=log_level,
            log_format=log_format,
            log_file=log_file,
        )
        directory_settings, runtime_settings, logging_settings = resolve_settings(invocation)
        logger = initialize_logging(directory_settings, runtime_settings, logging_settings)
        cache = create_credential_cache(directory_settings, runtime_settings, logger)
        authenticator = BootstrapAuthenticator(
            create_engine(runtime_settings, logger, transport_factory),
            cache,
            ConsoleCredentialCollector(stderr_console),
            directory_settings.to_target(),
            max_attempts=runtime_settings.max_attempts,
            probe_timeout=runtime_settings.probe_timeout,
            logger=logger,
        )

        outcome = await_sync(authenticator.run())
        if outcome.state is BootstrapState.SUCCESS:
            who = outcome.credential.username if outcome.credential else "current user"
            stdout_console.print(f"[{RichStyles.SUCCESS}]Signed in as {escape(who)}.[/]")
            raise typer.Exit(code=EXIT_OK)

        stderr_console.print(f"[{RichStyles.FAILURE}]{escape(outcome.message)}[/]")
        last = outcome.last_result
        if last is not None and last.remediation:
            stderr_console.print(escape(last.remediation))
        if outcome.state is BootstrapState.CONFIGURATION_ERROR:
            raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
        raise typer.Exit(code=EXIT_FAILED)

    @app.command(help="Forget the saved credential (memory and disk).")
    def logout(
        config: cli_options.ConfigPathOption = Path(DEFAULT_CONFIG_FILENAME),
        log_level: cli_options.LogLevelOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = build_invocation(
            config_path=config,
            log_level=log_level,
            log_file=log_file,
        )
        directory_settings, runtime_settings, logging_settings = resolve_settings(invocation)
        logger = initialize_logging(directory_settings, runtime_settings, logging_settings)
        cache = create_credential_cache(
            directory_settings, runtime_settings, logger, load_saved=False
        )
        cache.clear()
        stdout_console.print("Saved credentials cleared.")
        if directory_settings.has_static_credential:
            stdout_console.print(
                f"[{RichStyles.WARNING}]A service account is still configured in "
                "directory.username/directory.password.[/]"
            )


__all__ = ["register"]
