"""ADLink Typer CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from adlink.cli.commands import auth as auth_command
from adlink.cli.commands import config as config_command
from adlink.cli.commands import diagnose as diagnose_command
from adlink.cli.helpers import TransportFactory
from adlink.infrastructure.transport import Ldap3Transport

PROJECT_ROOT = Path(__file__).resolve().parents[3]

stderr_console = Console(stderr=True)
stdout_console = Console(stderr=False)


def version() -> None:
    """Print the ADLink version discovered from the package metadata."""
    from importlib import metadata

    try:
        resolved_version = metadata.version("adlink")
    except metadata.PackageNotFoundError:
        pyproject = PROJECT_ROOT / "pyproject.toml"
        if not pyproject.exists():
            stdout_console.print("Version information unavailable")
            return
        import tomllib

        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        resolved_version = data.get("project", {}).get("version", "unknown")
    stdout_console.print(resolved_version)


def create_app(*, transport_factory: TransportFactory = Ldap3Transport) -> typer.Typer:
    """Build the CLI; *transport_factory* supplies the directory transport for each command."""

    cli = typer.Typer(
        help="Directory connection bootstrap and diagnostics",
        rich_markup_mode="rich",
    )
    config_command.register(cli, stdout_console=stdout_console)
    diagnose_command.register(
        cli,
        stdout_console=stdout_console,
        stderr_console=stderr_console,
        transport_factory=transport_factory,
    )
    auth_command.register(
        cli,
        stdout_console=stdout_console,
        stderr_console=stderr_console,
        transport_factory=transport_factory,
    )
    cli.command(help="Show the installed ADLink package version.")(version)
    return cli


app = create_app()


__all__ = ["app", "create_app"]
