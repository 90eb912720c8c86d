"""Terminal credential collection for ``adlink login``."""

from __future__ import annotations

import click
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from adlink.cli.formatting import RichStyles
from adlink.domain.models import Credential


class ConsoleCredentialCollector:
    """Prompt for credentials on the terminal; Ctrl+C or EOF cancels."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def collect(self, prompt: str, title: str) -> Credential | None:
        self._console.print(f"[{RichStyles.ACCENT}]{escape(title)}[/]")
        self._console.print(escape(prompt))
        try:
            username = typer.prompt("Username")
            password = typer.prompt("Password", hide_input=True)
        except (click.exceptions.Abort, EOFError):
            return None
        try:
            return Credential.from_pair(username.strip(), password)
        except ValidationError:
            self._console.print(f"[{RichStyles.FAILURE}]Username and password are both required.[/]")
            return None

    def confirm_retry(self, message: str, title: str) -> bool:
        self._console.print(f"[{RichStyles.FAILURE}]{escape(title)}[/]")
        self._console.print(escape(message))
        try:
            return typer.confirm("Retry", default=True)
        except (click.exceptions.Abort, EOFError):
            return False


__all__ = ["ConsoleCredentialCollector"]
