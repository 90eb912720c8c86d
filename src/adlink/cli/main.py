"""CLI entry point wrapper around the Typer application in :mod:`adlink.cli.app`."""

from __future__ import annotations

import sys

from typer.main import get_command

from adlink.cli.app import app


def main(argv: list[str] | None = None) -> None:
    """Invoke the CLI entry point.

    Parameters
    ----------
    argv:
        Optional list of arguments to pass to Typer. When ``None`` the
        process arguments are used. An empty argument list shows the help.
    """

    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        args = ["--help"]
    command = get_command(app)
    command.main(args=args, prog_name="adlink")


if __name__ == "__main__":
    main()


__all__ = ["main"]
