"""Typer command groups registered by :mod:`adlink.cli.app`."""
