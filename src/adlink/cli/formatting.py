"""Rich rendering helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from adlink.application.diagnostics import MASKED_SECRET, describe_target
from adlink.config.settings import DIRECTORY_PASSWORD_KEY, is_logfile_disabled_value
from adlink.domain.models import DiagnosticReport, DiagnosticTarget, Stage, StageResult

SENSITIVE_KEYS = frozenset({DIRECTORY_PASSWORD_KEY})
UNSET = "<unset>"


class RichStyles:
    ACCENT = "bold cyan"
    SECONDARY = "magenta"
    DIM = "dim"
    SUCCESS = "green"
    WARNING = "yellow"
    FAILURE = "bold red"


def mask_sensitive_value(value: Any) -> str:
    return MASKED_SECRET if value else UNSET


def format_config_value(key: str, value: Any, *, log_file_key: str | None = None) -> str:
    if key in SENSITIVE_KEYS:
        return mask_sensitive_value(value)
    if key == log_file_key and (value is None or is_logfile_disabled_value(str(value)) or value == ""):
        return "<stderr only>"
    if value is None or value == "":
        return UNSET
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_to_dotted(mapping: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in mapping.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flattened.update(flatten_to_dotted(value, dotted))
        else:
            flattened[dotted] = value
    return flattened


def create_config_table(title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Key", style=RichStyles.ACCENT)
    table.add_column("Value")
    table.add_column("Source", style=RichStyles.SECONDARY)
    return table


def build_target_table(target: DiagnosticTarget) -> Table:
    table = Table(title="Directory target", box=box.SIMPLE_HEAVY, show_header=False)
    table.add_column("Setting", style=RichStyles.ACCENT)
    table.add_column("Value")
    for label, value in describe_target(target).items():
        table.add_row(label, value)
    return table


def _status_text(result: StageResult) -> Text:
    if result.success:
        return Text("PASS", style=RichStyles.SUCCESS)
    if not result.attempted:
        return Text("SKIPPED", style=RichStyles.DIM)
    if result.stage.is_soft:
        return Text("WARN", style=RichStyles.WARNING)
    return Text("FAIL", style=RichStyles.FAILURE)


def build_report_table(report: DiagnosticReport) -> Table:
    table = Table(title=f"Diagnostics for {report.target}", box=box.SIMPLE_HEAVY)
    table.add_column("Stage", style=RichStyles.ACCENT)
    table.add_column("Result")
    table.add_column("Time", justify="right")
    table.add_column("Detail", overflow="fold")
    for result in report.results:
        elapsed = f"{result.elapsed_ms:.0f} ms" if result.attempted else ""
        table.add_row(result.stage.label, _status_text(result), elapsed, Text(result.message))
    return table


def render_report(console: Console, report: DiagnosticReport) -> None:
    console.print(build_report_table(report))

    for warning in report.warnings:
        console.print(f"[{RichStyles.WARNING}]Warning:[/] {escape(warning)}")

    for result in report.results:
        if result.attempted and not result.success and result.remediation:
            style = RichStyles.WARNING if result.stage.is_soft else RichStyles.FAILURE
            console.print(f"[{style}]{result.stage.label}:[/] {escape(result.remediation)}")

    query = report.result(Stage.QUERY)
    sample = query.details.get("sample") if query and query.success else None
    if sample:
        sample_table = Table(title="Sample entries", box=box.SIMPLE)
        sample_table.add_column("Username", style=RichStyles.ACCENT)
        sample_table.add_column("Display name")
        for entry in sample:
            sample_table.add_row(str(entry.get("username", "")), str(entry.get("display_name", "")))
        console.print(sample_table)

    if report.fully_operational:
        console.print(f"[{RichStyles.SUCCESS}]All checks passed. The directory is fully operational.[/]")
    elif report.usable:
        console.print(
            f"[{RichStyles.WARNING}]The directory is usable but the reachability probe failed.[/]"
        )
    else:
        failure = report.first_failure
        label = failure.stage.label if failure else "Diagnostics"
        console.print(f"[{RichStyles.FAILURE}]{label} failed. The directory is not usable.[/]")


__all__ = [
    "RichStyles",
    "build_report_table",
    "build_target_table",
    "create_config_table",
    "flatten_to_dotted",
    "format_config_value",
    "mask_sensitive_value",
    "render_report",
]
