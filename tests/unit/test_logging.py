from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from adlink.config.settings import LOG_FORMAT_JSON, LOG_FORMAT_TEXT, LoggingSettings
from adlink.domain.models import Stage, StageEvent
from adlink.infrastructure.errors import ErrorCategory
from adlink.infrastructure.logging import (
    StructlogEventSink,
    attach_run_context,
    configure_logging,
    get_logger,
    log_event,
)


def _settings(fmt: str, *, level: int = logging.INFO, file_path: str | None = None) -> LoggingSettings:
    return LoggingSettings(
        level=level,
        format=fmt,
        file_path=file_path,
        max_bytes=1024,
        backup_count=1,
    )


def test_text_logging_renders_structured_fields(capfd: pytest.CaptureFixture[str]) -> None:
    configure_logging(_settings(LOG_FORMAT_TEXT))
    capfd.readouterr()

    logger = get_logger("adlink.test.text")
    logger.info("structured event", component="bootstrap", status="ok")

    output = capfd.readouterr().err.strip()
    assert "structured event" in output
    assert "component=bootstrap" in output
    assert "status=ok" in output


def test_json_logging_emits_valid_payload(capfd: pytest.CaptureFixture[str]) -> None:
    configure_logging(_settings(LOG_FORMAT_JSON))
    capfd.readouterr()

    logger = get_logger("adlink.test.json")
    logger.info("json event", action="configure")

    payload = json.loads(capfd.readouterr().err)
    assert payload["event"] == "json event"
    assert payload["action"] == "configure"
    assert payload["logger"] == "adlink.test.json"


def test_level_filters_debug(capfd: pytest.CaptureFixture[str]) -> None:
    configure_logging(_settings(LOG_FORMAT_JSON, level=logging.WARNING))
    capfd.readouterr()

    logger = get_logger("adlink.test.level")
    logger.info("hidden")
    logger.warning("shown")

    lines = [line for line in capfd.readouterr().err.splitlines() if line.strip()]
    assert [json.loads(line)["event"] for line in lines] == ["shown"]


def test_run_context_and_log_event(capfd: pytest.CaptureFixture[str]) -> None:
    configure_logging(_settings(LOG_FORMAT_JSON))
    capfd.readouterr()

    logger = attach_run_context(get_logger("adlink.test.run"), run_id="abc123", target=None)
    log_event(logger, "diagnostics.run.started", message="starting", through="query", skipped=None)

    payload = json.loads(capfd.readouterr().err)
    assert payload["run_id"] == "abc123"
    assert "target" not in payload
    assert payload["through"] == "query"
    assert payload["message"] == "starting"
    assert "skipped" not in payload


def test_event_sink_forwards_stage_events(capfd: pytest.CaptureFixture[str]) -> None:
    configure_logging(_settings(LOG_FORMAT_JSON))
    capfd.readouterr()

    sink = StructlogEventSink(get_logger("adlink.test.sink"))
    sink(
        StageEvent(
            stage=Stage.PORT,
            success=False,
            category=ErrorCategory.PORT_UNREACHABLE,
            elapsed_ms=12.345,
            detail="Connection refused",
        )
    )

    payload = json.loads(capfd.readouterr().err)
    assert payload["event"] == "diagnostics.stage"
    assert payload["level"] == "warning"
    assert payload["stage"] == "port"
    assert payload["category"] == "port_unreachable"
    assert payload["elapsed_ms"] == 12.3


def test_file_logging_writes_records(tmp_path: Path) -> None:
    log_path = tmp_path / "adlink.log"
    configure_logging(_settings(LOG_FORMAT_JSON, file_path=str(log_path)))

    get_logger("adlink.test.file").info("to file", value=1)
    for handler in logging.getLogger().handlers:
        handler.flush()

    record = json.loads(log_path.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert record["event"] == "to file"
    assert record["value"] == 1
