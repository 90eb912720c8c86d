from __future__ import annotations

import logging
from pathlib import Path

import pytest

from adlink.config.constants import DEFAULT_CONFIG_FILENAME
from adlink.config.settings import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    DirectoryInputs,
    LoggingInputs,
    RuntimeInputs,
    apply_cli_overrides,
    directory_from_settings,
    load_settings,
    logging_from_settings,
    resolve_config_file_candidates,
    runtime_from_settings,
)
from adlink.domain.models import Credential


def _write_base_config(path: Path) -> None:
    path.write_text(
        "\n".join(
            [
                "[directory]",
                'domain = "corp.example.com"',
                'server = ""',
                "port = 389",
                "use_ssl = false",
                "timeout = 30",
                'username = ""',
                'password = ""',
                'base_dn = ""',
                "",
                "[bootstrap]",
                "max_attempts = 3",
                "probe_timeout = 5",
                "",
                "[runtime]",
                "debug = false",
                "",
                "[logging]",
                'level = "INFO"',
                'format = "text"',
                'file = ""',
                "max_bytes = 10000000",
                "backup_count = 5",
            ]
        )
        + "\n",
        encoding="utf-8",
    )


def test_directory_defaults_from_config(tmp_path: Path) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)

    directory = directory_from_settings(load_settings(str(config_path)))

    assert directory.domain == "corp.example.com"
    assert directory.server is None
    assert directory.port == 389
    assert directory.use_ssl is False
    assert directory.timeout == DEFAULT_TIMEOUT_SECONDS
    assert directory.username is None and directory.password is None
    assert not directory.has_static_credential
    assert directory.warnings == ()


def test_local_overlay_wins(tmp_path: Path) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    (tmp_path / "config.local.toml").write_text(
        '[directory]\nserver = "dc01.corp.example.com"\nport = 636\nuse_ssl = true\n',
        encoding="utf-8",
    )

    directory = directory_from_settings(load_settings(str(config_path)))

    assert directory.domain == "corp.example.com"
    assert directory.server == "dc01.corp.example.com"
    assert directory.port == 636
    assert directory.use_ssl is True


def test_environment_overrides_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    monkeypatch.setenv("ADLINK_DOMAIN", "env.example.com")
    monkeypatch.setenv("ADLINK_PORT", "636")
    monkeypatch.setenv("ADLINK_USE_SSL", "yes")
    monkeypatch.setenv("ADLINK_SERVER", "   ")

    directory = directory_from_settings(load_settings(str(config_path)))

    assert directory.domain == "env.example.com"
    assert directory.port == 636
    assert directory.use_ssl is True
    assert directory.server is None


def test_cli_overrides_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    monkeypatch.setenv("ADLINK_DOMAIN", "env.example.com")
    monkeypatch.setenv("ADLINK_MAX_ATTEMPTS", "7")

    settings = load_settings(str(config_path))
    apply_cli_overrides(
        settings,
        directory_inputs=DirectoryInputs(domain="cli.example.com", timeout=12.5, server="  "),
        runtime_inputs=RuntimeInputs(max_attempts=2, debug=True),
        logging_inputs=LoggingInputs(level="debug", file_path=""),
    )

    directory = directory_from_settings(settings)
    runtime = runtime_from_settings(settings)
    logging_settings = logging_from_settings(settings)

    assert directory.domain == "cli.example.com"
    assert directory.timeout == 12.5
    assert directory.server is None
    assert runtime.max_attempts == 2
    assert runtime.debug is True
    assert logging_settings.level == logging.DEBUG
    assert logging_settings.file_path is None


def test_invalid_numbers_fall_back_with_warnings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    monkeypatch.setenv("ADLINK_PORT", "ldap")
    monkeypatch.setenv("ADLINK_TIMEOUT", "-1")
    monkeypatch.setenv("ADLINK_PROBE_TIMEOUT", "soon")

    settings = load_settings(str(config_path))
    directory = directory_from_settings(settings)
    runtime = runtime_from_settings(settings)

    assert directory.port == 389
    assert directory.timeout == DEFAULT_TIMEOUT_SECONDS
    assert len(directory.warnings) == 2
    assert runtime.probe_timeout == DEFAULT_PROBE_TIMEOUT_SECONDS
    assert runtime.warnings and "probe_timeout" in runtime.warnings[0]


def test_out_of_range_port_is_left_for_validation(tmp_path: Path) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    settings = load_settings(str(config_path))
    apply_cli_overrides(settings, directory_inputs=DirectoryInputs(port=70000))

    assert directory_from_settings(settings).port == 70000


def test_runtime_defaults_without_config(tmp_path: Path) -> None:
    runtime = runtime_from_settings(load_settings(str(tmp_path / "missing.toml")))

    assert runtime.max_attempts == DEFAULT_MAX_ATTEMPTS
    assert runtime.probe_timeout == DEFAULT_PROBE_TIMEOUT_SECONDS
    assert runtime.debug is False
    assert runtime.store_path is None


def test_static_credential_flows_into_target(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    monkeypatch.setenv("ADLINK_USERNAME", "svc-ldap")
    monkeypatch.setenv("ADLINK_PASSWORD", "service-pw")

    directory = directory_from_settings(load_settings(str(config_path)))
    assert directory.has_static_credential
    assert "service-pw" not in repr(directory)

    target = directory.to_target()
    assert (target.username, target.password) == ("svc-ldap", "service-pw")

    override = directory.to_target(Credential.from_pair("alice", "pw"), timeout=5.0)
    assert (override.username, override.timeout) == ("alice", 5.0)


def test_logging_file_disabled_and_format_validation(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    _write_base_config(config_path)
    monkeypatch.setenv("ADLINK_LOG_FILE", "stderr")

    assert logging_from_settings(load_settings(str(config_path))).file_path is None

    monkeypatch.setenv("ADLINK_LOG_FORMAT", "xml")
    with pytest.raises(ValueError):
        logging_from_settings(load_settings(str(config_path)))


def test_config_file_candidates(tmp_path: Path) -> None:
    base = tmp_path / "custom.toml"
    assert resolve_config_file_candidates(str(base)) == [base, tmp_path / "custom.local.toml"]
    assert resolve_config_file_candidates()[0].name == DEFAULT_CONFIG_FILENAME
