"""Dynaconf-backed configuration helpers for ADLink.

Settings resolve according to the following precedence:

1. Command line inputs
2. Environment variables
3. Local configuration overlays (``config.local.toml``)
4. Primary configuration file (``config.toml``)

Blank or whitespace-only values are treated as "not provided" so they do not
override lower-priority sources. Semantic problems (missing domain, port out of
range, half-specified credentials) are not rejected here; they surface through
the configuration stage of the diagnostics pipeline.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from dynaconf import Dynaconf

from adlink.config.constants import (
    DEFAULT_CONFIG_FILENAME,
    LDAP_PORT,
    LOCAL_CONFIG_FILENAME,
    coerce_bool,
)
from adlink.domain.models import Credential, DiagnosticTarget

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0
DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_ATTEMPTS = 3

LOG_FORMAT_TEXT = "text"
LOG_FORMAT_JSON = "json"
DEFAULT_LOG_FORMAT = LOG_FORMAT_TEXT
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10_000_000
DEFAULT_BACKUP_COUNT = 5

# Dynaconf keys used throughout the module. Using constants keeps environment
# and configuration lookups consistent.
DIRECTORY_DOMAIN_KEY = "directory.domain"
DIRECTORY_SERVER_KEY = "directory.server"
DIRECTORY_PORT_KEY = "directory.port"
DIRECTORY_USE_SSL_KEY = "directory.use_ssl"
DIRECTORY_TIMEOUT_KEY = "directory.timeout"
DIRECTORY_USERNAME_KEY = "directory.username"
DIRECTORY_PASSWORD_KEY = "directory.password"
DIRECTORY_BASE_DN_KEY = "directory.base_dn"
DIRECTORY_PAGE_SIZE_KEY = "directory.page_size"

BOOTSTRAP_MAX_ATTEMPTS_KEY = "bootstrap.max_attempts"
BOOTSTRAP_PROBE_TIMEOUT_KEY = "bootstrap.probe_timeout"
BOOTSTRAP_STORE_PATH_KEY = "bootstrap.store_path"

RUNTIME_DEBUG_KEY = "runtime.debug"

LOGGING_LEVEL_KEY = "logging.level"
LOGGING_FORMAT_KEY = "logging.format"
LOGGING_FILE_KEY = "logging.file"
LOGGING_MAX_BYTES_KEY = "logging.max_bytes"
LOGGING_BACKUP_COUNT_KEY = "logging.backup_count"

_ENVIRONMENT_MAP = {
    "ADLINK_DOMAIN": DIRECTORY_DOMAIN_KEY,
    "ADLINK_SERVER": DIRECTORY_SERVER_KEY,
    "ADLINK_PORT": DIRECTORY_PORT_KEY,
    "ADLINK_USE_SSL": DIRECTORY_USE_SSL_KEY,
    "ADLINK_TIMEOUT": DIRECTORY_TIMEOUT_KEY,
    "ADLINK_USERNAME": DIRECTORY_USERNAME_KEY,
    "ADLINK_PASSWORD": DIRECTORY_PASSWORD_KEY,
    "ADLINK_BASE_DN": DIRECTORY_BASE_DN_KEY,
    "ADLINK_PAGE_SIZE": DIRECTORY_PAGE_SIZE_KEY,
    "ADLINK_MAX_ATTEMPTS": BOOTSTRAP_MAX_ATTEMPTS_KEY,
    "ADLINK_PROBE_TIMEOUT": BOOTSTRAP_PROBE_TIMEOUT_KEY,
    "ADLINK_STORE_PATH": BOOTSTRAP_STORE_PATH_KEY,
    "ADLINK_DEBUG": RUNTIME_DEBUG_KEY,
    "ADLINK_LOG_LEVEL": LOGGING_LEVEL_KEY,
    "ADLINK_LOG_FORMAT": LOGGING_FORMAT_KEY,
    "ADLINK_LOG_FILE": LOGGING_FILE_KEY,
    "ADLINK_LOG_MAX_BYTES": LOGGING_MAX_BYTES_KEY,
    "ADLINK_LOG_BACKUP_COUNT": LOGGING_BACKUP_COUNT_KEY,
}

ENVVAR_TO_SETTINGS_KEY: dict[str, str] = dict(_ENVIRONMENT_MAP)

_LOGFILE_DISABLED_VALUES = {"-", "none", "stderr", "off"}


@dataclass(frozen=True)
class DirectoryInputs:
    domain: str | None = None
    server: str | None = None
    port: int | None = None
    use_ssl: bool | None = None
    timeout: float | None = None
    username: str | None = None
    password: str | None = None
    base_dn: str | None = None


@dataclass(frozen=True)
class RuntimeInputs:
    debug: bool | None = None
    max_attempts: int | None = None
    probe_timeout: float | None = None


@dataclass(frozen=True)
class LoggingInputs:
    level: str | None = None
    format: str | None = None
    file_path: str | None = None
    max_bytes: int | None = None
    backup_count: int | None = None


@dataclass(frozen=True)
class DirectorySettings:
    domain: str
    server: str | None
    port: int
    use_ssl: bool
    timeout: float
    username: str | None
    password: str | None = field(repr=False)
    base_dn: str | None
    page_size: int
    warnings: tuple[str, ...] = ()

    @property
    def has_static_credential(self) -> bool:
        return bool(self.username) and bool(self.password)

    def to_target(
        self,
        credential: Credential | None = None,
        *,
        timeout: float | None = None,
    ) -> DiagnosticTarget:
        """Snapshot the settings, optionally replacing identity and timeout."""

        target = DiagnosticTarget(
            domain=self.domain,
            server=self.server,
            port=self.port,
            use_ssl=self.use_ssl,
            timeout=self.timeout if timeout is None else timeout,
            username=self.username,
            password=self.password,
            base_dn=self.base_dn,
            page_size=self.page_size,
        )
        if credential is not None:
            target = target.with_credential(credential)
        return target


@dataclass(frozen=True)
class RuntimeSettings:
    debug: bool
    max_attempts: int
    probe_timeout: float
    store_path: str | None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    format: str
    file_path: str | None
    max_bytes: int
    backup_count: int

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


def is_logfile_disabled_value(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _LOGFILE_DISABLED_VALUES


def _default_settings_files(config_path: str | None) -> tuple[Sequence[str], str | None]:
    if config_path:
        config_file = Path(config_path)
        local_file = config_file.with_name(f"{config_file.stem}.local{config_file.suffix}")
        files: list[str] = []
        if config_file.exists():
            files.append(str(config_file))
        if local_file.exists():
            files.append(str(local_file))
        return files or [str(config_file)], None
    return [DEFAULT_CONFIG_FILENAME, LOCAL_CONFIG_FILENAME], str(Path.cwd())


def resolve_config_file_candidates(config_path: str | None = None) -> list[Path]:
    """Return the primary and local overlay files in load order."""

    base = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_FILENAME
    local = base.with_name(f"{base.stem}.local{base.suffix}")
    return [base, local]


def _coerce_str(value: Any | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        candidate = value.strip()
        return candidate or None
    return str(value)


def _coerce_int(value: Any | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_float(value: Any | None) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _apply_environment_overrides(settings: Dynaconf) -> None:
    for env_var, key in _ENVIRONMENT_MAP.items():
        raw = os.getenv(env_var)
        if raw is None:
            continue
        if not raw.strip():
            continue
        settings.set(key, raw)


def _set_if_present(settings: Dynaconf, key: str, value: Any | None) -> None:
    if value is None:
        return
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return
    settings.set(key, value)


def _apply_directory_inputs(settings: Dynaconf, inputs: DirectoryInputs | None) -> None:
    if inputs is None:
        return

    _set_if_present(settings, DIRECTORY_DOMAIN_KEY, inputs.domain)
    _set_if_present(settings, DIRECTORY_SERVER_KEY, inputs.server)
    _set_if_present(settings, DIRECTORY_PORT_KEY, inputs.port)
    _set_if_present(settings, DIRECTORY_USE_SSL_KEY, inputs.use_ssl)
    _set_if_present(settings, DIRECTORY_TIMEOUT_KEY, inputs.timeout)
    _set_if_present(settings, DIRECTORY_USERNAME_KEY, inputs.username)
    _set_if_present(settings, DIRECTORY_PASSWORD_KEY, inputs.password)
    _set_if_present(settings, DIRECTORY_BASE_DN_KEY, inputs.base_dn)


def _apply_runtime_inputs(settings: Dynaconf, inputs: RuntimeInputs | None) -> None:
    if inputs is None:
        return

    _set_if_present(settings, RUNTIME_DEBUG_KEY, inputs.debug)
    _set_if_present(settings, BOOTSTRAP_MAX_ATTEMPTS_KEY, inputs.max_attempts)
    _set_if_present(settings, BOOTSTRAP_PROBE_TIMEOUT_KEY, inputs.probe_timeout)


def _apply_logging_inputs(settings: Dynaconf, inputs: LoggingInputs | None) -> None:
    if inputs is None:
        return

    _set_if_present(settings, LOGGING_LEVEL_KEY, inputs.level)
    _set_if_present(settings, LOGGING_FORMAT_KEY, inputs.format)
    if inputs.file_path is not None:
        # An empty string explicitly disables file logging.
        settings.set(LOGGING_FILE_KEY, inputs.file_path.strip())
    _set_if_present(settings, LOGGING_MAX_BYTES_KEY, inputs.max_bytes)
    _set_if_present(settings, LOGGING_BACKUP_COUNT_KEY, inputs.backup_count)


def _build_dynaconf(config_path: str | None) -> Dynaconf:
    files, root_path = _default_settings_files(config_path)
    settings = Dynaconf(
        settings_files=list(files),
        envvar_prefix="ADLINK",
        environments=False,
        load_dotenv=True,
        merge_enabled=True,
        root_path=root_path,
    )
    _apply_environment_overrides(settings)
    return settings


def load_settings(config_path: str | None = None) -> Dynaconf:
    """Create a Dynaconf instance configured for the supplied path."""

    return _build_dynaconf(config_path)


def apply_cli_overrides(
    settings: Dynaconf,
    *,
    directory_inputs: DirectoryInputs | None = None,
    runtime_inputs: RuntimeInputs | None = None,
    logging_inputs: LoggingInputs | None = None,
) -> None:
    """Apply CLI overrides to the provided settings instance."""

    _apply_directory_inputs(settings, directory_inputs)
    _apply_runtime_inputs(settings, runtime_inputs)
    _apply_logging_inputs(settings, logging_inputs)


def _resolve_port(settings: Dynaconf, warnings: list[str]) -> int:
    raw = settings.get(DIRECTORY_PORT_KEY)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return LDAP_PORT
    value = _coerce_int(raw)
    if value is None:
        warnings.append(f"Invalid port '{raw}'; using default {LDAP_PORT}")
        return LDAP_PORT
    return value


def _resolve_positive_float(
    settings: Dynaconf,
    key: str,
    *,
    default: float,
    label: str,
    warnings: list[str],
) -> float:
    raw = settings.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    value = _coerce_float(raw)
    if value is None or value <= 0:
        warnings.append(f"Invalid {label} '{raw}'; using default {default:g}")
        return default
    return value


def _resolve_positive_int(
    settings: Dynaconf,
    key: str,
    *,
    default: int,
    label: str,
    warnings: list[str],
) -> int:
    raw = settings.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    value = _coerce_int(raw)
    if value is None or value <= 0:
        warnings.append(f"Invalid {label} '{raw}'; using default {default}")
        return default
    return value


def directory_from_settings(settings: Dynaconf) -> DirectorySettings:
    """Extract the directory connection settings from Dynaconf."""

    warnings: list[str] = []
    return DirectorySettings(
        domain=_coerce_str(settings.get(DIRECTORY_DOMAIN_KEY)) or "",
        server=_coerce_str(settings.get(DIRECTORY_SERVER_KEY)),
        port=_resolve_port(settings, warnings),
        use_ssl=coerce_bool(settings.get(DIRECTORY_USE_SSL_KEY)),
        timeout=_resolve_positive_float(
            settings,
            DIRECTORY_TIMEOUT_KEY,
            default=DEFAULT_TIMEOUT_SECONDS,
            label="timeout",
            warnings=warnings,
        ),
        username=_coerce_str(settings.get(DIRECTORY_USERNAME_KEY)),
        password=_coerce_str(settings.get(DIRECTORY_PASSWORD_KEY)),
        base_dn=_coerce_str(settings.get(DIRECTORY_BASE_DN_KEY)),
        page_size=_resolve_positive_int(
            settings,
            DIRECTORY_PAGE_SIZE_KEY,
            default=DEFAULT_PAGE_SIZE,
            label="page_size",
            warnings=warnings,
        ),
        warnings=tuple(warnings),
    )


def runtime_from_settings(settings: Dynaconf) -> RuntimeSettings:
    """Extract bootstrap/runtime behaviour from Dynaconf."""

    warnings: list[str] = []
    return RuntimeSettings(
        debug=coerce_bool(settings.get(RUNTIME_DEBUG_KEY)),
        max_attempts=_resolve_positive_int(
            settings,
            BOOTSTRAP_MAX_ATTEMPTS_KEY,
            default=DEFAULT_MAX_ATTEMPTS,
            label="max_attempts",
            warnings=warnings,
        ),
        probe_timeout=_resolve_positive_float(
            settings,
            BOOTSTRAP_PROBE_TIMEOUT_KEY,
            default=DEFAULT_PROBE_TIMEOUT_SECONDS,
            label="probe_timeout",
            warnings=warnings,
        ),
        store_path=_coerce_str(settings.get(BOOTSTRAP_STORE_PATH_KEY)),
        warnings=tuple(warnings),
    )


def logging_from_settings(settings: Dynaconf) -> LoggingSettings:
    """Extract logging configuration from Dynaconf."""

    level_value = _coerce_str(settings.get(LOGGING_LEVEL_KEY)) or DEFAULT_LOG_LEVEL
    format_value = (_coerce_str(settings.get(LOGGING_FORMAT_KEY)) or DEFAULT_LOG_FORMAT).lower()
    if format_value not in {LOG_FORMAT_TEXT, LOG_FORMAT_JSON}:
        raise ValueError(f"Unsupported log format: {format_value}")

    file_path = _coerce_str(settings.get(LOGGING_FILE_KEY))
    if is_logfile_disabled_value(file_path):
        file_path = None

    max_bytes_value = _coerce_int(settings.get(LOGGING_MAX_BYTES_KEY))
    if max_bytes_value is None or max_bytes_value <= 0:
        max_bytes_value = DEFAULT_MAX_BYTES

    backup_count_value = _coerce_int(settings.get(LOGGING_BACKUP_COUNT_KEY))
    if backup_count_value is None or backup_count_value <= 0:
        backup_count_value = DEFAULT_BACKUP_COUNT

    mapping = logging.getLevelNamesMapping()
    level_upper = level_value.upper()
    if level_upper.isdigit():
        resolved_level = int(level_upper)
    else:
        resolved_level = mapping.get(level_upper, logging.INFO)

    return LoggingSettings(
        level=resolved_level,
        format=format_value,
        file_path=file_path,
        max_bytes=max_bytes_value,
        backup_count=backup_count_value,
    )


__all__ = [
    "DEFAULT_BACKUP_COUNT",
    "ENVVAR_TO_SETTINGS_KEY",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_PROBE_TIMEOUT_SECONDS",
    "DEFAULT_TIMEOUT_SECONDS",
    "DirectoryInputs",
    "DirectorySettings",
    "LOG_FORMAT_JSON",
    "LOG_FORMAT_TEXT",
    "LoggingInputs",
    "LoggingSettings",
    "RuntimeInputs",
    "RuntimeSettings",
    "apply_cli_overrides",
    "directory_from_settings",
    "is_logfile_disabled_value",
    "load_settings",
    "logging_from_settings",
    "resolve_config_file_candidates",
    "runtime_from_settings",
]
