"""Common boolean coercion helpers and constants."""

from __future__ import annotations

from typing import Optional

TRUTHY_STRINGS = {"1", "true", "yes", "on"}
FALSY_STRINGS = {"0", "false", "no", "off"}


CONFIG_BASENAME = "config"
DEFAULT_CONFIG_FILENAME = f"{CONFIG_BASENAME}.toml"
LOCAL_CONFIG_FILENAME = f"{CONFIG_BASENAME}.local.toml"

APP_DIRNAME = "ADLink"
CREDENTIALS_DIRNAME = "credentials"
CREDENTIALS_FILENAME = "creds.dat"

LDAP_PORT = 389
LDAPS_PORT = 636


def coerce_bool(value: Optional[object], *, default: bool = False) -> bool:
    """Convert common truthy/falsey string markers into booleans.

    Falls back to ``default`` when the value is ``None`` or ambiguous.
    Passing a non-string/non-bool value relies on Python's ``bool`` constructor.
    """

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        if normalized in TRUTHY_STRINGS:
            return True
        if normalized in FALSY_STRINGS:
            return False
        return default
    return bool(value)


__all__ = [
    "coerce_bool",
    "TRUTHY_STRINGS",
    "FALSY_STRINGS",
    "CONFIG_BASENAME",
    "DEFAULT_CONFIG_FILENAME",
    "LOCAL_CONFIG_FILENAME",
    "APP_DIRNAME",
    "CREDENTIALS_DIRNAME",
    "CREDENTIALS_FILENAME",
    "LDAP_PORT",
    "LDAPS_PORT",
]
