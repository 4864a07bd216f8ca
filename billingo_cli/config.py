"""
Credential and endpoint configuration.

Values live in a per-user dotenv file managed with python-dotenv. The
environment (``BILLINGO_API_KEY``, ``BILLINGO_BASE_URL``) is only consulted
when no value is stored.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values, set_key, unset_key

from billingo_cli.core.client import DEFAULT_BASE_URL, InputError

logger = logging.getLogger(__name__)

APP_DIR_NAME = "billingo-cli"
CONFIG_FILE_NAME = "config.env"
CONFIG_DIR_ENV_VAR = "BILLINGO_CONFIG_DIR"

API_KEY = "apiKey"
BASE_URL = "baseUrl"
KNOWN_KEYS = (API_KEY, BASE_URL)

ENV_VARS = {
    API_KEY: "BILLINGO_API_KEY",
    BASE_URL: "BILLINGO_BASE_URL",
}

_ALIASES = {
    "apikey": API_KEY,
    "api_key": API_KEY,
    "api-key": API_KEY,
    "baseurl": BASE_URL,
    "base_url": BASE_URL,
    "base-url": BASE_URL,
}


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform).

    ``BILLINGO_CONFIG_DIR`` overrides the platform default.
    """
    override = os.environ.get(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override)
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


def get_config_file() -> Path:
    return get_user_config_dir() / CONFIG_FILE_NAME


def normalize_key(key: str) -> str:
    """Map accepted spellings (``API_KEY``, ``api-key``, ...) to the stored key name."""
    normalized = _ALIASES.get(key.strip().lower())
    if normalized is None:
        raise InputError(
            f"Unknown configuration key '{key}'",
            details={"available_keys": list(KNOWN_KEYS)},
        )
    return normalized


def mask_secret(value: str) -> str:
    """Hide all but the last four characters of a secret."""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * 8 + value[-4:]


@dataclass(frozen=True)
class ClientConfiguration:
    """Resolved settings for one command invocation."""

    api_key: str | None
    base_url: str = DEFAULT_BASE_URL

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


class ConfigStore:
    """Key-value store for ``apiKey`` and ``baseUrl``."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else get_config_file()

    def all(self) -> dict[str, str]:
        """Return every stored (non-empty) value."""
        if not self.path.exists():
            return {}
        values = dotenv_values(self.path)
        return {k: v for k, v in values.items() if k in KNOWN_KEYS and v}

    def get(self, key: str) -> str | None:
        return self.all().get(normalize_key(key))

    def set(self, key: str, value: str) -> str:
        """Store a value and return the normalized key it was stored under."""
        name = normalize_key(key)
        if not value:
            raise InputError(f"Value for '{name}' must not be empty")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        set_key(self.path, name, value)
        logger.debug("Stored %s in %s", name, self.path)
        return name

    def unset(self, key: str) -> bool:
        """Remove a stored value. Returns False if it was not set."""
        name = normalize_key(key)
        if name not in self.all():
            return False
        unset_key(self.path, name)
        logger.debug("Removed %s from %s", name, self.path)
        return True

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Deleted %s", self.path)

    # =========================================================================
    # Resolution (stored value, then environment, then default)
    # =========================================================================

    def resolve_api_key(self) -> str | None:
        return self.get(API_KEY) or os.environ.get(ENV_VARS[API_KEY]) or None

    def resolve_base_url(self) -> str:
        return self.get(BASE_URL) or os.environ.get(ENV_VARS[BASE_URL]) or DEFAULT_BASE_URL

    def sources(self) -> dict[str, tuple[str | None, str]]:
        """Effective value of every key and where it came from (config, env, default or unset)."""
        stored = self.all()
        result: dict[str, tuple[str | None, str]] = {}
        for name in KNOWN_KEYS:
            env_value = os.environ.get(ENV_VARS[name])
            if stored.get(name):
                result[name] = (stored[name], "config")
            elif env_value:
                result[name] = (env_value, "env")
            elif name == BASE_URL:
                result[name] = (DEFAULT_BASE_URL, "default")
            else:
                result[name] = (None, "unset")
        return result

    def load(self) -> ClientConfiguration:
        """Resolve the configuration used by API commands."""
        return ClientConfiguration(
            api_key=self.resolve_api_key(),
            base_url=self.resolve_base_url(),
        )
