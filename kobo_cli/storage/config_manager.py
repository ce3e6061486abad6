"""
Manages loading and saving of the INI configuration file, which also
persists the store session.
"""

import configparser
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from kobo_cli.exceptions import ConfigurationError, SessionStoreError
from kobo_cli.models.config import SESSION_KEYS, AppConfig

log = logging.getLogger(__name__)

APP_NAME = "kobo-cli"
CONFIG_FILE_NAME = "config.ini"


def default_config_path() -> Path:
    """config.ini in the per-user configuration directory."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming"
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / APP_NAME / CONFIG_FILE_NAME


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path | None = None):
        self.config_file_path = config_file_path or default_config_path()

    def _read_parser(self) -> configparser.ConfigParser:
        parser = configparser.ConfigParser(interpolation=None)
        if not self.config_file_path.is_file():
            return parser
        try:
            with open(self.config_file_path, encoding="utf-8") as f:
                parser.read_file(f)
        except (OSError, configparser.Error) as e:
            raise ConfigurationError(f"Error reading configuration file: {e}") from e
        return parser

    def load_config(self) -> AppConfig:
        """
        Loads and validates the configuration. A missing file is an empty one.

        Raises:
            ConfigurationError: If the file cannot be parsed or fails validation.
        """
        section = self._read_parser()["DEFAULT"]
        try:
            return AppConfig(**dict(section))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    # SessionStore

    def load_credentials(self) -> dict[str, str | None]:
        """
        Reads the persisted session fields.

        Raises:
            SessionStoreError: If the configuration cannot be read.
        """
        try:
            return self.load_config().session()
        except ConfigurationError as e:
            raise SessionStoreError(f"Cannot load session: {e}") from e

    def save_credentials(self, credentials: dict[str, str | None]) -> None:
        """
        Writes the session fields, keeping every other setting in the file.

        Raises:
            SessionStoreError: If the file cannot be read or written.
        """
        try:
            parser = self._read_parser()
        except ConfigurationError as e:
            raise SessionStoreError(f"Cannot save session: {e}") from e

        section = parser["DEFAULT"]
        for key in SESSION_KEYS:
            section[key] = credentials.get(key) or ""

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.config_file_path.with_suffix(".ini.tmp")
            with open(tmp_path, "w", encoding="utf-8") as configfile:
                parser.write(configfile)
            os.replace(tmp_path, self.config_file_path)
        except OSError as e:
            raise SessionStoreError(f"Failed to save configuration file: {e}") from e
        log.debug(f"Session saved to '{self.config_file_path}'")

