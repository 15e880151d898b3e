"""
Manages loading and saving of the INI configuration file, with environment
variable overrides for deployment secrets.
"""

import configparser
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from soundrelay.exceptions import ConfigurationError
from soundrelay.models.config import RelayConfig

log = logging.getLogger(__name__)

_LIST_SPLIT = re.compile(r"[\n,;]+")
_ID_SPLIT = re.compile(r"[\n,;\s]+")

# Environment variable -> config key. Values are converted in _get_env_overrides.
ENV_OVERRIDES = {
    "SOUNDCLOUD_OAUTH_TOKEN": "soundcloud_oauth_token",
    "SOUNDCLOUD_OAUTH": "soundcloud_oauth_token",
    "BOT_PASSWORDS": "access_passwords",
    "BOT_PASSWORD": "access_passwords",
    "ADMIN_USER_IDS": "admin_user_ids",
    "MAX_CONCURRENT_DOWNLOADS": "max_concurrent_downloads",
    "MAX_PENDING_DOWNLOADS": "max_pending_downloads",
    "IDHS_API_BASE_URL": "link_resolver_base_url",
    "IDHS_REQUEST_TIMEOUT_MS": "link_resolver_timeout_s",
    "ENABLE_QUALITY_ANALYSIS": "enable_quality_analysis",
    "QUALITY_ANALYSIS_DEBUG": "quality_analysis_debug",
    "FFPROBE_PATH": "ffprobe_path",
    "YT_DLP_SKIP_CERT_CHECK": "skip_cert_check",
    "SOUNDRELAY_DATA_DIR": "data_dir",
}


def split_list(raw: str) -> list[str]:
    return [entry.strip() for entry in _LIST_SPLIT.split(raw) if entry.strip()]


def split_ids(raw: str) -> list[int]:
    ids = []
    for entry in _ID_SPLIT.split(raw):
        entry = entry.strip()
        if entry.lstrip("-").isdigit():
            ids.append(int(entry))
    return ids


def read_positive_int(raw: str | None, fallback: int) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


class ConfigManager:
    """Handles all operations related to the relay's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(
        self,
        cli_options: dict[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> RelayConfig:
        """
        Loads configuration from the INI file, applies environment and CLI
        overrides (in that order), and validates it.

        A missing file is not an error: defaults plus overrides are used.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        settings = self.read_file_settings()
        settings.update(self._get_env_overrides(os.environ if environ is None else environ))

        if cli_options:
            settings.update(cli_options)

        try:
            return RelayConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def read_file_settings(self) -> dict[str, Any]:
        """Returns the settings present in the INI file, or {} if there is none."""
        if not self.config_file_path.is_file():
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )
            return {}
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
            return self._get_config_as_dict()
        except (configparser.Error, ValueError) as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file, filling unspecified keys
        with model defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = RelayConfig()

        for key in sorted(RelayConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif isinstance(value, list):
                config["DEFAULT"][key] = ",".join(map(str, value))
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key, field in RelayConfig.model_fields.items():
            if key not in section:
                continue
            annotation = field.annotation
            if annotation is bool:
                values[key] = section.getboolean(key)
            elif annotation is int:
                values[key] = section.getint(key)
            elif annotation is float:
                values[key] = section.getfloat(key)
            elif key == "admin_user_ids":
                values[key] = split_ids(section.get(key, ""))
            elif key == "access_passwords":
                values[key] = split_list(section.get(key, ""))
            else:
                values[key] = section.get(key)
        return values

    def _get_env_overrides(self, environ: Mapping[str, str]) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for env_key, key in ENV_OVERRIDES.items():
            raw = environ.get(env_key)
            if raw is None or raw == "" or key in overrides:
                continue
            if key == "access_passwords":
                overrides[key] = split_list(raw)
            elif key == "admin_user_ids":
                overrides[key] = split_ids(raw)
            elif key in ("max_concurrent_downloads", "max_pending_downloads"):
                default = RelayConfig.model_fields[key].default
                overrides[key] = read_positive_int(raw, default)
            elif key == "link_resolver_timeout_s":
                overrides[key] = read_positive_int(raw, 15000) / 1000
            elif key == "enable_quality_analysis":
                overrides[key] = raw.strip().lower() != "false"
            elif key in ("quality_analysis_debug", "skip_cert_check"):
                overrides[key] = raw.strip().lower() == "true"
            else:
                overrides[key] = raw
        return overrides
