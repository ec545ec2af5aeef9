"""
Plugin options for Brute Force Login Protection

Options come from three layers, later layers winning:
    1. Built-in defaults
    2. The JSON options file (bflp_options.json), written by `block_admin.py configure`
    3. Environment variables / command-line flags

Environment Variables:
    BFLP_ALLOWED_ATTEMPTS: Allowed login attempts before blocking an IP
    BFLP_RESET_TIME: Minutes before resetting the login attempts count
    BFLP_HTACCESS_DIR: Directory holding the .htaccess file
    BFLP_403_MESSAGE: Message shown to blocked visitors
    SLACK_BOT_TOKEN / SLACK_CHANNEL: Slack notifications via the Web API
    SLACK_WEBHOOK_URL: Slack notifications via an incoming webhook
    IPINFO_TOKEN: IPInfo API token for blocked-IP geolocation

Secrets (Slack and IPInfo tokens) are never written to the options file.
"""

import json
import logging
import os
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS_FILE = "./bflp_options.json"

# Options persisted to the options file, with their defaults
DEFAULT_OPTIONS = {
    "allowed_attempts": 20,
    "reset_time": 60,
    "htaccess_dir": ".",
    "message_403": "",
}

ENV_VARS = {
    "allowed_attempts": "BFLP_ALLOWED_ATTEMPTS",
    "reset_time": "BFLP_RESET_TIME",
    "htaccess_dir": "BFLP_HTACCESS_DIR",
    "message_403": "BFLP_403_MESSAGE",
    "slack_token": "SLACK_BOT_TOKEN",
    "slack_channel": "SLACK_CHANNEL",
    "slack_webhook_url": "SLACK_WEBHOOK_URL",
    "ipinfo_token": "IPINFO_TOKEN",
}


class Settings:
    """
    Explicit configuration passed to the Htaccess manager and the admin CLI.
    """

    def __init__(
        self,
        allowed_attempts: int = DEFAULT_OPTIONS["allowed_attempts"],
        reset_time: int = DEFAULT_OPTIONS["reset_time"],
        htaccess_dir: str = DEFAULT_OPTIONS["htaccess_dir"],
        message_403: str = DEFAULT_OPTIONS["message_403"],
        slack_token: Optional[str] = None,
        slack_channel: Optional[str] = None,
        slack_webhook_url: Optional[str] = None,
        ipinfo_token: Optional[str] = None,
    ):
        self.allowed_attempts = allowed_attempts
        self.reset_time = reset_time
        self.htaccess_dir = htaccess_dir
        self.message_403 = message_403
        self.slack_token = slack_token
        self.slack_channel = slack_channel
        self.slack_webhook_url = slack_webhook_url
        self.ipinfo_token = ipinfo_token

    def __repr__(self):
        return f"Settings({self.to_options()!r})"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from defaults overridden by environment variables."""
        settings = cls()
        settings.apply_env(environ)
        return settings

    @classmethod
    def load(cls, file_path: str = DEFAULT_OPTIONS_FILE) -> "Settings":
        """
        Loads options from a JSON file. Falls back to defaults if the file is
        missing or corrupted.
        """
        settings = cls()
        try:
            if not os.path.exists(file_path):
                logger.info(f"Options file {file_path} not found. Using defaults.")
                return settings
            with open(file_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Options file {file_path} is corrupted: {e}. Using defaults.")
            return settings
        except OSError as e:
            logger.warning(f"Error loading options file {file_path}: {e}. Using defaults.")
            return settings

        if not isinstance(data, dict):
            logger.warning(f"Options file {file_path} has invalid structure. Using defaults.")
            return settings

        try:
            settings.update(**{k: v for k, v in data.items() if k in DEFAULT_OPTIONS})
        except ValueError as e:
            logger.warning(f"Options file {file_path} has an invalid value: {e}. Using defaults.")
            return cls()
        logger.debug(f"Loaded options from {file_path}")
        return settings

    def save(self, file_path: str = DEFAULT_OPTIONS_FILE) -> None:
        """
        Saves the persistable options to a JSON file atomically.

        Raises:
            OSError: If the file cannot be written.
        """
        parent = os.path.dirname(file_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        temp_file = f"{file_path}.tmp"
        with open(temp_file, "w") as f:
            json.dump(self.to_options(), f, indent=2)
        os.replace(temp_file, file_path)
        logger.info(f"Saved options to {file_path}")

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Overrides options with any environment variables that are set."""
        environ = os.environ if environ is None else environ
        self.update(
            **{attr: environ.get(var) for attr, var in ENV_VARS.items() if environ.get(var)}
        )

    def update(self, **options) -> None:
        """Applies every option that is not None."""
        for name, value in options.items():
            if value is None:
                continue
            if name not in ENV_VARS:
                raise ValueError(f"Unknown option: {name}")
            if name in ("allowed_attempts", "reset_time"):
                value = _to_int(name, value)
            setattr(self, name, value)

    def validate(self) -> None:
        """
        Raises:
            ValueError: If a threshold is below 1 or the .htaccess directory is empty.
        """
        if _to_int("allowed_attempts", self.allowed_attempts) < 1:
            raise ValueError("allowed_attempts must be at least 1")
        if _to_int("reset_time", self.reset_time) < 1:
            raise ValueError("reset_time must be at least 1 minute")
        if not self.htaccess_dir or not str(self.htaccess_dir).strip():
            raise ValueError("htaccess_dir must not be empty")

    def to_options(self) -> Dict:
        """Returns the persistable options (no secrets)."""
        return {name: getattr(self, name) for name in DEFAULT_OPTIONS}


def _to_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}")
