"""Reply Relay — Configuration Loader.

Loads and validates application configuration from a YAML file.
Resolves environment variables referenced via ${VAR_NAME} syntax.
Uses Python dataclasses for type-safe configuration access.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from reply_relay.relay import ACK_POLICIES
from reply_relay.utils.logger import get_logger

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

# ── Environment Variable Pattern ─────────────────────────
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)}")


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RabbitConfig:
    """Configuration for the RabbitMQ consumer."""

    address: str
    queue: str = "Reply"
    consumer_tag: str = "reply_consumer"
    prefetch_count: int = 1


@dataclass(frozen=True)
class TelegramConfig:
    """Configuration for the Telegram sender."""

    bot_token: str
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class RelaySettings:
    """Behaviour of the relay loop."""

    ack_policy: str = "always"
    summary_every: int = 100


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration container."""

    rabbit: RabbitConfig
    telegram: TelegramConfig
    relay: RelaySettings
    log_level: str = "INFO"


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Args:
        value: A string, dict, list, or primitive from parsed YAML.

    Returns:
        The same structure with all ${VAR_NAME} placeholders replaced
        by their environment variable values.

    Raises:
        ValueError: If a referenced environment variable is not set
            or is empty.
    """
    if isinstance(value, str):
        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.environ.get(var_name)
            if not env_value:
                raise ValueError(
                    f"Environment variable '${{{var_name}}}' is required but not set. "
                    f"Add it to your .env file or export it in your shell."
                )
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Args:
        path: Absolute or relative path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the file is empty, not a mapping, or invalid YAML.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Configuration file is empty: {path}")
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_rabbit_config(data: dict[str, Any]) -> RabbitConfig:
    """Build a RabbitConfig from the 'rabbit' section of settings.yaml."""
    _validate_keys(data, ["address"], "rabbit")

    prefetch = int(data.get("prefetch_count", 1))
    if prefetch < 1:
        raise ValueError(f"rabbit.prefetch_count must be >= 1, got {prefetch}")

    return RabbitConfig(
        address=str(data["address"]),
        queue=str(data.get("queue", "Reply")),
        consumer_tag=str(data.get("consumer_tag", "reply_consumer")),
        prefetch_count=prefetch,
    )


def _build_telegram_config(data: dict[str, Any]) -> TelegramConfig:
    """Build a TelegramConfig from the 'telegram' section of settings.yaml."""
    _validate_keys(data, ["bot_token"], "telegram")

    return TelegramConfig(
        bot_token=str(data["bot_token"]),
        timeout_seconds=float(data.get("timeout_seconds", 10.0)),
    )


def _build_relay_settings(data: dict[str, Any]) -> RelaySettings:
    """Build RelaySettings from the optional 'relay' section.

    Raises:
        ValueError: If the ack policy is unknown.
    """
    policy = str(data.get("ack_policy", "always"))
    if policy not in ACK_POLICIES:
        raise ValueError(
            f"relay.ack_policy must be one of {', '.join(ACK_POLICIES)}, got {policy!r}"
        )

    return RelaySettings(
        ack_policy=policy,
        summary_every=int(data.get("summary_every", 100)),
    )


def _validate_keys(data: dict[str, Any], required: list[str], section: str) -> None:
    """Validate that all required keys exist in a config section.

    Args:
        data: The configuration dictionary to validate.
        required: List of required key names.
        section: Human-readable section name for error messages.

    Raises:
        ValueError: If any required key is missing.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section '{section}' must be a mapping")
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(
            f"Missing required configuration keys in '{section}': {', '.join(missing)}"
        )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> AppConfig:
    """Load the complete application configuration.

    Loads settings.yaml, resolves environment variables, validates all
    required fields, and returns a typed AppConfig instance.

    Args:
        settings_path: Override path to settings.yaml. Defaults to config/settings.yaml.
        env_path: Override path to .env file. Defaults to project root .env.

    Returns:
        A fully validated AppConfig instance.

    Raises:
        FileNotFoundError: If the settings file is missing.
        ValueError: If required fields are missing or env vars are unset.
    """
    env_file = env_path or (PROJECT_ROOT / ".env")
    load_dotenv(env_file)
    logger.debug("Loaded environment from %s", env_file)

    settings_file = settings_path or SETTINGS_PATH
    settings = _resolve_env_vars(_load_yaml(settings_file))

    _validate_keys(settings, ["rabbit", "telegram"], "settings")

    config = AppConfig(
        rabbit=_build_rabbit_config(settings["rabbit"]),
        telegram=_build_telegram_config(settings["telegram"]),
        relay=_build_relay_settings(settings.get("relay") or {}),
        log_level=str((settings.get("logging") or {}).get("level", "INFO")),
    )

    logger.info("Configuration loaded successfully")
    logger.debug(
        "Queue: %s (consumer tag %s, prefetch %d)",
        config.rabbit.queue, config.rabbit.consumer_tag, config.rabbit.prefetch_count,
    )
    logger.debug("Ack policy: %s", config.relay.ack_policy)

    return config
