"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


PROVIDERS = ("yahoo_finance", "sina")
NOTIFIER_TYPES = ("log", "discord")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/quotewatch.db"


@dataclass
class DataSourceConfig:
    """Quote source configuration."""

    provider: str = "yahoo_finance"
    request_timeout: float = 10.0


@dataclass
class ScheduleConfig:
    """Polling schedule configuration."""

    timezone: str = "Asia/Shanghai"
    poll_interval_seconds: float = 10.0
    immediate: bool = True
    enabled: bool = True


@dataclass
class AlertsConfig:
    """Alert evaluation configuration."""

    rearm_on_cross: bool = False


@dataclass
class ChannelConfig:
    """Delivery settings for one notification channel."""

    type: str = "log"
    webhook_url: str = ""
    mention: bool = False


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    tray: ChannelConfig = field(default_factory=ChannelConfig)
    desktop: ChannelConfig = field(default_factory=ChannelConfig)


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: str) -> None:
    """Validate timezone string."""
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigValidationError(f"Unknown timezone: {timezone}")


def _validate_channel(name: str, channel: dict[str, Any]) -> None:
    """Validate a notification channel section."""
    channel_type = channel.get("type", "log")
    if channel_type not in NOTIFIER_TYPES:
        raise ConfigValidationError(
            f"Unknown notifier type for {name}: {channel_type}"
        )
    if channel_type == "discord" and not channel.get("webhook_url"):
        raise ConfigValidationError(f"Discord webhook_url required for {name}")


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    data_source = config_dict.get("data_source") or {}
    provider = data_source.get("provider", "yahoo_finance")
    if provider not in PROVIDERS:
        raise ConfigValidationError(f"Unknown quote provider: {provider}")

    schedule = config_dict.get("schedule") or {}
    _validate_timezone(schedule.get("timezone", ScheduleConfig.timezone))
    interval = schedule.get("poll_interval_seconds", 10.0)
    if not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigValidationError(
            f"poll_interval_seconds must be a positive number: {interval}"
        )

    notifications = config_dict.get("notifications") or {}
    for name in ("tray", "desktop"):
        _validate_channel(name, notifications.get(name) or {})

    advanced = config_dict.get("advanced") or {}
    log_level = str(advanced.get("log_level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigValidationError(f"Unknown log level: {log_level}")


def config_from_dict(raw_config: dict[str, Any]) -> AppConfig:
    """
    Build an AppConfig from a parsed configuration mapping.

    Args:
        raw_config: Mapping as loaded from YAML

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    config_dict = _substitute_env_vars(raw_config)
    _validate_config(config_dict)

    database = DatabaseConfig(**(config_dict.get("database") or {}))
    data_source = DataSourceConfig(**(config_dict.get("data_source") or {}))
    schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))
    alerts = AlertsConfig(**(config_dict.get("alerts") or {}))

    notif_dict = config_dict.get("notifications") or {}
    notifications = NotificationsConfig(
        tray=ChannelConfig(**(notif_dict.get("tray") or {})),
        desktop=ChannelConfig(**(notif_dict.get("desktop") or {})),
    )

    advanced_dict = dict(config_dict.get("advanced") or {})
    if "log_level" in advanced_dict:
        advanced_dict["log_level"] = str(advanced_dict["log_level"]).upper()
    advanced = AdvancedConfig(**advanced_dict)

    return AppConfig(
        database=database,
        data_source=data_source,
        schedule=schedule,
        alerts=alerts,
        notifications=notifications,
        advanced=advanced,
    )


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return config_from_dict(raw_config)
