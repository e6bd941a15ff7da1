"""
Configuration for callwatch.
"""

import os
import re
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, cast

from callwatch.core.exceptions import ConfigurationError
from callwatch.core.logging import AsyncLogger, logger


DEFAULT_UPDATE_LOCATIONS = [
    "https://collector.callwatch.dev",
    "https://collector02.callwatch.dev",
]


def parse_locations(raw: Any) -> List[str]:
    """
    Normalize an endpoint list.

    Accepts a comma-separated string ("a, b,c") or a list; blank entries are dropped
    and order is preserved.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        items = re.split(r"\s*,\s*", raw.strip())
    else:
        items = [str(item).strip() for item in raw]
    return [item for item in items if item]


class ConfigValidator:
    """
    Configuration validator.

    Rules:
    1. Reporter interval is a positive number of seconds
    2. At least one update location
    3. Transport timeouts are positive
    4. Scheme order only names known transports
    5. Log level is a loguru level name
    """

    KNOWN_SCHEMES = ("http", "file")
    LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

    def validate_config(self, config: Dict[str, Any]) -> None:
        """Validate the merged configuration, raising ConfigurationError on the first problem."""
        reporter = config.get("reporter", {})

        interval = reporter.get("interval")
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            logger.error("Invalid reporter interval", interval=interval)
            raise ConfigurationError(
                f"Reporter interval must be a positive number of seconds, got {interval!r}",
                context={"setting": "reporter.interval"},
            )

        if not parse_locations(reporter.get("update_locations")):
            logger.error("No update locations configured")
            raise ConfigurationError(
                "At least one update location is required",
                context={"setting": "reporter.update_locations"},
            )

        for scheme in reporter.get("scheme_order") or []:
            if scheme not in self.KNOWN_SCHEMES:
                logger.error("Unknown scheme in scheme_order", scheme=scheme)
                raise ConfigurationError(
                    f"Unknown scheme in scheme_order: {scheme}. Allowed: http, file",
                    context={"setting": "reporter.scheme_order"},
                )

        transport = config.get("transport", {})
        for key in ("open_timeout", "read_timeout"):
            value = transport.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                logger.error("Invalid transport timeout", setting=key, value=value)
                raise ConfigurationError(
                    f"Transport {key} must be positive, got {value!r}",
                    context={"setting": f"transport.{key}"},
                )

        level = config.get("logging", {}).get("level")
        if not isinstance(level, str) or level.upper() not in self.LOG_LEVELS:
            logger.error("Invalid log level", level=level)
            raise ConfigurationError(
                f"Log level must be one of {', '.join(self.LOG_LEVELS)}, got {level!r}",
                context={"setting": "logging.level"},
            )


class Settings:
    """
    Agent configuration.

    Priority order:
    1. Default values
    2. .callwatch file (YAML) in the working directory
    3. Environment variables
    """

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path
        self.config = self._load_config()
        self.validator = ConfigValidator()
        self.validator.validate_config(self.config)
        AsyncLogger.set_level(self.get("logging.level"))
        logger.info(
            "Settings initialized",
            config_source=str(self._find_config_file() or "defaults"),
        )

    def _get_default_config(self) -> Dict[str, Any]:
        """Default configuration."""
        return {
            "app": {"token": None},
            "reporter": {
                "interval": 60,
                "update_locations": list(DEFAULT_UPDATE_LOCATIONS),
                "scheme_order": None,  # None = order of first appearance
            },
            "transport": {
                "open_timeout": 10,
                "read_timeout": 10,
                "verify_tls": False,
            },
            "logging": {"level": "INFO", "debug_mode": False},
        }

    def _find_config_file(self) -> Optional[Path]:
        """Explicit path if given, else .callwatch in the working directory."""
        if self._config_path is not None:
            return self._config_path if self._config_path.exists() else None

        local_config = Path.cwd() / ".callwatch"
        if local_config.exists():
            return local_config

        return None

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration in priority order.

        1. Defaults
        2. .callwatch file
        3. Environment variables
        """
        defaults = self._get_default_config()

        config_path = self._find_config_file()
        if config_path:
            try:
                with open(config_path, encoding='utf-8') as f:
                    file_config = yaml.safe_load(f)
                    if file_config:
                        self._deep_merge(defaults, file_config)
                        logger.debug("Config loaded from file", keys=list(file_config.keys()))
            except (OSError, yaml.YAMLError) as e:
                logger.error("Error reading configuration file", file=str(config_path), error=str(e))
                raise ConfigurationError(f"Error reading configuration file: {e}", cause=e)

        env_overrides = {
            "CALLWATCH_UPDATE": ("reporter", "update_locations"),
            "CALLWATCH_APP": ("app", "token"),
            "CALLWATCH_INTERVAL": ("reporter", "interval"),
            "CALLWATCH_LOG_LEVEL": ("logging", "level"),
        }

        for env_key, path_tuple in env_overrides.items():
            env_value = os.getenv(env_key)
            if env_value:
                value_to_set: Any = env_value.strip()
                if env_key == "CALLWATCH_INTERVAL":
                    try:
                        value_to_set = float(env_value)
                    except ValueError:
                        pass  # Rejected by the validator
                elif env_key == "CALLWATCH_UPDATE":
                    value_to_set = parse_locations(env_value)
                self._set_nested(defaults, path_tuple, value_to_set)

        return defaults

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        """Deep merge of dictionaries."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(cast(Dict[str, Any], base[key]), cast(Dict[str, Any], value))
            else:
                base[key] = value

    def _set_nested(self, data: Dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        """Set value at nested path."""
        current = data
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value; dotted paths ("reporter.interval") walk nested sections."""
        if "." in key:
            current: Any = self.config
            for part in key.split("."):
                if isinstance(current, dict) and part in current:
                    current = current[part]
                else:
                    return default
            return current
        return self.config.get(key, default)

    def require(self, key: str) -> Any:
        """Get a value that must be set, or raise ConfigurationError."""
        value = self.get(key)
        if value is None:
            logger.error("Required config missing", key=key)
            raise ConfigurationError(f"Missing required config: {key}")
        return value

    @property
    def update_locations(self) -> List[str]:
        """Ordered endpoint URIs."""
        return parse_locations(self.get("reporter.update_locations"))

    @property
    def interval(self) -> float:
        return self.get("reporter.interval")

    @property
    def app_token(self) -> Optional[str]:
        return self.get("app.token")
