"""
Tunable engagement configuration with YAML backing.

Features:
- Hierarchical config access with dot notation (e.g., 'wear.default_target_percent')
- Built-in defaults, overlaid by every YAML file under the config directory
- Runtime overrides (used by tests and by operators for live tuning)
- Lightweight access metrics

Note:
- Environment-level settings (database URL, log level) live in Config
- ConfigManager handles only tunable engagement values
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from smilequest.core.logging.logger import get_logger

logger = get_logger(__name__)


_MISSING = object()


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge `overlay` into `base` in place and return `base`."""
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


class ConfigManager:
    """
    Tunable configuration with hierarchical dot-notation access.

    Values are resolved from three layers, highest precedence first:
    runtime overrides, YAML files in the config directory, built-in defaults.
    """

    # =========================================================================
    # DEFAULT CONFIGURATIONS
    # =========================================================================
    DEFAULTS: Dict[str, Any] = {
        "wear": {
            "default_target_percent": 80,
            "default_target_hours_per_day": 22,
            "streak_lookback_days": 40,
            "weekly_window_days": 7,
        },
        "rewards": {
            "daily_goal": {"coins": 10, "xp": 5},
        },
        "quests": {
            "lessons_target": 1,
            "reward_coins": 200,
            "reward_xp": 120,
        },
        "economy": {
            "xp_per_level": 100,
            "transactions_page_max": 200,
        },
        "missions": {
            "award_retry_attempts": 3,
        },
    }

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._config_dir = config_dir
        self._values: Dict[str, Any] = copy.deepcopy(self.DEFAULTS)
        self._metrics = {"gets": 0, "fallback_to_defaults": 0, "yaml_files": 0}

        if config_dir is not None:
            self._load_yaml_configs(config_dir)
        if overrides:
            _deep_merge(self._values, overrides)

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def _load_yaml_configs(self, config_dir: Path) -> None:
        """
        Recursively load all YAML config files under `config_dir`.

        A missing directory is not an error; built-in defaults apply.
        Malformed files raise, so a bad deploy fails at startup.
        """
        if not config_dir.exists():
            logger.warning(
                "Config directory not found, using built-in defaults",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        for yaml_file in yaml_files:
            with open(yaml_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if not data:
                continue
            if not isinstance(data, dict):
                from smilequest.core.exceptions import ConfigurationError

                raise ConfigurationError(
                    str(yaml_file), "top-level YAML document must be a mapping"
                )
            _deep_merge(self._values, data)
            self._metrics["yaml_files"] += 1
            logger.debug(f"Loaded YAML config: {yaml_file.relative_to(config_dir)}")

        logger.info(
            f"Loaded {self._metrics['yaml_files']} YAML config files",
            extra={"config_dir": str(config_dir), "yaml_count": self._metrics["yaml_files"]},
        )

    # =========================================================================
    # ACCESS
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value by dot-notation key.

        >>> ConfigManager().get("wear.default_target_percent")
        80
        """
        self._metrics["gets"] += 1
        value = self._lookup(self._values, key)
        if value is _MISSING:
            self._metrics["fallback_to_defaults"] += 1
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Override a value at runtime (nested dicts are created as needed)."""
        keys = key.split(".")
        target = self._values
        for part in keys[:-1]:
            target = target.setdefault(part, {})
        target[keys[-1]] = value
        logger.info("Config value overridden", extra={"config_key": key})

    def get_all_keys(self) -> List[str]:
        return list(self._values.keys())

    def get_metrics(self) -> Dict[str, Any]:
        return dict(self._metrics)

    @staticmethod
    def _lookup(values: Dict[str, Any], key: str) -> Any:
        current: Any = values
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
        return current
