"""
Configuration subsystem for SmileQuest.

- **config.py**: Static configuration from environment variables (.env support)
- **manager.py**: Tunable engagement values (YAML defaults + runtime overrides)

`ConfigManager` is imported from `smilequest.core.config.manager` directly;
it depends on the logging subsystem, which itself reads `Config`.
"""

from smilequest.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
