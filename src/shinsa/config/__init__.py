"""設定管理モジュール。"""

from shinsa.config._env import load_env_config
from shinsa.config._resolver import resolve_config
from shinsa.config._sources import ConfigFileError, ConfigSource, discover_sources

__all__ = [
    "ConfigFileError",
    "ConfigSource",
    "discover_sources",
    "load_env_config",
    "resolve_config",
]
