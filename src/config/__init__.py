"""Configuration loading for ads report sync.

Configuration is read from src/config/config.yaml, with ${VAR} and
${VAR:-default} expanded from the environment.

Usage:
    >>> from config import load_config, get_config
    >>>
    >>> config = load_config()
    >>> config.api_base_url
    'https://advertising-api.amazon.com'
    >>>
    >>> # Or use singleton pattern
    >>> config = get_config()

Settings priority (highest to lowest):

1. Overrides passed to load_config()
2. Environment variables referenced from the YAML file
3. YAML values
4. Dataclass defaults
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    REGION_BASE_URLS,
    AdsSyncConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "AdsSyncConfig",
    "REGION_BASE_URLS",
    "DEFAULT_CONFIG_FILE",
]
