"""Advertising report sync configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Advertising API endpoint and client settings
- OAuth2 client credentials per credential slot
- Credential cache, report polling and outer retry settings

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.errors.exceptions import ConfigurationError
from core.oauth2.models import DEFAULT_TOKEN_URL, REPORTING_SLOT, SELLER_DATA_SLOT, OAuth2Config
from core.resilience.retry import RetryConfig

# Configure module logger
logger = logging.getLogger(__name__)

REGION_BASE_URLS = {
    "NA": "https://advertising-api.amazon.com",
    "EU": "https://advertising-api-eu.amazon.com",
    "FE": "https://advertising-api-fe.amazon.com",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _optional_int(value: Any) -> Optional[int]:
    """Empty strings (unset env vars) and None mean 'not configured'."""
    if value is None or value == "":
        return None
    return int(value)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


@dataclass
class AdsSyncConfig:
    """Advertising report sync configuration.

    Configuration structure:
        ads_api: {...}        # Region, client id, timeouts, concurrency
        oauth:
          token_url: ...
          reporting: {...}    # client_id / client_secret per slot
          seller_data: {...}
        credentials: {...}    # refresh threshold
        reports: {...}        # polling and chunking
        retry: {...}          # outer backoff for throttling / network faults
    """

    # =========================================================================
    # ADVERTISING API
    # =========================================================================
    region: str = "NA"
    base_url: str = ""
    client_id: str = ""
    timeout_seconds: int = 30
    max_concurrent: int = 10

    # =========================================================================
    # OAUTH2 (one client per credential slot)
    # =========================================================================
    token_url: str = DEFAULT_TOKEN_URL
    reporting_client_id: str = ""
    reporting_client_secret: str = ""
    seller_data_client_id: str = ""
    seller_data_client_secret: str = ""
    seller_data_token_url: str = ""

    # =========================================================================
    # CREDENTIAL CACHE
    # =========================================================================
    refresh_threshold_seconds: int = 3300  # 55 minutes of a ~60 minute token

    # =========================================================================
    # REPORT JOBS
    # =========================================================================
    poll_interval_seconds: float = 60.0
    max_poll_attempts: Optional[int] = None
    poll_timeout_seconds: Optional[float] = None
    chunk_size: int = 500
    download_timeout_seconds: int = 300

    # =========================================================================
    # OUTER RETRY (1 = disabled)
    # =========================================================================
    retry_max_attempts: int = 1
    retry_base_delay: float = 2.0
    retry_max_delay: float = 60.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.region = str(self.region or "NA").upper()
        self.timeout_seconds = int(self.timeout_seconds)
        self.max_concurrent = int(self.max_concurrent)
        self.refresh_threshold_seconds = int(self.refresh_threshold_seconds)
        self.poll_interval_seconds = float(self.poll_interval_seconds)
        self.max_poll_attempts = _optional_int(self.max_poll_attempts)
        self.poll_timeout_seconds = _optional_float(self.poll_timeout_seconds)
        self.chunk_size = int(self.chunk_size)
        self.download_timeout_seconds = int(self.download_timeout_seconds)
        self.retry_max_attempts = int(self.retry_max_attempts)
        self.retry_base_delay = float(self.retry_base_delay)
        self.retry_max_delay = float(self.retry_max_delay)

    @property
    def api_base_url(self) -> str:
        """Explicit base_url, else the region's endpoint."""
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.region not in REGION_BASE_URLS:
            raise ConfigurationError(
                f"Unknown region '{self.region}'. Valid: {sorted(REGION_BASE_URLS)}"
            )
        return REGION_BASE_URLS[self.region]

    def configured_slots(self) -> List[str]:
        """Credential slots that have a client configured."""
        slots = []
        if self.reporting_client_id and self.reporting_client_secret:
            slots.append(REPORTING_SLOT)
        if self.seller_data_client_id and self.seller_data_client_secret:
            slots.append(SELLER_DATA_SLOT)
        return slots

    def oauth_config(self, slot: str) -> OAuth2Config:
        """Build the OAuth2 client configuration for one slot."""
        if slot == REPORTING_SLOT:
            return OAuth2Config(
                provider_name=slot,
                client_id=self.reporting_client_id,
                client_secret=self.reporting_client_secret,
                token_url=self.token_url,
            )
        if slot == SELLER_DATA_SLOT:
            return OAuth2Config(
                provider_name=slot,
                client_id=self.seller_data_client_id,
                client_secret=self.seller_data_client_secret,
                token_url=self.seller_data_token_url or self.token_url,
            )
        raise ConfigurationError(f"Unknown credential slot: {slot}")

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def validate(self, require_credentials: bool = True) -> None:
        """Validate configuration for correctness and constraints.

        Args:
            require_credentials: Also require the advertising client id and
                the reporting OAuth2 client (off for tooling that only
                inspects the file)

        Raises:
            ConfigurationError: On the first invalid setting
        """
        if not self.base_url and self.region not in REGION_BASE_URLS:
            raise ConfigurationError(
                f"ads_api.region must be one of {sorted(REGION_BASE_URLS)}, got '{self.region}'"
            )

        self._validate_min("ads_api.timeout_seconds", self.timeout_seconds, 0, inclusive=False)
        self._validate_min("ads_api.max_concurrent", self.max_concurrent, 1, inclusive=True)
        self._validate_min(
            "credentials.refresh_threshold_seconds",
            self.refresh_threshold_seconds,
            0,
            inclusive=False,
        )
        self._validate_min(
            "reports.poll_interval_seconds", self.poll_interval_seconds, 0, inclusive=True
        )
        self._validate_min("reports.chunk_size", self.chunk_size, 1, inclusive=True)
        self._validate_min(
            "reports.download_timeout_seconds", self.download_timeout_seconds, 0, inclusive=False
        )
        if self.max_poll_attempts is not None:
            self._validate_min("reports.max_poll_attempts", self.max_poll_attempts, 1, inclusive=True)
        if self.poll_timeout_seconds is not None:
            self._validate_min(
                "reports.poll_timeout_seconds", self.poll_timeout_seconds, 0, inclusive=False
            )
        self._validate_min("retry.max_attempts", self.retry_max_attempts, 1, inclusive=True)
        self._validate_min("retry.base_delay", self.retry_base_delay, 0, inclusive=True)
        self._validate_min("retry.max_delay", self.retry_max_delay, 0, inclusive=True)

        if require_credentials:
            if not self.client_id:
                raise ConfigurationError("ads_api.client_id is required (set ADS_CLIENT_ID)")
            if not self.reporting_client_id or not self.reporting_client_secret:
                raise ConfigurationError(
                    "oauth.reporting.client_id and client_secret are required "
                    "(set ADS_CLIENT_ID / ADS_CLIENT_SECRET)"
                )

    @staticmethod
    def _validate_min(key: str, value: float, min_value: float, inclusive: bool) -> None:
        """Validate that a setting's value meets a minimum threshold."""
        if inclusive and value < min_value:
            raise ConfigurationError(f"{key} must be >= {min_value}, got {value}")
        elif not inclusive and value <= min_value:
            raise ConfigurationError(f"{key} must be > {min_value}, got {value}")

    def to_safe_dict(self) -> Dict[str, Any]:
        """Settings with client secrets masked, for display."""
        data = asdict(self)
        for key in ("reporting_client_secret", "seller_data_client_secret"):
            if data[key]:
                data[key] = "***"
        return data


def _from_sections(data: Dict[str, Any]) -> AdsSyncConfig:
    ads_api = data.get("ads_api", {}) or {}
    oauth = data.get("oauth", {}) or {}
    reporting = oauth.get(REPORTING_SLOT, {}) or {}
    seller_data = oauth.get(SELLER_DATA_SLOT, {}) or {}
    credentials = data.get("credentials", {}) or {}
    reports = data.get("reports", {}) or {}
    retry = data.get("retry", {}) or {}

    client_id = ads_api.get("client_id", "")

    return AdsSyncConfig(
        region=ads_api.get("region", "NA"),
        base_url=ads_api.get("base_url", ""),
        client_id=client_id,
        timeout_seconds=ads_api.get("timeout_seconds", 30),
        max_concurrent=ads_api.get("max_concurrent", 10),
        token_url=oauth.get("token_url") or DEFAULT_TOKEN_URL,
        # The advertising client id doubles as the reporting OAuth2 client
        reporting_client_id=reporting.get("client_id") or client_id,
        reporting_client_secret=reporting.get("client_secret", ""),
        seller_data_client_id=seller_data.get("client_id", ""),
        seller_data_client_secret=seller_data.get("client_secret", ""),
        seller_data_token_url=seller_data.get("token_url", ""),
        refresh_threshold_seconds=credentials.get("refresh_threshold_seconds", 3300),
        poll_interval_seconds=reports.get("poll_interval_seconds", 60),
        max_poll_attempts=reports.get("max_poll_attempts"),
        poll_timeout_seconds=reports.get("poll_timeout_seconds"),
        chunk_size=reports.get("chunk_size", 500),
        download_timeout_seconds=reports.get("download_timeout_seconds", 300),
        retry_max_attempts=retry.get("max_attempts", 1),
        retry_base_delay=retry.get("base_delay", 2.0),
        retry_max_delay=retry.get("max_delay", 60.0),
    )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AdsSyncConfig:
    """Load configuration from config.yaml.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    Overrides use the same section layout as the file and are deep-merged.

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigurationError: If a setting is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        yaml_data = _deep_merge(yaml_data, overrides)

    try:
        config = _from_sections(yaml_data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in {config_path}: {e}", cause=e) from e

    logger.debug(
        "Configuration loaded",
        extra={"slots": config.configured_slots()},
    )
    config.validate(require_credentials=False)
    return config


_ads_config: Optional[AdsSyncConfig] = None


def get_config() -> AdsSyncConfig:
    """Get or load the singleton config instance."""
    global _ads_config
    if _ads_config is None:
        _ads_config = load_config()
    return _ads_config


def set_config(config: AdsSyncConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _ads_config
    _ads_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _ads_config
    _ads_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Ads report sync configuration tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m config.config --validate
  python -m config.config --show --json
  python -m config.config --config /path/to/config.yaml --validate
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate including credentials")
    parser.add_argument("--show", action="store_true", help="Display effective settings")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    if not args.validate and not args.show:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
        if args.validate:
            config.validate()
    except (FileNotFoundError, ConfigurationError) as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        output: Dict[str, Any] = {"validation": {"passed": True}} if args.validate else {}
        if args.show:
            output["config"] = config.to_safe_dict()
        print(json.dumps(output, indent=2))
    else:
        if args.validate:
            print("Configuration validation passed")
        if args.show:
            print(yaml.safe_dump(config.to_safe_dict(), default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
