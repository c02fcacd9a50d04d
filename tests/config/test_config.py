import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from config.config import (
    DEFAULT_CONFIG_FILE,
    REGION_BASE_URLS,
    AdsSyncConfig,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)
from core.errors.exceptions import ConfigurationError
from core.oauth2.models import DEFAULT_TOKEN_URL

# =========================================================================
# load_yaml
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text("key: value\nnested:\n  a: 1\n")
        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_yaml(config_file) == {}


# =========================================================================
# _expand_env_vars / _deep_merge
# =========================================================================


class TestExpandEnvVars:
    def test_expands_set_variable(self):
        with patch.dict(os.environ, {"ADS_REGION": "EU"}):
            assert _expand_env_vars({"region": "${ADS_REGION}"}) == {"region": "EU"}

    def test_uses_default_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${ADS_REGION:-NA}") == "NA"
            assert _expand_env_vars("${ADS_CLIENT_ID:-}") == ""

    def test_leaves_unset_variable_without_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${MISSING}") == "${MISSING}"

    def test_expands_nested_lists(self):
        with patch.dict(os.environ, {"A": "1"}):
            assert _expand_env_vars({"x": ["${A}", 2]}) == {"x": ["1", 2]}


class TestDeepMerge:
    def test_merges_nested_dicts(self):
        base = {"reports": {"chunk_size": 500, "poll_interval_seconds": 60}}
        overlay = {"reports": {"chunk_size": 100}}
        assert _deep_merge(base, overlay) == {
            "reports": {"chunk_size": 100, "poll_interval_seconds": 60}
        }
        assert base["reports"]["chunk_size"] == 500


# =========================================================================
# AdsSyncConfig
# =========================================================================


def _valid_config(**overrides) -> AdsSyncConfig:
    values = {
        "client_id": "amzn1.application-oa2-client.abc",
        "reporting_client_id": "amzn1.application-oa2-client.abc",
        "reporting_client_secret": "secret",
    }
    values.update(overrides)
    return AdsSyncConfig(**values)


class TestAdsSyncConfig:
    def test_defaults(self):
        config = AdsSyncConfig()
        assert config.region == "NA"
        assert config.token_url == DEFAULT_TOKEN_URL
        assert config.refresh_threshold_seconds == 3300
        assert config.poll_interval_seconds == 60.0
        assert config.max_poll_attempts is None
        assert config.poll_timeout_seconds is None
        assert config.chunk_size == 500
        assert config.retry_max_attempts == 1

    def test_type_coercion_from_env_strings(self):
        config = AdsSyncConfig(
            region="eu",
            timeout_seconds="45",
            max_poll_attempts="",
            poll_timeout_seconds="7200",
            chunk_size="250",
        )
        assert config.region == "EU"
        assert config.timeout_seconds == 45
        assert config.max_poll_attempts is None
        assert config.poll_timeout_seconds == 7200.0
        assert config.chunk_size == 250

    @pytest.mark.parametrize("region", ["NA", "EU", "FE"])
    def test_api_base_url_from_region(self, region):
        assert AdsSyncConfig(region=region).api_base_url == REGION_BASE_URLS[region]

    def test_explicit_base_url_wins(self):
        config = AdsSyncConfig(region="EU", base_url="https://sandbox.example.com/")
        assert config.api_base_url == "https://sandbox.example.com"

    def test_configured_slots(self):
        assert _valid_config().configured_slots() == ["reporting"]
        assert _valid_config(
            seller_data_client_id="sp-id", seller_data_client_secret="sp-secret"
        ).configured_slots() == ["reporting", "seller_data"]

    def test_oauth_config_per_slot(self):
        config = _valid_config(
            seller_data_client_id="sp-id",
            seller_data_client_secret="sp-secret",
            seller_data_token_url="https://sp.example.com/token",
        )
        reporting = config.oauth_config("reporting")
        assert reporting.provider_name == "reporting"
        assert reporting.token_url == DEFAULT_TOKEN_URL

        seller = config.oauth_config("seller_data")
        assert seller.client_id == "sp-id"
        assert seller.token_url == "https://sp.example.com/token"

    def test_oauth_config_unknown_slot(self):
        with pytest.raises(ConfigurationError, match="Unknown credential slot"):
            _valid_config().oauth_config("billing")

    def test_retry_config(self):
        retry = _valid_config(retry_max_attempts=4, retry_base_delay=0.5).retry_config()
        assert retry.max_attempts == 4
        assert retry.base_delay == 0.5

    def test_validate_passes(self):
        _valid_config().validate()

    def test_validate_requires_credentials(self):
        with pytest.raises(ConfigurationError, match="client_id is required"):
            AdsSyncConfig().validate()
        AdsSyncConfig().validate(require_credentials=False)

    def test_validate_requires_reporting_secret(self):
        with pytest.raises(ConfigurationError, match="client_secret"):
            _valid_config(reporting_client_secret="").validate()

    def test_validate_unknown_region(self):
        with pytest.raises(ConfigurationError, match="region"):
            _valid_config(region="APAC").validate()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("timeout_seconds", 0),
            ("max_concurrent", 0),
            ("refresh_threshold_seconds", 0),
            ("chunk_size", 0),
            ("max_poll_attempts", 0),
            ("poll_timeout_seconds", 0),
            ("retry_max_attempts", 0),
            ("poll_interval_seconds", -1),
        ],
    )
    def test_validate_rejects_out_of_range(self, field, value):
        with pytest.raises(ConfigurationError):
            _valid_config(**{field: value}).validate()

    def test_safe_dict_masks_secrets(self):
        data = _valid_config(seller_data_client_secret="sp-secret").to_safe_dict()
        assert data["reporting_client_secret"] == "***"
        assert data["seller_data_client_secret"] == "***"
        assert data["client_id"] == "amzn1.application-oa2-client.abc"


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_loads_sections(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.safe_dump(
                {
                    "ads_api": {"region": "FE", "client_id": "ads-client"},
                    "oauth": {"reporting": {"client_secret": "s"}},
                    "reports": {"poll_interval_seconds": 30, "max_poll_attempts": 120},
                    "retry": {"max_attempts": 3},
                }
            )
        )

        config = load_config(config_file)

        assert config.region == "FE"
        # Advertising client id doubles as the reporting OAuth2 client
        assert config.reporting_client_id == "ads-client"
        assert config.poll_interval_seconds == 30.0
        assert config.max_poll_attempts == 120
        assert config.retry_max_attempts == 3
        config.validate()

    def test_env_vars_and_overrides(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "ads_api:\n  client_id: ${TEST_ADS_CLIENT_ID:-fallback}\nreports:\n  chunk_size: 500\n"
        )

        with patch.dict(os.environ, {"TEST_ADS_CLIENT_ID": "from-env"}):
            config = load_config(config_file, overrides={"reports": {"chunk_size": 50}})

        assert config.client_id == "from-env"
        assert config.chunk_size == 50

    def test_invalid_value_is_configuration_error(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("reports:\n  chunk_size: lots\n")

        with pytest.raises(ConfigurationError, match="Invalid value"):
            load_config(config_file)

    def test_out_of_range_value(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("reports:\n  chunk_size: 0\n")

        with pytest.raises(ConfigurationError, match="chunk_size"):
            load_config(config_file)

    def test_bundled_config_loads(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(DEFAULT_CONFIG_FILE)

        assert config.region == "NA"
        assert config.max_poll_attempts is None
        assert config.configured_slots() == []


class TestConfigSingleton:
    def test_set_get_reset(self):
        custom = _valid_config(region="EU")
        set_config(custom)
        try:
            assert get_config() is custom
        finally:
            reset_config()
