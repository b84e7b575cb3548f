"""Tests for configuration resolution and duration parsing."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from v4v_analytics.config import V4VConfig, parse_duration
from v4v_analytics.exceptions import ConfigurationError

NWC = "nostr+walletconnect://abc?relay=wss://relay.example.com&secret=ff"


class TestFromEnv:
    def test_env_values(self, tmp_path):
        config = V4VConfig.from_env(
            {
                "V4V_SITE_URL": "https://example.com/",
                "NWC_CONNECTION_STRING": NWC,
                "V4V_BATCH_SIZE": "25",
                "V4V_BATCH_DELAY": "0",
                "V4V_MAX_BATCHES": "5",
                "V4V_MAX_RETRIES": "3",
                "NWC_TIMEOUT": "30",
                "V4V_CACHE_DIR": str(tmp_path),
            },
            config_path=tmp_path / "missing.json",
        )
        assert config.site_url == "example.com"
        assert config.nwc_connection_string == NWC
        assert config.batch_size == 25
        assert config.batch_delay == 0
        assert config.max_batches == 5
        assert config.max_retries == 3
        assert config.nwc_timeout == 30
        assert config.cache_path == tmp_path / "transactions.json"
        assert config.titles_cache_path == tmp_path / "titles.json"

    def test_defaults(self, tmp_path):
        config = V4VConfig.from_env({}, config_path=tmp_path / "missing.json")
        assert config.site_url is None
        assert config.batch_size == 10
        assert config.batch_delay == 0.3
        assert config.max_batches == 20
        assert config.max_retries == 2
        assert config.nwc_timeout == 120
        assert config.cache_dir == Path.home() / ".v4v"

    def test_invalid_numbers_fall_back(self, tmp_path):
        config = V4VConfig.from_env(
            {"V4V_BATCH_SIZE": "lots", "V4V_MAX_BATCHES": "-1", "V4V_BATCH_DELAY": "-2"},
            config_path=tmp_path / "missing.json",
        )
        assert config.batch_size == 10
        assert config.max_batches == 20
        assert config.batch_delay == 0.3

    def test_config_file_fallback(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"siteUrl": "file.com", "nwcConnectionString": NWC}))
        config = V4VConfig.from_env({}, config_path=path)
        assert config.site_url == "file.com"
        assert config.nwc_connection_string == NWC

    def test_env_wins_over_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"siteUrl": "file.com"}))
        config = V4VConfig.from_env({"V4V_SITE_URL": "env.com"}, config_path=path)
        assert config.site_url == "env.com"

    def test_placeholder_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"siteUrl": "file.com"}))
        config = V4VConfig.from_env({"V4V_SITE_URL": "${SITE}"}, config_path=path)
        assert config.site_url == "file.com"

    def test_bad_config_file_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{{{")
        assert V4VConfig.from_env({}, config_path=path).site_url is None

    def test_feed_url(self):
        assert V4VConfig(site_url="example.com").feed_url == "https://example.com/feed.xml"
        assert V4VConfig(site_url="example.com", rss_url="https://x/rss").feed_url == "https://x/rss"
        assert V4VConfig().feed_url is None


class TestValidate:
    def test_missing_site(self):
        with pytest.raises(ConfigurationError, match="V4V_SITE_URL") as exc_info:
            V4VConfig(nwc_connection_string=NWC).validate()
        assert exc_info.value.setting == "V4V_SITE_URL"

    def test_invalid_site(self):
        with pytest.raises(ConfigurationError, match="Invalid"):
            V4VConfig(site_url="not a host", nwc_connection_string=NWC).validate()

    def test_missing_wallet(self):
        with pytest.raises(ConfigurationError, match="NWC_CONNECTION_STRING"):
            V4VConfig(site_url="example.com").validate()

    def test_wallet_optional(self):
        V4VConfig(site_url="example.com").validate(require_wallet=False)

    def test_bad_wallet_scheme(self):
        with pytest.raises(ConfigurationError, match="must start with"):
            V4VConfig(site_url="example.com", nwc_connection_string="https://x").validate()

    def test_valid(self):
        V4VConfig(site_url="example.com", nwc_connection_string=NWC).validate()


class TestParseDuration:
    NOW = datetime(2024, 3, 31, 12, tzinfo=timezone.utc)

    def test_days_and_weeks(self):
        assert parse_duration("7d", self.NOW) == datetime(2024, 3, 24, 12, tzinfo=timezone.utc)
        assert parse_duration("2w", self.NOW) == datetime(2024, 3, 17, 12, tzinfo=timezone.utc)

    def test_months_clamp_day(self):
        assert parse_duration("1m", self.NOW) == datetime(2024, 2, 29, 12, tzinfo=timezone.utc)
        assert parse_duration("3mo", self.NOW) == datetime(2023, 12, 31, 12, tzinfo=timezone.utc)

    def test_years(self):
        assert parse_duration("1y", self.NOW) == datetime(2023, 3, 31, 12, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", None, "7", "d7", "7x", "1.5d", "-1d"])
    def test_invalid(self, value):
        assert parse_duration(value, self.NOW) is None
