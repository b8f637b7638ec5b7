"""
Unit tests for queue settings loading.
"""

import os
from datetime import timedelta

import pytest

from mws_jobs.config.settings import (
    Partition,
    QueueSettings,
    get_settings,
    reload_settings,
    reset_settings,
)
from mws_jobs.jobs.retry import RetryPeriodType


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    """Every test starts without a cached loader or MWS_JOBS_* variables."""
    for name in list(os.environ):
        if name.startswith("MWS_JOBS_"):
            monkeypatch.delenv(name)
    reset_settings()
    yield
    reset_settings()


class TestQueueSettingsDefaults:
    """Tests for built-in defaults."""

    def test_defaults(self):
        """Defaults: 3 retries per stage, 30 min / 1 h backoff, 2 day expiry."""
        settings = QueueSettings()
        assert settings.max_submit_retries == 3
        assert settings.max_download_retries == 3
        assert settings.max_status_retries == 3
        assert settings.max_callback_retries == 3
        assert settings.retry_initial_delay == timedelta(minutes=30)
        assert settings.retry_interval == timedelta(hours=1)
        assert settings.retry_period_type == RetryPeriodType.ARITHMETIC
        assert settings.expiration_period == timedelta(days=2)
        assert settings.status_poll_batch_size == 100

    def test_retry_policy_mirrors_settings(self):
        """retry_policy() carries every threshold over."""
        policy = QueueSettings(max_callback_retries=7, retry_period_type=RetryPeriodType.GEOMETRIC).retry_policy()
        assert policy.max_callback_retries == 7
        assert policy.retry_period_type == RetryPeriodType.GEOMETRIC

    @pytest.mark.parametrize("kwargs", [
        {"max_submit_retries": -1},
        {"status_poll_batch_size": 0},
        {"poll_interval_seconds": 0},
    ])
    def test_invalid_values_rejected(self, kwargs):
        """Negative counts and empty batches are rejected."""
        with pytest.raises(ValueError):
            QueueSettings(**kwargs)


class TestYamlLoading:
    """Tests for loading from a YAML file."""

    def test_load_from_explicit_path(self, make_yaml_config):
        """Values from the YAML file are applied."""
        path = make_yaml_config("mws_jobs.yml", {
            "retry": {
                "max_submit_retries": 5,
                "expiration_period_hours": 12,
                "initial_delay_minutes": 5,
                "interval_minutes": 10,
                "period_type": "geometric",
                "max_delay_minutes": 60,
            },
            "status_poll_batch_size": 25,
            "worker": {
                "poll_interval_seconds": 60,
                "partitions": [{"region": "europe", "merchant_id": "A1EU"}],
            },
        })

        settings = get_settings(str(path))

        assert settings.max_submit_retries == 5
        assert settings.max_download_retries == 3
        assert settings.expiration_period == timedelta(hours=12)
        assert settings.retry_initial_delay == timedelta(minutes=5)
        assert settings.retry_period_type == RetryPeriodType.GEOMETRIC
        assert settings.max_retry_delay == timedelta(hours=1)
        assert settings.status_poll_batch_size == 25
        assert settings.poll_interval_seconds == 60
        assert settings.partitions == [Partition(region="europe", merchant_id="A1EU")]

    def test_env_var_selects_file(self, make_yaml_config, monkeypatch):
        """MWS_JOBS_CONFIG points the loader at a file."""
        path = make_yaml_config("custom.yml", {"status_poll_batch_size": 10})
        monkeypatch.setenv("MWS_JOBS_CONFIG", str(path))

        assert get_settings().status_poll_batch_size == 10

    def test_missing_explicit_file_raises(self, temp_config_dir):
        """An explicit path that does not exist is an error."""
        with pytest.raises(FileNotFoundError):
            get_settings(str(temp_config_dir / "absent.yml"))

    def test_empty_file_uses_defaults(self, temp_config_dir):
        """An empty YAML document means defaults."""
        path = temp_config_dir / "empty.yml"
        path.write_text("")
        assert get_settings(str(path)) == QueueSettings()

    def test_settings_cached_until_reload(self, make_yaml_config):
        """get_settings() is cached; reload_settings() re-reads the file."""
        path = make_yaml_config("mws_jobs.yml", {"status_poll_batch_size": 10})
        assert get_settings(str(path)).status_poll_batch_size == 10

        make_yaml_config("mws_jobs.yml", {"status_poll_batch_size": 20})
        assert get_settings().status_poll_batch_size == 10
        assert reload_settings().status_poll_batch_size == 20


class TestEnvironmentOverrides:
    """Tests for MWS_JOBS_* overrides."""

    def test_env_overrides_yaml(self, make_yaml_config, monkeypatch):
        """Environment variables win over the file."""
        path = make_yaml_config("mws_jobs.yml", {"retry": {"max_download_retries": 5}})
        monkeypatch.setenv("MWS_JOBS_MAX_DOWNLOAD_RETRIES", "9")
        monkeypatch.setenv("MWS_JOBS_INITIAL_DELAY_MINUTES", "1")
        monkeypatch.setenv("MWS_JOBS_PERIOD_TYPE", "GEOMETRIC")
        monkeypatch.setenv("MWS_JOBS_EXPIRATION_PERIOD_HOURS", "6")

        settings = get_settings(str(path))

        assert settings.max_download_retries == 9
        assert settings.retry_initial_delay == timedelta(minutes=1)
        assert settings.retry_period_type == RetryPeriodType.GEOMETRIC
        assert settings.expiration_period == timedelta(hours=6)

    def test_partitions_from_env(self):
        """MWS_JOBS_PARTITIONS is a comma-separated region:merchant list."""
        settings = QueueSettings().with_env_overrides({
            "MWS_JOBS_PARTITIONS": "europe:A1EU, japan:A1JP",
        })
        assert settings.partitions == [
            Partition("europe", "A1EU"),
            Partition("japan", "A1JP"),
        ]

    def test_malformed_partition_rejected(self):
        """Partitions must name a region and a merchant."""
        with pytest.raises(ValueError, match="region:merchant_id"):
            Partition.parse("europe")

    def test_no_overrides_returns_same_instance(self):
        """Without variables the settings are unchanged."""
        settings = QueueSettings()
        assert settings.with_env_overrides({}) is settings
