"""
Queue settings loader.

Loads retry, expiration, polling and worker settings from
config/mws_jobs.yml (or the file named by MWS_JOBS_CONFIG), then applies
MWS_JOBS_* environment variable overrides.

Consumers:
  - JobRunner: retry policy and status poll batch size
  - queue_worker: poll interval and the partitions to sweep

Usage:
    from mws_jobs.config.settings import get_settings

    settings = get_settings()
    policy = settings.retry_policy()
    for partition in settings.partitions:
        ...
"""

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

import yaml

from mws_jobs.jobs.retry import (
    RetryPolicy,
    RetryPeriodType,
    MAX_SUBMIT_RETRIES,
    MAX_DOWNLOAD_RETRIES,
    MAX_STATUS_RETRIES,
    MAX_CALLBACK_RETRIES,
    EXPIRATION_PERIOD,
    RETRY_INITIAL_DELAY,
    RETRY_INTERVAL,
    MAX_RETRY_DELAY,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MWS_JOBS_CONFIG"
CONFIG_FILENAME = "mws_jobs.yml"
ENV_PREFIX = "MWS_JOBS_"

DEFAULT_STATUS_POLL_BATCH_SIZE = 100
DEFAULT_POLL_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class Partition:
    """One (region, merchant_id) pair the worker sweeps."""
    region: str
    merchant_id: str

    @classmethod
    def parse(cls, value: str) -> "Partition":
        """Parse 'region:merchant_id'."""
        region, sep, merchant_id = value.strip().partition(":")
        if not sep or not region or not merchant_id:
            raise ValueError(f"Invalid partition {value!r}, expected 'region:merchant_id'")
        return cls(region=region.strip(), merchant_id=merchant_id.strip())


def _minutes(value: Any, default: timedelta) -> timedelta:
    return default if value is None else timedelta(minutes=float(value))


def _hours(value: Any, default: timedelta) -> timedelta:
    return default if value is None else timedelta(hours=float(value))


@dataclass(frozen=True)
class QueueSettings:
    """
    Engine configuration.

    Durations are held as timedelta; the YAML file and environment express
    them in minutes (retry delays) and hours (expiration).
    """
    max_submit_retries: int = MAX_SUBMIT_RETRIES
    max_download_retries: int = MAX_DOWNLOAD_RETRIES
    max_status_retries: int = MAX_STATUS_RETRIES
    max_callback_retries: int = MAX_CALLBACK_RETRIES
    expiration_period: timedelta = EXPIRATION_PERIOD
    retry_initial_delay: timedelta = RETRY_INITIAL_DELAY
    retry_interval: timedelta = RETRY_INTERVAL
    retry_period_type: RetryPeriodType = RetryPeriodType.ARITHMETIC
    max_retry_delay: timedelta = MAX_RETRY_DELAY
    status_poll_batch_size: int = DEFAULT_STATUS_POLL_BATCH_SIZE
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    base_url: Optional[str] = None
    partitions: List[Partition] = field(default_factory=list)

    def __post_init__(self):
        for name in ("max_submit_retries", "max_download_retries", "max_status_retries", "max_callback_retries"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.status_poll_batch_size < 1:
            raise ValueError("status_poll_batch_size must be at least 1")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueueSettings":
        retry = data.get("retry") or {}
        worker = data.get("worker") or {}
        marketplace = data.get("marketplace") or {}

        return cls(
            max_submit_retries=int(retry.get("max_submit_retries", MAX_SUBMIT_RETRIES)),
            max_download_retries=int(retry.get("max_download_retries", MAX_DOWNLOAD_RETRIES)),
            max_status_retries=int(retry.get("max_status_retries", MAX_STATUS_RETRIES)),
            max_callback_retries=int(retry.get("max_callback_retries", MAX_CALLBACK_RETRIES)),
            expiration_period=_hours(retry.get("expiration_period_hours"), EXPIRATION_PERIOD),
            retry_initial_delay=_minutes(retry.get("initial_delay_minutes"), RETRY_INITIAL_DELAY),
            retry_interval=_minutes(retry.get("interval_minutes"), RETRY_INTERVAL),
            retry_period_type=RetryPeriodType(retry.get("period_type", RetryPeriodType.ARITHMETIC.value)),
            max_retry_delay=_minutes(retry.get("max_delay_minutes"), MAX_RETRY_DELAY),
            status_poll_batch_size=int(data.get("status_poll_batch_size", DEFAULT_STATUS_POLL_BATCH_SIZE)),
            poll_interval_seconds=float(worker.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS)),
            base_url=marketplace.get("base_url") or None,
            partitions=[
                Partition(region=str(p["region"]), merchant_id=str(p["merchant_id"]))
                for p in worker.get("partitions") or []
            ],
        )

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "QueueSettings":
        """Return a copy with MWS_JOBS_* environment variables applied."""
        env = os.environ if environ is None else environ
        changes: Dict[str, Any] = {}

        int_fields = (
            "max_submit_retries",
            "max_download_retries",
            "max_status_retries",
            "max_callback_retries",
            "status_poll_batch_size",
        )
        for name in int_fields:
            value = env.get(ENV_PREFIX + name.upper())
            if value:
                changes[name] = int(value)

        minute_fields = {
            "INITIAL_DELAY_MINUTES": "retry_initial_delay",
            "INTERVAL_MINUTES": "retry_interval",
            "MAX_DELAY_MINUTES": "max_retry_delay",
        }
        for suffix, name in minute_fields.items():
            value = env.get(ENV_PREFIX + suffix)
            if value:
                changes[name] = timedelta(minutes=float(value))

        if env.get(ENV_PREFIX + "EXPIRATION_PERIOD_HOURS"):
            changes["expiration_period"] = timedelta(hours=float(env[ENV_PREFIX + "EXPIRATION_PERIOD_HOURS"]))
        if env.get(ENV_PREFIX + "PERIOD_TYPE"):
            changes["retry_period_type"] = RetryPeriodType(env[ENV_PREFIX + "PERIOD_TYPE"].lower())
        if env.get(ENV_PREFIX + "POLL_INTERVAL_SECONDS"):
            changes["poll_interval_seconds"] = float(env[ENV_PREFIX + "POLL_INTERVAL_SECONDS"])
        if env.get(ENV_PREFIX + "BASE_URL"):
            changes["base_url"] = env[ENV_PREFIX + "BASE_URL"]
        if env.get(ENV_PREFIX + "PARTITIONS"):
            changes["partitions"] = [
                Partition.parse(item)
                for item in env[ENV_PREFIX + "PARTITIONS"].split(",")
                if item.strip()
            ]

        return replace(self, **changes) if changes else self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_submit_retries=self.max_submit_retries,
            max_download_retries=self.max_download_retries,
            max_status_retries=self.max_status_retries,
            max_callback_retries=self.max_callback_retries,
            expiration_period=self.expiration_period,
            retry_initial_delay=self.retry_initial_delay,
            retry_interval=self.retry_interval,
            retry_period_type=self.retry_period_type,
            max_retry_delay=self.max_retry_delay,
        )


class SettingsLoader:
    """
    Thread-safe singleton loader for config/mws_jobs.yml.

    A missing file is not an error: the defaults apply, still subject to
    environment overrides. A path given explicitly (argument or
    MWS_JOBS_CONFIG) must exist.
    """

    _instance: Optional["SettingsLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path or os.getenv(CONFIG_ENV_VAR)
        self._settings = QueueSettings()
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Optional[Path]:
        if self._config_path:
            path = Path(self._config_path)
            if not path.exists():
                raise FileNotFoundError(f"{CONFIG_FILENAME} not found at {path}")
            return path

        candidates = [
            Path(__file__).parent.parent.parent / "config" / CONFIG_FILENAME,
            Path(os.getcwd()) / "config" / CONFIG_FILENAME,
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        return None

    def _load(self) -> None:
        with self._load_lock:
            path = self._resolve_path()
            raw: Dict[str, Any] = {}

            if path is None:
                logger.info("No %s found, using default queue settings", CONFIG_FILENAME)
            else:
                logger.info("Loading queue settings from %s", path)
                with open(path, "r") as f:
                    raw = yaml.safe_load(f) or {}

            self._settings = QueueSettings.from_dict(raw).with_env_overrides()

            logger.info(
                "Loaded queue settings for %d partitions, batch_size=%d",
                len(self._settings.partitions),
                self._settings.status_poll_batch_size,
            )

    def reload(self) -> None:
        """Re-read the YAML from disk (e.g. after a config change)."""
        self._load()

    @property
    def settings(self) -> QueueSettings:
        return self._settings


# ------------------------------------------------------------------
# Module-level accessors
# ------------------------------------------------------------------

def get_settings(config_path: Optional[str] = None) -> QueueSettings:
    """Return the cached QueueSettings."""
    return SettingsLoader(config_path).settings


def reload_settings() -> QueueSettings:
    """Re-read settings from disk and environment."""
    loader = SettingsLoader()
    loader.reload()
    return loader.settings


def reset_settings() -> None:
    """Reset singleton (for tests only)."""
    SettingsLoader._instance = None
