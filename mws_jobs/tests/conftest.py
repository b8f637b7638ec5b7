"""
Root test configuration and fixtures.

Provides database fixtures, a fake marketplace client and lifecycle
factories that can be used by all tests.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from mws_jobs.jobs.callbacks import CallbackContext, CallbackDispatcher, CallbackRegistry
from mws_jobs.jobs.lifecycle import JobLifecycle
from mws_jobs.jobs.models import JobFamily
from mws_jobs.jobs.pipelines import get_pipeline
from mws_jobs.jobs.retry import RetryPolicy
from mws_jobs.jobs.store import SqlAlchemyJobStore
from mws_jobs.tests.helpers.fake_marketplace_client import FakeMarketplaceClient
from mws_jobs.tests.helpers.factories import REGION, MERCHANT_ID, NO_DELAY_POLICY

# Set test environment
os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session")
def db_engine():
    """Create an in-memory SQLite engine with the queue tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from mws_jobs.db_base import Base
    from mws_jobs.jobs import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create database session with transaction rollback for test isolation.

    Each test gets a fresh session that rolls back after the test completes.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def store(db_session) -> SqlAlchemyJobStore:
    return SqlAlchemyJobStore(db_session)


@pytest.fixture
def fake_client() -> FakeMarketplaceClient:
    return FakeMarketplaceClient()


@pytest.fixture
def delivered() -> List[tuple]:
    """(content, context) pairs received by the 'collect' handler."""
    return []


@pytest.fixture
def callback_registry(delivered) -> CallbackRegistry:
    """Registry with a collecting handler and a failing handler."""
    registry = CallbackRegistry()

    def collect(content: bytes, context: CallbackContext) -> None:
        delivered.append((content, context))

    def explode(content: bytes, context: CallbackContext) -> None:
        raise RuntimeError("handler failed")

    registry.register("collect", collect)
    registry.register("explode", explode)
    return registry


@pytest.fixture
def callback_dispatcher(callback_registry) -> CallbackDispatcher:
    return CallbackDispatcher(registry=callback_registry)


@pytest.fixture
def make_lifecycle(store, fake_client, callback_dispatcher):
    """
    Factory fixture for a JobLifecycle over the test partition.

    Usage:
        lifecycle = make_lifecycle(JobFamily.FEED, policy=RetryPolicy(...))
    """
    def _make(family: JobFamily = JobFamily.REPORT, policy: RetryPolicy = NO_DELAY_POLICY, **kwargs) -> JobLifecycle:
        return JobLifecycle(
            pipeline=get_pipeline(family, fake_client, MERCHANT_ID),
            store=store,
            region=REGION,
            merchant_id=MERCHANT_ID,
            policy=policy,
            callback_dispatcher=callback_dispatcher,
            **kwargs,
        )
    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Shared Config Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("mws_jobs.yml", {"retry": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
