"""
Job runner: the synchronous advance() entry point.

Each call to advance() runs one lifecycle sweep over a single
(family, region, merchant_id) partition:
- Builds the family pipeline on a marketplace client for the region
- Runs cleanup, submit, status poll, download and callback stages
- Returns per-stage counts

The host is expected to call advance() on a schedule and to serialize calls
for the same partition. Different partitions are independent.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from mws_jobs.integrations.marketplace import MarketplaceClient, Region, get_marketplace_client
from mws_jobs.jobs.callbacks import CallbackDispatcher, CallbackRegistry
from mws_jobs.jobs.lifecycle import JobLifecycle, SweepResult, DEFAULT_STATUS_POLL_BATCH_SIZE
from mws_jobs.jobs.models import JobFamily
from mws_jobs.jobs.pipelines import get_pipeline
from mws_jobs.jobs.retry import RetryPolicy
from mws_jobs.jobs.store import JobStore, SqlAlchemyJobStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Region], MarketplaceClient]


def _region_key(region) -> str:
    return str(getattr(region, "value", region))


class JobRunner:
    """
    Advances queued jobs by sweeping one partition at a time.

    Marketplace clients are created per region on first use and reused for
    the lifetime of the runner.
    """

    def __init__(
        self,
        store: JobStore,
        callback_dispatcher: Optional[CallbackDispatcher] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
        status_poll_batch_size: int = DEFAULT_STATUS_POLL_BATCH_SIZE,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Initialize job runner.

        Args:
            store: Job repository
            callback_dispatcher: Delivers downloaded results
            retry_policy: Retry and expiration thresholds
            status_poll_batch_size: Max request ids per status lookup
            client_factory: Builds a marketplace client for a region
                (default: get_marketplace_client)
        """
        self.store = store
        self.callback_dispatcher = callback_dispatcher or CallbackDispatcher()
        self.retry_policy = retry_policy
        self.status_poll_batch_size = status_poll_batch_size
        self._client_factory = client_factory or get_marketplace_client
        self._clients: Dict[str, MarketplaceClient] = {}

    def _get_client(self, region: str) -> MarketplaceClient:
        """Get or create the marketplace client for a region."""
        key = _region_key(region)
        if key not in self._clients:
            self._clients[key] = self._client_factory(Region(key))
        return self._clients[key]

    def advance(
        self,
        family: JobFamily,
        region: str,
        merchant_id: str,
    ) -> SweepResult:
        """
        Run one sweep over the partition.

        Args:
            family: report or feed
            region: Marketplace region
            merchant_id: Merchant identifier

        Returns:
            SweepResult with per-stage counts
        """
        family = JobFamily(family)
        region = _region_key(region)

        lifecycle = JobLifecycle(
            pipeline=get_pipeline(family, self._get_client(region), merchant_id),
            store=self.store,
            region=region,
            merchant_id=merchant_id,
            policy=self.retry_policy,
            callback_dispatcher=self.callback_dispatcher,
            status_poll_batch_size=self.status_poll_batch_size,
        )
        return lifecycle.sweep()

    def advance_all(self, region: str, merchant_id: str) -> Dict[JobFamily, SweepResult]:
        """Advance the report queue, then the feed queue, of one merchant."""
        return {
            family: self.advance(family, region, merchant_id)
            for family in (JobFamily.REPORT, JobFamily.FEED)
        }

    def close(self) -> None:
        """Close every marketplace client this runner created."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()


def run_worker_cycle(
    db_session: Session,
    partitions: List[Tuple[str, str]],
    callback_registry: Optional[CallbackRegistry] = None,
    settings=None,
    client_factory: Optional[ClientFactory] = None,
) -> dict:
    """
    Run one cycle of the queue worker.

    Advances both families for every (region, merchant_id) partition. A
    failure in one partition is logged and does not stop the others.

    Args:
        db_session: Database session
        partitions: (region, merchant_id) pairs to sweep
        callback_registry: Host-registered callback handlers
        settings: QueueSettings (default: get_settings())
        client_factory: Builds a marketplace client for a region

    Returns:
        Summary of the cycle
    """
    if settings is None:
        from mws_jobs.config.settings import get_settings
        settings = get_settings()

    if client_factory is None and settings.base_url:
        def client_factory(region: Region) -> MarketplaceClient:
            return get_marketplace_client(region=region, base_url=settings.base_url)

    runner = JobRunner(
        store=SqlAlchemyJobStore(db_session),
        callback_dispatcher=CallbackDispatcher(registry=callback_registry),
        retry_policy=settings.retry_policy(),
        status_poll_batch_size=settings.status_poll_batch_size,
        client_factory=client_factory,
    )

    swept = 0
    failed = 0
    totals: Dict[str, int] = {}

    try:
        for region, merchant_id in partitions:
            try:
                results = runner.advance_all(region, merchant_id)
            except Exception as e:
                failed += 1
                db_session.rollback()
                logger.error(
                    "Partition sweep failed",
                    extra={
                        "region": _region_key(region),
                        "merchant_id": merchant_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                continue

            swept += 1
            for result in results.values():
                for key, value in result.to_dict().items():
                    totals[key] = totals.get(key, 0) + value
    finally:
        runner.close()
        runner.callback_dispatcher.close()

    logger.info(
        "Worker cycle completed",
        extra={
            "partitions_swept": swept,
            "partitions_failed": failed,
            **totals,
        },
    )

    return {
        "partitions_swept": swept,
        "partitions_failed": failed,
        **totals,
    }
