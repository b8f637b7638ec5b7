"""
Shared constants and builders for queue tests.
"""

from datetime import timedelta

from mws_jobs.jobs.archive import create_archive
from mws_jobs.jobs.callbacks import CallbackDescriptor
from mws_jobs.jobs.models import Job, JobFamily
from mws_jobs.jobs.retry import RetryPolicy
from mws_jobs.models.base import generate_uuid

REGION = "north_america"
MERCHANT_ID = "A1TESTMERCHANT"

# Retries are immediately due so scenarios can run sweep after sweep
NO_DELAY_POLICY = RetryPolicy(
    retry_initial_delay=timedelta(0),
    retry_interval=timedelta(0),
)


def build_job(
    family: JobFamily = JobFamily.REPORT,
    region: str = REGION,
    merchant_id: str = MERCHANT_ID,
    callback: CallbackDescriptor = CallbackDescriptor.handler("collect"),
    **fields,
) -> Job:
    """Build an unsaved job; lifecycle fields can be set through **fields."""
    if family == JobFamily.REPORT:
        payload = {"report_type": "_GET_FLAT_FILE_OPEN_LISTINGS_DATA_", "marketplace_ids": []}
    else:
        payload = {"feed_type": "_POST_PRODUCT_DATA_", "marketplace_ids": [], "purge_and_replace": False}
        fields.setdefault("submission_content", create_archive(b"<feed/>"))

    return Job(
        job_id=generate_uuid(),
        family=family,
        region=region,
        merchant_id=merchant_id,
        payload=payload,
        callback_descriptor=callback.to_dict(),
        **fields,
    )


def add_job(store, **kwargs) -> str:
    """Persist a job built by build_job and return its id."""
    job = build_job(**kwargs)
    store.create(job)
    store.save_changes()
    return job.job_id
