"""
Shared model mixins.

Partition-scoped models inherit from PartitionScopedMixin.
"""

from mws_jobs.models.base import TimestampMixin, PartitionScopedMixin, generate_uuid, utcnow, as_utc

__all__ = [
    "TimestampMixin",
    "PartitionScopedMixin",
    "generate_uuid",
    "utcnow",
    "as_utc",
]
