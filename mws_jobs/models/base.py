"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- PartitionScopedMixin: region + merchant_id partition keys
- generate_uuid: UUID generation for primary keys
- utcnow / as_utc: timezone-aware UTC helpers
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declared_attr


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the database to aware UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so naive values
    are assumed to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamp columns.

    created_at is set on the Python side so the expiration policy can compare
    it against utcnow() before the row has been flushed.
    """

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            comment="Timestamp when record was created"
        )

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            onupdate=utcnow,
            comment="Timestamp when record was last updated"
        )


class PartitionScopedMixin:
    """
    Mixin that adds the (region, merchant_id) partition keys.

    Every queue scan is filtered by this pair. Both values are immutable
    once the record is created.
    """

    @declared_attr
    def region(cls):
        return Column(
            String(32),
            nullable=False,
            index=True,
            comment="Marketplace region the record belongs to"
        )

    @declared_attr
    def merchant_id(cls):
        return Column(
            String(255),
            nullable=False,
            index=True,
            comment="Merchant (seller) identifier"
        )
