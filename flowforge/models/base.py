"""
Base models. Every row has a string UUID and created/updated timestamps;
tenant-owned rows also carry tenant_id.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


class RecordBase(Base):
    """Abstract base with id and timestamps on every row."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=new_uuid
    )
    # Python-side defaults so the values are readable right after flush
    # without an implicit refresh (which async sessions cannot do lazily).
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class TenantBase(RecordBase):
    """Abstract base for rows owned by a coaching tenant."""

    __abstract__ = True

    tenant_id: Mapped[str] = mapped_column(
        String, nullable=False, index=True
    )
