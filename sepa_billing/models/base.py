"""Base Models and Mixins"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr

from sepa_billing.database import Base
from sepa_billing.utils.time import get_utc_now


class BaseModel(Base):
    """
    Base model class with common fields for all models.

    Provides:
    - UUID primary key
    - created_at timestamp
    - updated_at timestamp
    """
    __abstract__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    updated_at = Column(DateTime, default=get_utc_now, onupdate=get_utc_now, nullable=False)


class BatchScopedMixin:
    """
    Mixin for rows that belong to one uploaded batch.

    Provides:
    - batch_id foreign key (batches are never deleted, so RESTRICT)
    """

    @declared_attr
    def batch_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("batches.id", ondelete="RESTRICT"),
            nullable=False,
            index=True
        )


class SoftDeleteMixin:
    """
    Mixin for soft delete functionality.

    Provides:
    - deleted_at timestamp (NULL = active, NOT NULL = deleted)
    """
    deleted_at = Column(DateTime, nullable=True, index=True)

    def soft_delete(self):
        """Mark record as deleted without removing from database"""
        self.deleted_at = get_utc_now()

    def restore(self):
        """Restore a soft-deleted record"""
        self.deleted_at = None

    @property
    def is_deleted(self) -> bool:
        """Check if record is soft-deleted"""
        return self.deleted_at is not None
