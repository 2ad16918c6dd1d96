"""Models for contract equipment and its activity history."""

from __future__ import annotations

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base


class ObjectStatus(str, enum.Enum):
    """Operational status of a monitored object."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class MonitoredObject(Base):
    """Equipment attached to a contract and billed per object."""

    __tablename__ = "monitored_objects"

    id = Column("object_id", Integer, primary_key=True, autoincrement=True)
    contract_id = Column(
        Integer,
        ForeignKey("contracts.contract_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(200), nullable=False)
    status = Column(
        Enum(
            ObjectStatus,
            name="object_status_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=ObjectStatus.ACTIVE,
    )
    attached_on = Column(Date, nullable=False)
    scheduled_delete_at = Column(Date, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contract = relationship("Contract", back_populates="objects")
    activity_intervals = relationship(
        "ObjectActivityInterval",
        back_populates="monitored_object",
        cascade="all, delete-orphan",
        order_by="ObjectActivityInterval.active_from",
    )


class ObjectActivityInterval(Base):
    """A span during which an object was active; open-ended while still active."""

    __tablename__ = "object_activity_intervals"
    __table_args__ = (
        CheckConstraint(
            "active_until IS NULL OR active_until >= active_from",
            name="ck_object_activity_intervals_valid_range",
        ),
    )

    id = Column("interval_id", Integer, primary_key=True, autoincrement=True)
    object_id = Column(
        Integer,
        ForeignKey("monitored_objects.object_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    active_from = Column(DateTime, nullable=False)
    active_until = Column(DateTime, nullable=True)

    monitored_object = relationship("MonitoredObject", back_populates="activity_intervals")
