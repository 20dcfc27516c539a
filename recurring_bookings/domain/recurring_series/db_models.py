from __future__ import annotations

import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from recurring_bookings.infra.db import Base, UUID_TYPE


class RecurringSeries(Base):
    __tablename__ = "recurring_series"

    series_id: Mapped[uuid.UUID] = mapped_column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
    )
    service_id: Mapped[str | None] = mapped_column(String(64))
    staff_id: Mapped[str | None] = mapped_column(String(64))
    customer_id: Mapped[str | None] = mapped_column(String(64))
    master_booking_id: Mapped[str | None] = mapped_column(String(64))
    template_meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    pattern_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    pattern_options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    end_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    end_count: Mapped[int | None] = mapped_column(Integer)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    instances: Mapped[list["BookingInstance"]] = relationship(
        "BookingInstance",
        back_populates="series",
        order_by="BookingInstance.instance_number",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_recurring_series_status", "status"),
        Index("ix_recurring_series_customer_id", "customer_id"),
    )


class BookingInstance(Base):
    __tablename__ = "recurring_instances"

    instance_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    series_id: Mapped[uuid.UUID] = mapped_column(
        UUID_TYPE,
        ForeignKey("recurring_series.series_id", ondelete="CASCADE"),
        nullable=False,
    )
    instance_number: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    original_date: Mapped[date | None] = mapped_column(Date)
    original_time: Mapped[time | None] = mapped_column(Time)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    series: Mapped[RecurringSeries] = relationship("RecurringSeries", back_populates="instances")

    __table_args__ = (
        UniqueConstraint("series_id", "instance_number", name="uq_recurring_instances_series_number"),
        Index("ix_recurring_instances_status_date", "status", "scheduled_date"),
    )


class SeriesExclusion(Base):
    __tablename__ = "recurring_exclusions"

    exclusion_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    series_id: Mapped[uuid.UUID] = mapped_column(
        UUID_TYPE,
        ForeignKey("recurring_series.series_id", ondelete="CASCADE"),
        nullable=False,
    )
    exclusion_type: Mapped[str] = mapped_column(String(20), nullable=False)
    exclusion_date: Mapped[date | None] = mapped_column(Date)
    day_of_week: Mapped[int | None] = mapped_column(Integer)
    range_start: Mapped[date | None] = mapped_column(Date)
    range_end: Mapped[date | None] = mapped_column(Date)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("ix_recurring_exclusions_series_id", "series_id"),)
