from __future__ import annotations
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING
from enum import Enum as PyEnum
from sqlalchemy import Integer, String, ForeignKey, Date, Time, Numeric, Enum, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..db import Base

if TYPE_CHECKING:
    from .resource import Resource

class BookingStatus(str, PyEnum):
    BOOKED = "BOOKED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"

# Statuses the checkout sweep may close
ACTIVE_STATUSES = (BookingStatus.BOOKED, BookingStatus.PENDING)

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), index=True)
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_mobile: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), default=BookingStatus.BOOKED, nullable=False)

    # Local wall-clock times in the configured timezone
    check_in: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    actual_check_in: Mapped[datetime | None] = mapped_column(DateTime)
    actual_check_out: Mapped[datetime | None] = mapped_column(DateTime)
    actual_checkout_date: Mapped[date | None] = mapped_column(Date)
    actual_checkout_time: Mapped[time | None] = mapped_column(Time)

    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    auto_checkout_processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    resource: Mapped[Resource] = relationship(back_populates="bookings")

    @property
    def session_start(self) -> datetime:
        return self.actual_check_in or self.check_in
