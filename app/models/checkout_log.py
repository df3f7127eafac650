from datetime import date, datetime, time
from enum import Enum as PyEnum
from sqlalchemy import Integer, String, ForeignKey, Date, Time, Text, Enum, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from ..db import Base

class CheckoutOutcome(str, PyEnum):
    SUCCESS = "success"
    FAILED = "failed"

class AutoCheckoutLog(Base):
    """Append-only audit trail, one row per checkout attempt."""
    __tablename__ = "auto_checkout_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id"), nullable=True, index=True)
    resource_id: Mapped[int | None] = mapped_column(ForeignKey("resources.id"), nullable=True)
    resource_name: Mapped[str | None] = mapped_column(String(100))
    guest_name: Mapped[str | None] = mapped_column(String(200))
    checkout_date: Mapped[date] = mapped_column(Date, nullable=False)
    checkout_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[CheckoutOutcome] = mapped_column(
        Enum(CheckoutOutcome, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
