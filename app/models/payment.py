from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, String, ForeignKey, Numeric, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from ..db import Base

# payment_method tag for rows written by the checkout sweep
AUTO_CHECKOUT_METHOD = "AUTO_CHECKOUT"

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), default="COMPLETED", nullable=False)
    payment_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
