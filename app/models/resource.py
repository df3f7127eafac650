from enum import Enum as PyEnum
from sqlalchemy import Integer, String, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..db import Base

class ResourceType(str, PyEnum):
    ROOM = "room"
    HALL = "hall"

class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Owner-provided label; overrides display_name wherever shown
    custom_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    type: Mapped[ResourceType] = mapped_column(
        Enum(ResourceType, values_callable=lambda e: [m.value for m in e]),
        default=ResourceType.ROOM,
        nullable=False,
    )

    bookings: Mapped[list["Booking"]] = relationship(back_populates="resource")

    @property
    def name(self) -> str:
        return self.custom_name or self.display_name
