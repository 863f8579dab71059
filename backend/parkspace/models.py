# backend/parkspace/models.py
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, Float, Boolean, DateTime, JSON, ForeignKey
from datetime import datetime, timezone

class Base(DeclarativeBase): pass

def utcnow():
    return datetime.now(timezone.utc)

class PropertyRow(Base):
    __tablename__ = "properties"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    rental: Mapped[str] = mapped_column(String, index=True)
    owner: Mapped[str | None] = mapped_column(String)
    name: Mapped[str] = mapped_column(String, nullable=False)
    address: Mapped[str] = mapped_column(String, default="")
    car_slots: Mapped[int] = mapped_column(Integer, default=0)
    bike_slots: Mapped[int] = mapped_column(Integer, default=0)
    price_per_hour: Mapped[float] = mapped_column(Float)
    layout_data: Mapped[dict | None] = mapped_column(JSON)  # Layout document, camelCase
    layout_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # bumped on every layout write
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

class LegacySlotRow(Base):
    __tablename__ = "legacy_slots"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    property_id: Mapped[str] = mapped_column(String, ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    slot_number: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String)  # car | bike
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price_per_hour: Mapped[float] = mapped_column(Float)

class BookingRow(Base):
    __tablename__ = "bookings"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, index=True)
    property_id: Mapped[str] = mapped_column(String, ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    slot: Mapped[str] = mapped_column(String)  # layout "row-col" id or legacy slot id
    status: Mapped[str] = mapped_column(String, default="pending")
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    slot_info: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
