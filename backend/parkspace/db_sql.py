# backend/parkspace/db_sql.py
import copy
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import create_engine, delete, select, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from . import config
from .availability import keep_booked_marks
from .errors import InputError, PropertyNotFound
from .grid import layout_issues
from .models import Base, BookingRow, LegacySlotRow, PropertyRow
from .schemas import (
    Booking,
    Layout,
    LegacySlot,
    Property,
    PropertyIn,
    ReserveResult,
    SlotStatus,
    VehicleType,
    ensure_aware_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

# ---- Engine / Session setup ---------------------------------------------------

engine = None
SessionLocal = sessionmaker(autoflush=False, autocommit=False, future=True)

# optimistic layout writes retry this many times before reporting a conflict
RESERVE_ATTEMPTS = 5


def configure(url: Optional[str] = None):
    """Bind the session factory to ``url`` (default DATABASE_URL) and create tables."""
    global engine
    url = url or config.DATABASE_URL
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "For local dev, put it in backend/.env; for deploy, set it as an environment variable."
        )
    if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
        # one shared connection, otherwise each session sees its own empty database
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    else:
        # pool_pre_ping=True avoids stale connections (useful with serverless/Neon).
        engine = create_engine(url, pool_pre_ping=True, future=True)
    SessionLocal.configure(bind=engine)
    init_db()
    return engine


def init_db():
    """Create tables if they don't exist."""
    Base.metadata.create_all(engine)


def _new_id() -> str:
    return uuid.uuid4().hex


# ---- Row <-> model -------------------------------------------------------------

def _to_property(row: PropertyRow) -> Property:
    return Property(
        id=row.id,
        rental=row.rental,
        owner=row.owner,
        name=row.name,
        address=row.address or "",
        carSlots=row.car_slots,
        bikeSlots=row.bike_slots,
        pricePerHour=row.price_per_hour,
        layoutData=Layout.model_validate(row.layout_data) if row.layout_data is not None else None,
        approved=row.approved,
        active=row.active,
        createdAt=ensure_aware_utc(row.created_at) if row.created_at else None,
    )


def _to_legacy(row: LegacySlotRow) -> LegacySlot:
    return LegacySlot(
        id=row.id,
        property=row.property_id,
        slotNumber=row.slot_number,
        type=VehicleType(row.type),
        isBooked=row.is_booked,
        pricePerHour=row.price_per_hour,
    )


def _to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        user=row.user_id,
        property=row.property_id,
        slot=row.slot,
        status=row.status,
        startTime=ensure_aware_utc(row.start_time) if row.start_time else None,
        endTime=ensure_aware_utc(row.end_time),
        totalAmount=row.total_amount or 0,
        slotInfo=row.slot_info,
        createdAt=ensure_aware_utc(row.created_at) if row.created_at else None,
    )


def _check_layout(layout: Layout) -> Dict:
    issues = layout_issues(layout)
    if issues:
        raise InputError("Invalid layout: " + "; ".join(issues))
    return layout.to_document()


# ------- Mirror in-memory signatures --------------------------------------------

def create_property(payload: PropertyIn) -> Property:
    doc = _check_layout(payload.layoutData) if payload.layoutData is not None else None
    with SessionLocal() as s, s.begin():
        row = PropertyRow(
            id=_new_id(),
            rental=payload.rental,
            name=payload.name,
            address=payload.address,
            car_slots=payload.carSlots,
            bike_slots=payload.bikeSlots,
            price_per_hour=payload.pricePerHour,
            layout_data=doc,
            layout_version=0,
            approved=False,
            active=True,
            created_at=utcnow(),
        )
        s.add(row)
        s.flush()
        prop = _to_property(row)
    logger.info("Created property %s (%s car / %s bike)", prop.id, prop.carSlots, prop.bikeSlots)
    return prop


def get_property(property_id: str) -> Optional[Property]:
    with SessionLocal() as s:
        row = s.get(PropertyRow, property_id)
        return _to_property(row) if row else None


def list_properties(approved: Optional[bool] = None, rental_id: Optional[str] = None,
                    active: Optional[bool] = None) -> List[Property]:
    q = select(PropertyRow).order_by(PropertyRow.created_at)
    if approved is not None:
        q = q.where(PropertyRow.approved == approved)
    if rental_id is not None:
        q = q.where(PropertyRow.rental == rental_id)
    if active is not None:
        q = q.where(PropertyRow.active == active)
    with SessionLocal() as s:
        return [_to_property(r) for r in s.execute(q).scalars().all()]


def approve_property(property_id: str, owner_id: str) -> Property:
    with SessionLocal() as s, s.begin():
        row = s.get(PropertyRow, property_id)
        if row is None:
            raise PropertyNotFound(f"Parking property not found: {property_id}")
        row.approved = True
        row.owner = owner_id
        existing = s.execute(
            select(LegacySlotRow.id).where(LegacySlotRow.property_id == property_id).limit(1)
        ).first()
        if existing is None:
            for vehicle_type, count in ((VehicleType.CAR, row.car_slots), (VehicleType.BIKE, row.bike_slots)):
                label = vehicle_type.value.capitalize()
                for i in range(1, count + 1):
                    s.add(LegacySlotRow(
                        id=_new_id(),
                        property_id=property_id,
                        slot_number=f"{label}-{i}",
                        type=vehicle_type.value,
                        is_booked=False,
                        price_per_hour=row.price_per_hour,
                    ))
        s.flush()
        return _to_property(row)


def set_active(property_id: str, active: bool) -> Property:
    with SessionLocal() as s, s.begin():
        row = s.get(PropertyRow, property_id)
        if row is None:
            raise PropertyNotFound(f"Parking property not found: {property_id}")
        row.active = active
        s.flush()
        return _to_property(row)


def delete_property(property_id: str) -> bool:
    # explicit child deletes; SQLite does not enforce ON DELETE CASCADE by default
    with SessionLocal() as s, s.begin():
        row = s.get(PropertyRow, property_id)
        if row is None:
            return False
        s.execute(delete(BookingRow).where(BookingRow.property_id == property_id))
        s.execute(delete(LegacySlotRow).where(LegacySlotRow.property_id == property_id))
        s.delete(row)
    logger.info("Deleted property %s", property_id)
    return True


def save_layout(property_id: str, layout: Layout) -> Property:
    _check_layout(layout)
    with SessionLocal() as s, s.begin():
        row = s.get(PropertyRow, property_id)
        if row is None:
            raise PropertyNotFound(f"Parking property not found: {property_id}")
        bookings = s.execute(select(BookingRow).where(BookingRow.property_id == property_id)).scalars().all()
        row.layout_data = keep_booked_marks(layout, [_to_booking(b) for b in bookings]).to_document()
        row.layout_version = (row.layout_version or 0) + 1
        s.flush()
        return _to_property(row)


def list_legacy_slots(property_id: Optional[str] = None) -> List[LegacySlot]:
    q = select(LegacySlotRow).order_by(LegacySlotRow.type, LegacySlotRow.slot_number)
    if property_id is not None:
        q = q.where(LegacySlotRow.property_id == property_id)
    with SessionLocal() as s:
        return [_to_legacy(r) for r in s.execute(q).scalars().all()]


def get_legacy_slot(slot_id: str) -> Optional[LegacySlot]:
    with SessionLocal() as s:
        row = s.get(LegacySlotRow, slot_id)
        return _to_legacy(row) if row else None


def _set_layout_status(property_id: str, slot_id: str, expect: SlotStatus, new: SlotStatus) -> Optional[ReserveResult]:
    """
    Compare-and-set one slot status inside the layout JSON, guarded by
    layout_version. None means the slot is not a layout slot.
    """
    for _ in range(RESERVE_ATTEMPTS):
        with SessionLocal() as s, s.begin():
            row = s.execute(
                select(PropertyRow.layout_data, PropertyRow.layout_version).where(PropertyRow.id == property_id)
            ).first()
            if row is None:
                return ReserveResult.NOT_FOUND
            layout, version = row
            if not layout or slot_id not in (layout.get("slots") or {}):
                return None
            if layout["slots"][slot_id].get("status", SlotStatus.AVAILABLE.value) != expect.value:
                return ReserveResult.CONFLICT

            doc = copy.deepcopy(layout)
            doc["slots"][slot_id]["status"] = new.value
            res = s.execute(
                update(PropertyRow)
                .where(PropertyRow.id == property_id, PropertyRow.layout_version == version)
                .values(layout_data=doc, layout_version=version + 1)
            )
            if res.rowcount == 1:
                return ReserveResult.SUCCESS
        logger.debug("layout of %s changed under us; retrying", property_id)
    logger.warning("Gave up updating slot %s of %s after %s attempts", slot_id, property_id, RESERVE_ATTEMPTS)
    return ReserveResult.CONFLICT


def _set_legacy_booked(property_id: str, slot_id: str, booked: bool) -> ReserveResult:
    with SessionLocal() as s, s.begin():
        res = s.execute(
            update(LegacySlotRow)
            .where(
                LegacySlotRow.id == slot_id,
                LegacySlotRow.property_id == property_id,
                LegacySlotRow.is_booked == (not booked),
            )
            .values(is_booked=booked)
        )
        if res.rowcount == 1:
            return ReserveResult.SUCCESS
        exists = s.execute(
            select(LegacySlotRow.id).where(LegacySlotRow.id == slot_id, LegacySlotRow.property_id == property_id)
        ).first()
        return ReserveResult.CONFLICT if exists else ReserveResult.NOT_FOUND


def reserve_slot(property_id: str, slot_id: str) -> ReserveResult:
    """Mark a slot booked only if it is currently free (conditional UPDATE)."""
    result = _set_layout_status(property_id, slot_id, SlotStatus.AVAILABLE, SlotStatus.BOOKED)
    if result is not None:
        return result
    return _set_legacy_booked(property_id, slot_id, True)


def release_slot(property_id: str, slot_id: str) -> bool:
    result = _set_layout_status(property_id, slot_id, SlotStatus.BOOKED, SlotStatus.AVAILABLE)
    if result is None:
        result = _set_legacy_booked(property_id, slot_id, False)
    return result is ReserveResult.SUCCESS


def add_booking(booking: Booking) -> Booking:
    with SessionLocal() as s, s.begin():
        row = BookingRow(
            id=booking.id or _new_id(),
            user_id=booking.user,
            property_id=booking.property,
            slot=booking.slot,
            status=booking.status,
            start_time=booking.startTime,
            end_time=booking.endTime,
            total_amount=booking.totalAmount,
            slot_info=booking.slotInfo,
            created_at=booking.createdAt or utcnow(),
        )
        s.add(row)
        s.flush()
        return _to_booking(row)


def get_booking(booking_id: str) -> Optional[Booking]:
    with SessionLocal() as s:
        row = s.get(BookingRow, booking_id)
        return _to_booking(row) if row else None


def list_bookings(property_id: Optional[str] = None, user_id: Optional[str] = None) -> List[Booking]:
    q = select(BookingRow).order_by(BookingRow.created_at)
    if property_id is not None:
        q = q.where(BookingRow.property_id == property_id)
    if user_id is not None:
        q = q.where(BookingRow.user_id == user_id)
    with SessionLocal() as s:
        return [_to_booking(r) for r in s.execute(q).scalars().all()]


def set_booking_status(booking_id: str, status: str) -> Optional[Booking]:
    with SessionLocal() as s, s.begin():
        row = s.get(BookingRow, booking_id)
        if row is None:
            return None
        row.status = status
        s.flush()
        return _to_booking(row)


def clear() -> None:
    with SessionLocal() as s, s.begin():
        s.execute(delete(BookingRow))
        s.execute(delete(LegacySlotRow))
        s.execute(delete(PropertyRow))
