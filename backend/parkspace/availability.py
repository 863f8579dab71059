# backend/parkspace/availability.py
"""
Live slot availability.

Availability is never stored: every call joins the slots of a property
against its bookings and decides ``isBooked`` / ``isAvailable`` from the
booking statuses and end times at ``now``. Malformed booking records are
skipped with a warning so that listings keep working on bad history.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .schemas import (
    AvailabilitySummary,
    Layout,
    LegacySlot,
    Property,
    RentalStats,
    SlotAvailability,
    SlotStatus,
    SlotView,
    TypeAvailability,
    VehicleType,
    ensure_aware_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = frozenset({"pending", "confirmed", "active"})


def _field(record: Any, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _as_datetime(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    if isinstance(value, str):
        try:
            return ensure_aware_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def is_active_booking(booking, now: Optional[datetime] = None) -> bool:
    """Status in ACTIVE_BOOKING_STATUSES and endTime after now. False for malformed records."""
    now = ensure_aware_utc(now or utcnow())
    status = _field(booking, "status")
    end = _as_datetime(_field(booking, "endTime"))
    if _field(booking, "slot") is None or end is None:
        logger.warning("Skipping malformed booking %r", _field(booking, "id") or booking)
        return False
    return status in ACTIVE_BOOKING_STATUSES and end > now


def booked_slot_ids(bookings: Iterable, now: Optional[datetime] = None) -> Set[str]:
    now = ensure_aware_utc(now or utcnow())
    return {str(_field(b, "slot")) for b in bookings if is_active_booking(b, now)}


def _availability(booked: bool, status: SlotStatus) -> SlotAvailability:
    is_booked = booked or status is SlotStatus.BOOKED
    return SlotAvailability(
        isBooked=is_booked,
        isAvailable=not is_booked and status is not SlotStatus.UNAVAILABLE,
        status=status,
    )


ALL_VEHICLE_TYPES = "all"


def _wanted_type(vehicle_type):
    """None for no filter; False for an unknown type, which matches no slot."""
    if not vehicle_type or vehicle_type == ALL_VEHICLE_TYPES:
        return None
    try:
        return VehicleType(vehicle_type)
    except ValueError:
        logger.warning("Unknown vehicle type filter %r; no slot matches", vehicle_type)
        return False


def _restrict(view: SlotAvailability, slot_type: VehicleType, vehicle_type) -> SlotAvailability:
    if vehicle_type is None or slot_type is vehicle_type:
        return view
    return view.model_copy(update={"isAvailable": False, "status": SlotStatus.UNAVAILABLE})



def keep_booked_marks(layout: Layout, bookings: Iterable, now: Optional[datetime] = None) -> Layout:
    """Copy of ``layout`` with slots that still have active bookings marked booked."""
    booked = booked_slot_ids(bookings, now)
    doc = layout.model_copy(deep=True)
    for slot_id, slot in doc.slots.items():
        if slot_id in booked and slot.status is not SlotStatus.BOOKED:
            doc.slots[slot_id] = slot.model_copy(update={"status": SlotStatus.BOOKED})
    return doc


# ---- Layout slots ----
def compute_availability(layout: Layout, bookings: Iterable, now: Optional[datetime] = None,
                         vehicle_type=None) -> Dict[str, SlotAvailability]:
    """
    slot id -> SlotAvailability for every slot of the layout. With
    ``vehicle_type`` set, slots of the other type stay listed but are
    reported unavailable.
    """
    booked = booked_slot_ids(bookings, now)
    wanted = _wanted_type(vehicle_type)
    return {
        slot_id: _restrict(_availability(slot_id in booked, slot.status), slot.vehicleType, wanted)
        for slot_id, slot in layout.slots.items()
    }


def list_layout_slots(prop: Property, bookings: Iterable, now: Optional[datetime] = None,
                      vehicle_type=None) -> List[SlotView]:
    if prop.layoutData is None:
        return []
    result = compute_availability(prop.layoutData, bookings, now, vehicle_type)
    return [
        SlotView(
            id=slot_id,
            slotNumber=slot.slotNumber,
            type=slot.vehicleType,
            pricePerHour=slot.pricePerHour if slot.pricePerHour is not None else prop.pricePerHour,
            property_id=prop.id,
            **result[slot_id].model_dump(),
        )
        for slot_id, slot in prop.layoutData.slots.items()
    ]


# ---- Legacy per-row slots ----
def list_legacy_slots(prop: Property, legacy_slots: Sequence[LegacySlot], bookings: Iterable,
                      now: Optional[datetime] = None, vehicle_type=None) -> List[SlotView]:
    booked = booked_slot_ids(bookings, now)
    wanted = _wanted_type(vehicle_type)
    views = []
    for slot in legacy_slots:
        if slot.property != prop.id:
            continue
        status = SlotStatus.BOOKED if slot.isBooked else SlotStatus.AVAILABLE
        result = _restrict(_availability(slot.id in booked, status), slot.type, wanted)
        views.append(SlotView(
            id=slot.id,
            slotNumber=slot.slotNumber,
            type=slot.type,
            pricePerHour=slot.pricePerHour,
            property_id=prop.id,
            **result.model_dump(),
        ))
    return views


def list_slots(prop: Property, legacy_slots: Sequence[LegacySlot], bookings: Iterable,
               now: Optional[datetime] = None, vehicle_type=None) -> List[SlotView]:
    """Layout slots when the property has a layout, legacy rows otherwise."""
    if prop.layoutData is not None:
        return list_layout_slots(prop, bookings, now, vehicle_type)
    return list_legacy_slots(prop, legacy_slots, bookings, now, vehicle_type)


# ---- Aggregates ----
def _type_counts(views: List[SlotView], vehicle_type: VehicleType) -> TypeAvailability:
    of_type = [v for v in views if v.type is vehicle_type]
    booked = sum(1 for v in of_type if v.isBooked)
    available = sum(1 for v in of_type if v.isAvailable)
    return TypeAvailability(total=len(of_type), booked=booked, available=available)


def availability_summary(prop: Property, legacy_slots: Sequence[LegacySlot], bookings: Iterable,
                         now: Optional[datetime] = None) -> AvailabilitySummary:
    views = list_slots(prop, legacy_slots, bookings, now)
    cars = _type_counts(views, VehicleType.CAR)
    bikes = _type_counts(views, VehicleType.BIKE)
    return AvailabilitySummary(
        carSlots=cars,
        bikeSlots=bikes,
        isAvailable=(cars.available + bikes.available) > 0,
    )


def _slot_type(prop: Property, legacy_by_id: Dict[str, LegacySlot], slot_id: str) -> Optional[VehicleType]:
    if prop.layoutData is not None and slot_id in prop.layoutData.slots:
        return prop.layoutData.slots[slot_id].vehicleType
    legacy = legacy_by_id.get(slot_id)
    return legacy.type if legacy is not None else None


def rental_stats(properties: Sequence[Property], legacy_slots: Sequence[LegacySlot], bookings: Iterable,
                 now: Optional[datetime] = None) -> RentalStats:
    """Dashboard totals over one renter's properties."""
    if not properties:
        return RentalStats()

    now = ensure_aware_utc(now or utcnow())
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    by_id = {p.id: p for p in properties}
    legacy_by_id = {s.id: s for s in legacy_slots if s.property in by_id}
    mine = [b for b in bookings if _field(b, "property") in by_id]

    total_car = sum(p.carSlots for p in properties)
    total_bike = sum(p.bikeSlots for p in properties)
    paid = [b for b in mine if _field(b, "status") != "cancelled"]
    this_month = [b for b in paid if (_as_datetime(_field(b, "createdAt")) or now) >= month_start]

    cars_booked = bikes_booked = 0
    active = [b for b in mine if is_active_booking(b, now)]
    for b in active:
        vt = _slot_type(by_id[_field(b, "property")], legacy_by_id, str(_field(b, "slot")))
        if vt is VehicleType.CAR:
            cars_booked += 1
        elif vt is VehicleType.BIKE:
            bikes_booked += 1

    total = total_car + total_bike
    occupancy = (cars_booked + bikes_booked) / total * 100 if total else 0.0
    return RentalStats(
        totalProperties=len(properties),
        totalCarSlots=total_car,
        totalBikeSlots=total_bike,
        totalBookings=len(mine),
        activeBookings=len(active),
        totalRevenue=sum(_field(b, "totalAmount") or 0 for b in paid),
        monthlyRevenue=sum(_field(b, "totalAmount") or 0 for b in this_month),
        carsBooked=cars_booked,
        bikesBooked=bikes_booked,
        occupancyRate=round(occupancy, 1),
        availableCarSlots=total_car - cars_booked,
        availableBikeSlots=total_bike - bikes_booked,
    )
