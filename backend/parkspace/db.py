# backend/parkspace/db.py
"""
In-memory property / slot / booking store.

Module-level dicts behind one lock; every public function copies models in
and out so callers never hold references into the store. ``db_sql`` mirrors
these signatures.
"""
from __future__ import annotations
import logging
import threading
import uuid
from typing import Dict, List, Optional

from .availability import keep_booked_marks
from .errors import InputError, PropertyNotFound
from .grid import layout_issues
from .schemas import (
    Booking,
    Layout,
    LegacySlot,
    Property,
    PropertyIn,
    ReserveResult,
    SlotStatus,
    VehicleType,
    utcnow,
)

logger = logging.getLogger(__name__)

# ---- In-memory store ----
_PROPERTIES: Dict[str, Property] = {}
_LEGACY_SLOTS: Dict[str, LegacySlot] = {}    # { slotId: slot }
_BOOKINGS: Dict[str, Booking] = {}
_LOCK = threading.Lock()


# ---- Internals ----
def _new_id() -> str:
    return uuid.uuid4().hex


def _require(property_id: str) -> Property:
    prop = _PROPERTIES.get(property_id)
    if prop is None:
        raise PropertyNotFound(f"Parking property not found: {property_id}")
    return prop


def _copy(model):
    return model.model_copy(deep=True) if model is not None else None


def _legacy_slots_for(prop: Property) -> List[LegacySlot]:
    slots = []
    for vehicle_type, count in ((VehicleType.CAR, prop.carSlots), (VehicleType.BIKE, prop.bikeSlots)):
        label = vehicle_type.value.capitalize()
        for i in range(1, count + 1):
            slots.append(LegacySlot(
                id=_new_id(),
                property=prop.id,
                slotNumber=f"{label}-{i}",
                type=vehicle_type,
                pricePerHour=prop.pricePerHour,
            ))
    return slots


# ---- Properties ----
def create_property(payload: PropertyIn) -> Property:
    """New property, pending approval. A supplied layout must be self-consistent."""
    if payload.layoutData is not None:
        issues = layout_issues(payload.layoutData)
        if issues:
            raise InputError("Invalid layout: " + "; ".join(issues))
    prop = Property(**payload.model_dump(), id=_new_id(), createdAt=utcnow())
    with _LOCK:
        _PROPERTIES[prop.id] = prop
    logger.info("Created property %s (%s car / %s bike)", prop.id, prop.carSlots, prop.bikeSlots)
    return _copy(prop)


def get_property(property_id: str) -> Optional[Property]:
    with _LOCK:
        return _copy(_PROPERTIES.get(property_id))


def list_properties(approved: Optional[bool] = None, rental_id: Optional[str] = None,
                    active: Optional[bool] = None) -> List[Property]:
    with _LOCK:
        return [
            _copy(p) for p in _PROPERTIES.values()
            if (approved is None or p.approved == approved)
            and (rental_id is None or p.rental == rental_id)
            and (active is None or p.active == active)
        ]


def approve_property(property_id: str, owner_id: str) -> Property:
    """Approve; creates legacy per-slot rows the first time."""
    with _LOCK:
        prop = _require(property_id)
        prop.approved = True
        prop.owner = owner_id
        if not any(s.property == property_id for s in _LEGACY_SLOTS.values()):
            for slot in _legacy_slots_for(prop):
                _LEGACY_SLOTS[slot.id] = slot
        return _copy(prop)


def set_active(property_id: str, active: bool) -> Property:
    with _LOCK:
        prop = _require(property_id)
        prop.active = active
        return _copy(prop)


def delete_property(property_id: str) -> bool:
    """Delete a property with its bookings and legacy slots."""
    with _LOCK:
        if _PROPERTIES.pop(property_id, None) is None:
            return False
        for sid in [k for k, s in _LEGACY_SLOTS.items() if s.property == property_id]:
            del _LEGACY_SLOTS[sid]
        for bid in [k for k, b in _BOOKINGS.items() if b.property == property_id]:
            del _BOOKINGS[bid]
    logger.info("Deleted property %s", property_id)
    return True


def save_layout(property_id: str, layout: Layout) -> Property:
    """Replace the stored layout wholesale, keeping booked marks of actively booked slots."""
    issues = layout_issues(layout)
    if issues:
        raise InputError("Invalid layout: " + "; ".join(issues))
    with _LOCK:
        prop = _require(property_id)
        bookings = [b for b in _BOOKINGS.values() if b.property == property_id]
        prop.layoutData = keep_booked_marks(layout, bookings)
        return _copy(prop)


# ---- Legacy slots ----
def list_legacy_slots(property_id: Optional[str] = None) -> List[LegacySlot]:
    with _LOCK:
        return [_copy(s) for s in _LEGACY_SLOTS.values() if property_id is None or s.property == property_id]


def get_legacy_slot(slot_id: str) -> Optional[LegacySlot]:
    with _LOCK:
        return _copy(_LEGACY_SLOTS.get(slot_id))


# ---- Slot reservation ----
def reserve_slot(property_id: str, slot_id: str) -> ReserveResult:
    """Mark a slot booked only if it is currently free (check-and-set under the lock)."""
    with _LOCK:
        prop = _PROPERTIES.get(property_id)
        if prop is None:
            return ReserveResult.NOT_FOUND
        if prop.layoutData is not None and slot_id in prop.layoutData.slots:
            slot = prop.layoutData.slots[slot_id]
            if slot.status is not SlotStatus.AVAILABLE:
                return ReserveResult.CONFLICT
            prop.layoutData.slots[slot_id] = slot.model_copy(update={"status": SlotStatus.BOOKED})
            return ReserveResult.SUCCESS
        legacy = _LEGACY_SLOTS.get(slot_id)
        if legacy is None or legacy.property != property_id:
            return ReserveResult.NOT_FOUND
        if legacy.isBooked:
            return ReserveResult.CONFLICT
        legacy.isBooked = True
        return ReserveResult.SUCCESS


def release_slot(property_id: str, slot_id: str) -> bool:
    with _LOCK:
        prop = _PROPERTIES.get(property_id)
        if prop is None:
            return False
        if prop.layoutData is not None and slot_id in prop.layoutData.slots:
            slot = prop.layoutData.slots[slot_id]
            if slot.status is not SlotStatus.BOOKED:
                return False
            prop.layoutData.slots[slot_id] = slot.model_copy(update={"status": SlotStatus.AVAILABLE})
            return True
        legacy = _LEGACY_SLOTS.get(slot_id)
        if legacy is None or legacy.property != property_id or not legacy.isBooked:
            return False
        legacy.isBooked = False
        return True


# ---- Bookings ----
def add_booking(booking: Booking) -> Booking:
    rec = booking.model_copy(update={"id": booking.id or _new_id(), "createdAt": booking.createdAt or utcnow()})
    with _LOCK:
        _BOOKINGS[rec.id] = rec
        return _copy(rec)


def get_booking(booking_id: str) -> Optional[Booking]:
    with _LOCK:
        return _copy(_BOOKINGS.get(booking_id))


def list_bookings(property_id: Optional[str] = None, user_id: Optional[str] = None) -> List[Booking]:
    with _LOCK:
        return [
            _copy(b) for b in _BOOKINGS.values()
            if (property_id is None or b.property == property_id)
            and (user_id is None or b.user == user_id)
        ]


def set_booking_status(booking_id: str, status: str) -> Optional[Booking]:
    with _LOCK:
        rec = _BOOKINGS.get(booking_id)
        if rec is None:
            return None
        rec.status = status
        return _copy(rec)


# ---- Utilities (handy for tests / maintenance) ----
def clear() -> None:
    """Drop everything. Useful in pytest or local resets."""
    with _LOCK:
        _PROPERTIES.clear()
        _LEGACY_SLOTS.clear()
        _BOOKINGS.clear()
