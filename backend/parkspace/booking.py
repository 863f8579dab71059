# backend/parkspace/booking.py
"""
Booking admission.

``store`` is either ``db`` or ``db_sql``; both expose the same functions.
The slot is claimed through ``store.reserve_slot`` (an atomic
mark-if-free) before the booking row is written, and released again if
writing the booking fails.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from . import availability
from .errors import BookingNotFound, InputError, PropertyNotFound, SlotConflict, SlotNotFound
from .schemas import Booking, BookingIn, ReserveResult, ensure_aware_utc, utcnow

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
CANCELLED = "cancelled"


def _resolve_slot(store, prop, slot_id: str):
    """(vehicle type, hourly price, slot snapshot) for a layout or legacy slot."""
    if prop.layoutData is not None and slot_id in prop.layoutData.slots:
        slot = prop.layoutData.slots[slot_id]
        price = slot.pricePerHour if slot.pricePerHour is not None else prop.pricePerHour
        return slot.vehicleType, price, slot.model_dump(mode="json", exclude_none=True)
    legacy = store.get_legacy_slot(slot_id)
    if legacy is not None and legacy.property == prop.id:
        return legacy.type, legacy.pricePerHour, legacy.model_dump(mode="json")
    raise SlotNotFound(f"Parking slot not found: {slot_id}")


def _window(request: BookingIn, now: datetime):
    start = ensure_aware_utc(request.startTime) if request.startTime else now
    if request.endTime:
        end = ensure_aware_utc(request.endTime)
    elif request.hours:
        end = start + timedelta(hours=request.hours)
    else:
        raise InputError("Either endTime or hours is required")
    if end <= start:
        raise InputError("endTime must be after startTime")
    return start, end


def create_booking(store, request: BookingIn, user_id: str, now: Optional[datetime] = None) -> Booking:
    now = ensure_aware_utc(now or utcnow())
    prop = store.get_property(request.property)
    if prop is None:
        raise PropertyNotFound(f"Parking property not found: {request.property}")
    if not prop.active:
        raise SlotConflict(request.slot, "Property is not accepting bookings")

    vehicle_type, price, snapshot = _resolve_slot(store, prop, request.slot)
    start, end = _window(request, now)

    views = {v.id: v for v in availability.list_slots(
        prop, store.list_legacy_slots(prop.id), store.list_bookings(property_id=prop.id), now,
        request.vehicleType,
    )}
    view = views.get(request.slot)
    if view is not None and not view.isAvailable:
        if view.isBooked:
            reason = "Slot already booked"
        elif request.vehicleType is not None and vehicle_type is not request.vehicleType:
            reason = f"Slot is for {vehicle_type.value}s only"
        else:
            reason = "Slot is unavailable"
        raise SlotConflict(request.slot, reason)

    result = store.reserve_slot(prop.id, request.slot)
    if result is ReserveResult.NOT_FOUND:
        raise SlotNotFound(f"Parking slot not found: {request.slot}")
    if result is ReserveResult.CONFLICT:
        raise SlotConflict(request.slot)

    total = request.totalAmount or round(price * (end - start).total_seconds() / 3600, 2)
    try:
        booking = store.add_booking(Booking(
            user=user_id,
            property=prop.id,
            slot=request.slot,
            status=CONFIRMED,
            startTime=start,
            endTime=end,
            totalAmount=total,
            slotInfo=snapshot,
        ))
    except Exception:
        logger.exception("Recording booking for slot %s of %s failed; releasing", request.slot, prop.id)
        store.release_slot(prop.id, request.slot)
        raise

    logger.info("Booked slot %s of %s for user %s until %s", request.slot, prop.id, user_id, end.isoformat())
    return booking


def cancel_booking(store, booking_id: str, user_id: Optional[str] = None) -> Booking:
    """Cancel a booking and free its slot. ``user_id``, when given, must own the booking."""
    booking = store.get_booking(booking_id)
    if booking is None or (user_id is not None and booking.user != user_id):
        raise BookingNotFound(f"Booking not found: {booking_id}")
    if booking.status == CANCELLED:
        return booking

    cancelled = store.set_booking_status(booking_id, CANCELLED)
    if booking.property is not None:
        store.release_slot(booking.property, booking.slot)
    logger.info("Cancelled booking %s (slot %s)", booking_id, booking.slot)
    return cancelled
