# backend/parkspace/errors.py


class ParkspaceError(Exception):
    """Base class for errors raised by the layout/booking core."""


class InputError(ParkspaceError, ValueError):
    """Bad input to a single call (generation counts, coordinates, layout to persist)."""


class PropertyNotFound(ParkspaceError, LookupError):
    pass


class SlotNotFound(ParkspaceError, LookupError):
    pass


class BookingNotFound(ParkspaceError, LookupError):
    pass


class SlotConflict(ParkspaceError):
    """Slot is already booked or not bookable; distinct from SlotNotFound."""

    def __init__(self, slot_id: str, reason: str = "Slot already booked"):
        super().__init__(f"{reason}: {slot_id}")
        self.slot_id = slot_id
        self.reason = reason
