# backend/parkspace/editor.py
"""
Interactive layout editing as a small state machine.

The editor owns a mutable grid plus a ``SlotMap``; each ``click`` is
interpreted according to the current mode. Modes only change through
``set_mode`` (or after a completed move). Nothing here is persisted until
``to_layout`` exports a checked ``Layout``.
"""
import logging
import math
from enum import Enum
from typing import Dict, Optional

from . import dxf_import
from .errors import InputError
from .grid import Cell, Grid, Position, SlotMap, check_bijection, copy_grid, dimensions, in_bounds, new_grid, set_cell
from .schemas import Dimensions, EntryExit, Layout, Slot, SlotStatus, VehicleType

logger = logging.getLogger(__name__)

MANUAL_TEMPLATE_ID = "manual-blank"
TEMPLATE_NAMES = {
    MANUAL_TEMPLATE_ID: "Manual Layout",
    dxf_import.TEMPLATE_ID: dxf_import.TEMPLATE_NAME,
}
CUSTOM_TEMPLATE_NAME = "Custom Layout"


class EditorMode(str, Enum):
    SELECT = "select"
    ADD = "add"
    DELETE = "delete"
    MOVE = "move"


def blank_grid_size(car_slots: int, bike_slots: int):
    """Heuristic (rows, cols) for a fresh manual grid."""
    car = car_slots or 6
    rows = max(6, car + math.ceil(bike_slots / 4))
    cols = max(8, math.ceil(car / 4) + 4)
    return rows, cols


class LayoutEditor:
    def __init__(self, grid: Grid, slots: Optional[SlotMap] = None, template_id: str = MANUAL_TEMPLATE_ID,
                 template_name: Optional[str] = None, entry_exit: Optional[EntryExit] = None,
                 price_per_hour: Optional[float] = None):
        self.grid = grid
        self.slots = slots if slots is not None else SlotMap()
        self.template_id = template_id
        self.template_name = template_name
        self.entry_exit = entry_exit or EntryExit()
        self.price_per_hour = price_per_hour
        self.mode = EditorMode.SELECT
        self.move_source: Optional[Position] = None
        self.new_slot_vehicle_type = VehicleType.CAR

    @classmethod
    def from_layout(cls, layout: Layout, price_per_hour: Optional[float] = None) -> "LayoutEditor":
        return cls(
            copy_grid(layout.layout),
            SlotMap.from_dict(layout.slots),
            template_id=layout.templateId,
            template_name=layout.templateName,
            entry_exit=layout.entryExit.model_copy(),
            price_per_hour=price_per_hour,
        )

    @classmethod
    def blank(cls, car_slots: int, bike_slots: int, price_per_hour: Optional[float] = None) -> "LayoutEditor":
        rows, cols = blank_grid_size(car_slots, bike_slots)
        return cls(new_grid(rows, cols), price_per_hour=price_per_hour)

    # ---- Modes ----
    def set_mode(self, mode) -> None:
        self.mode = EditorMode(mode)
        self.move_source = None

    def set_new_slot_vehicle_type(self, vehicle_type) -> None:
        self.new_slot_vehicle_type = VehicleType(vehicle_type)

    # ---- Clicks ----
    def click(self, row: int, col: int) -> bool:
        """Apply the current mode to cell (row, col). Returns True if state changed."""
        if not isinstance(row, int) or not isinstance(col, int):
            raise InputError(f"Invalid cell coordinates: ({row!r}, {col!r})")
        if not in_bounds(self.grid, row, col):
            rows, cols = dimensions(self.grid)
            logger.warning("click: (%s, %s) outside %sx%s grid; ignored", row, col, rows, cols)
            return False

        pos = (row, col)
        if self.mode is EditorMode.SELECT:
            return self._toggle_status(pos)
        if self.mode is EditorMode.ADD:
            return self._add(pos)
        if self.mode is EditorMode.DELETE:
            return self._delete(pos)
        return self._move(pos)

    def _toggle_status(self, pos: Position) -> bool:
        slot = self.slots.get(pos)
        if slot is None:
            return False
        if slot.status is SlotStatus.AVAILABLE:
            status = SlotStatus.UNAVAILABLE
        elif slot.status is SlotStatus.UNAVAILABLE:
            status = SlotStatus.AVAILABLE
        else:
            # booked slots are owned by the booking flow
            return False
        self.slots[pos] = slot.model_copy(update={"status": status})
        return True

    def _add(self, pos: Position) -> bool:
        if pos in self.slots:
            return False
        row, col = pos
        set_cell(self.grid, row, col, Cell.SLOT)
        self.slots[pos] = Slot(
            slotNumber=f"S{len(self.slots) + 1}",
            status=SlotStatus.AVAILABLE,
            vehicleType=self.new_slot_vehicle_type,
            pricePerHour=self.price_per_hour,
        )
        return True

    def _delete(self, pos: Position) -> bool:
        if pos not in self.slots:
            return False
        del self.slots[pos]
        set_cell(self.grid, pos[0], pos[1], Cell.LANE)
        return True

    def _move(self, pos: Position) -> bool:
        if self.move_source is None:
            if pos in self.slots:
                self.move_source = pos
            return False
        if pos in self.slots:
            logger.info("move: destination %s-%s is occupied; source stays pending", *pos)
            return False

        src = self.move_source
        self.slots[pos] = self.slots.pop(src)
        set_cell(self.grid, src[0], src[1], Cell.LANE)
        set_cell(self.grid, pos[0], pos[1], Cell.SLOT)
        self.move_source = None
        self.mode = EditorMode.SELECT
        return True

    # ---- Secondary controls ----
    def toggle_vehicle_type(self, row: int, col: int) -> bool:
        slot = self.slots.get((row, col))
        if slot is None:
            return False
        flipped = VehicleType.BIKE if slot.vehicleType is VehicleType.CAR else VehicleType.CAR
        self.slots[(row, col)] = slot.model_copy(update={"vehicleType": flipped})
        return True

    def reset_blank(self, car_slots: int, bike_slots: int) -> None:
        """Full reset to an empty grid sized from the declared counts."""
        rows, cols = blank_grid_size(car_slots, bike_slots)
        self._replace(new_grid(rows, cols), SlotMap(), MANUAL_TEMPLATE_ID, None, EntryExit())

    def load_layout(self, layout: Layout) -> None:
        self._replace(copy_grid(layout.layout), SlotMap.from_dict(layout.slots),
                      layout.templateId, layout.templateName, layout.entryExit.model_copy())

    def import_dxf(self, text: str, fallback: Optional[Layout] = None) -> bool:
        """
        Replace the state with a layout rasterised from DXF polylines.
        A drawing that yields no slots loads ``fallback`` instead when given;
        returns True only when the DXF itself was used.
        """
        try:
            layout = dxf_import.import_dxf(text, self.price_per_hour)
        except InputError:
            if fallback is None:
                raise
            logger.warning("import_dxf: no usable polylines; loading %s instead", fallback.templateId)
            self.load_layout(fallback)
            return False
        self.load_layout(layout)
        return True

    def _replace(self, grid, slots, template_id, template_name, entry_exit) -> None:
        self.grid = grid
        self.slots = slots
        self.template_id = template_id
        self.template_name = template_name
        self.entry_exit = entry_exit
        self.move_source = None
        self.mode = EditorMode.SELECT

    # ---- Views / export ----
    def filtered_slots(self, vehicle_type=None) -> Dict[str, Slot]:
        slots = self.slots.to_dict()
        if vehicle_type is None or vehicle_type == "all":
            return slots
        vt = VehicleType(vehicle_type)
        return {sid: s for sid, s in slots.items() if s.vehicleType is vt}

    def to_layout(self) -> Layout:
        issues = check_bijection(self.grid, self.slots)
        if issues:
            raise InputError("Layout grid and slot metadata disagree: " + "; ".join(issues))

        slots = list(self.slots.values())
        rows, cols = dimensions(self.grid)
        name = TEMPLATE_NAMES.get(self.template_id) or self.template_name or CUSTOM_TEMPLATE_NAME
        return Layout(
            templateId=self.template_id,
            templateName=name,
            layout=copy_grid(self.grid),
            slots=self.slots.to_dict(),
            entryExit=self.entry_exit.model_copy(),
            dimensions=Dimensions(rows=rows, cols=cols),
            totalSlots=len(slots),
            availableSlots=sum(1 for s in slots if s.status is SlotStatus.AVAILABLE),
            carSlots=sum(1 for s in slots if s.vehicleType is VehicleType.CAR),
            bikeSlots=sum(1 for s in slots if s.vehicleType is VehicleType.BIKE),
        )
