# backend/parkspace/generators.py
"""
Procedural parking layout generators.

Each generator turns (car_slots, bike_slots, price_per_hour) into a Layout:
a grid with entry/exit roads carved first, then slots placed in the
generator's own enumeration order, cars first and bikes after.

Placement is allowed to be lossy: when the computed geometry cannot hold
every requested slot the layout reports what was actually placed.
"""
import functools
import logging
import math
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import InputError
from .grid import Cell, SlotMap, check_bijection, fill_col, fill_row, get_cell, new_grid, set_cell
from .schemas import Dimensions, EntryExit, Layout, Slot, SlotStatus, VehicleType

logger = logging.getLogger(__name__)

DEFAULT_PRICE_PER_HOUR = 20


class GeneratorKind(str, Enum):
    EFFICIENT_GRID = "efficient-grid"
    LINEAR_FLOW = "linear-flow"
    CIRCULAR_FLOW = "circular-flow"
    SEPARATED_ZONES = "separated-zones"
    MALL_STYLE = "mall-style"
    COMPACT_URBAN = "compact-urban"


def generate_slot_number(index: int, vehicle_type: VehicleType) -> str:
    """0-based per-type index -> 'C01' / 'B01'."""
    prefix = "C" if VehicleType(vehicle_type) is VehicleType.CAR else "B"
    return f"{prefix}{index + 1:02d}"


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def validate_generation_input(car_slots, bike_slots, price_per_hour) -> None:
    for name, value in (("carSlots", car_slots), ("bikeSlots", bike_slots)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InputError(f"{name} must be a non-negative integer, got {value!r}")
    if car_slots + bike_slots == 0:
        raise InputError("At least one car or bike slot is required to generate a layout")
    if isinstance(price_per_hour, bool) or not isinstance(price_per_hour, (int, float)) or price_per_hour <= 0:
        raise InputError(f"pricePerHour must be a positive number, got {price_per_hour!r}")


def _validated(fn: Callable[..., Layout]) -> Callable[..., Layout]:
    @functools.wraps(fn)
    def wrapper(car_slots, bike_slots, price_per_hour=DEFAULT_PRICE_PER_HOUR):
        validate_generation_input(car_slots, bike_slots, price_per_hour)
        return fn(car_slots, bike_slots, price_per_hour)
    return wrapper


class LayoutBuilder:
    """Grid + slot metadata under construction for one generation call."""

    def __init__(self, kind: GeneratorKind, name: str, rows: int, cols: int,
                 car_slots: int, bike_slots: int, price_per_hour: float):
        self.kind = kind
        self.name = name
        self.grid = new_grid(rows, cols)
        self.slots = SlotMap()
        self.car_slots = car_slots
        self.bike_slots = bike_slots
        self.price_per_hour = price_per_hour
        self._counters = {VehicleType.CAR: 0, VehicleType.BIKE: 0}

    @property
    def rows(self) -> int:
        return len(self.grid)

    @property
    def cols(self) -> int:
        return len(self.grid[0]) if self.grid else 0

    @property
    def placed(self) -> int:
        return len(self.slots)

    @property
    def requested(self) -> int:
        return self.car_slots + self.bike_slots

    def next_vehicle_type(self) -> Optional[VehicleType]:
        if self._counters[VehicleType.CAR] < self.car_slots:
            return VehicleType.CAR
        if self._counters[VehicleType.BIKE] < self.bike_slots:
            return VehicleType.BIKE
        return None

    def done(self) -> bool:
        return self.next_vehicle_type() is None

    def road(self, row: int, col: int, value: Cell) -> None:
        set_cell(self.grid, row, col, value)

    def place(self, row, col, vehicle_type: Optional[VehicleType] = None, **tags) -> bool:
        """
        Put the next slot at (row, col). Returns False (nothing placed) when the
        position is outside the grid, the cell is not a free lane, or the
        requested vehicle type is already exhausted.
        """
        if not isinstance(row, int) or not isinstance(col, int) or isinstance(row, bool) or isinstance(col, bool):
            raise InputError(f"Invalid slot coordinates: ({row!r}, {col!r})")

        current = get_cell(self.grid, row, col)
        if current is None:
            logger.warning("%s: slot position (%s, %s) outside %sx%s grid; skipped",
                           self.kind.value, row, col, self.rows, self.cols)
            return False
        if current != Cell.LANE:
            return False

        if vehicle_type is None:
            vehicle_type = self.next_vehicle_type()
            if vehicle_type is None:
                return False
        else:
            limit = self.car_slots if vehicle_type is VehicleType.CAR else self.bike_slots
            if self._counters[vehicle_type] >= limit:
                return False

        index = self._counters[vehicle_type]
        self._counters[vehicle_type] += 1
        set_cell(self.grid, row, col, Cell.SLOT)
        self.slots[(row, col)] = Slot(
            slotNumber=generate_slot_number(index, vehicle_type),
            status=SlotStatus.AVAILABLE,
            vehicleType=vehicle_type,
            pricePerHour=self.price_per_hour,
            **tags,
        )
        return True

    def build(self, entry: str, exit: str) -> Layout:
        issues = check_bijection(self.grid, self.slots)
        if issues:
            # generator bug, not caller input
            raise RuntimeError(f"{self.kind.value} produced an inconsistent layout: {issues}")
        if self.placed < self.requested:
            logger.info("%s: placed %s of %s requested slots", self.kind.value, self.placed, self.requested)

        slots = self.slots.to_dict()
        return Layout(
            templateId=self.kind.value,
            templateName=self.name,
            layout=self.grid,
            slots=slots,
            entryExit=EntryExit(entry=entry, exit=exit),
            dimensions=Dimensions(rows=self.rows, cols=self.cols),
            totalSlots=len(slots),
            availableSlots=sum(1 for s in slots.values() if s.status == SlotStatus.AVAILABLE),
            carSlots=self._counters[VehicleType.CAR],
            bikeSlots=self._counters[VehicleType.BIKE],
        )


# ---------- 1. Drive-through grid ----------
@_validated
def generate_efficient_grid(car_slots: int, bike_slots: int,
                            price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    total = car_slots + bike_slots
    slots_per_row = 8
    aisles = math.ceil(total / (slots_per_row * 2))  # 2 parking rows per aisle
    rows = aisles * 4
    cols = slots_per_row + 4

    b = LayoutBuilder(GeneratorKind.EFFICIENT_GRID, "Drive-Through Layout",
                      rows, cols, car_slots, bike_slots, price_per_hour)
    for col in (0, 1):
        fill_col(b.grid, col, Cell.ENTRY)
    for col in (cols - 2, cols - 1):
        fill_col(b.grid, col, Cell.EXIT)

    for aisle in range(aisles):
        start = aisle * 4
        # top row faces down, bottom row faces up; lane in between
        for col in range(2, cols - 2):
            if b.done():
                break
            b.place(start, col, direction="down")
        for col in range(2, cols - 2):
            if b.done():
                break
            b.place(start + 2, col, direction="up")

    return b.build(entry="LEFT SIDE (Wide Entry)", exit="RIGHT SIDE (Wide Exit)")


# ---------- 2. One-way linear flow ----------
@_validated
def generate_linear_flow(car_slots: int, bike_slots: int,
                         price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    total = car_slots + bike_slots
    slots_per_aisle = 10
    aisles = math.ceil(total / slots_per_aisle)
    rows = aisles * 2 + 4
    cols = slots_per_aisle + 6

    b = LayoutBuilder(GeneratorKind.LINEAR_FLOW, "One-Way Mall Style",
                      rows, cols, car_slots, bike_slots, price_per_hour)
    for row in (0, 1):
        fill_row(b.grid, row, Cell.ENTRY)
    for row in (rows - 2, rows - 1):
        fill_row(b.grid, row, Cell.EXIT)
    for aisle in range(aisles):
        lane_row = 2 + aisle * 2 + 1
        b.road(lane_row, 1, Cell.SEPARATOR)  # direction marker
        b.road(lane_row, 2, Cell.SEPARATOR)

    for aisle in range(aisles):
        aisle_row = 2 + aisle * 2
        for col in range(3, cols - 3):
            if b.done():
                break
            b.place(aisle_row, col, direction="diagonal-exit")

    return b.build(entry="TOP ENTRANCE (Main Entry)", exit="BOTTOM EXIT (Main Exit)")


# ---------- 3. Circular / roundabout flow ----------
@_validated
def generate_circular_flow(car_slots: int, bike_slots: int,
                           price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    total = car_slots + bike_slots
    size = max(20, math.ceil(math.sqrt(total / 2)) + 8)
    rows = cols = size
    center_row, center_col = rows // 2, cols // 2
    outer_radius = size // 2 - 2
    inner_radius = size // 4

    b = LayoutBuilder(GeneratorKind.CIRCULAR_FLOW, "Roundabout Style",
                      rows, cols, car_slots, bike_slots, price_per_hour)

    # cardinal entry/exit points, each three cells wide
    for row, col, value in ((0, center_col, Cell.ENTRY), (rows - 1, center_col, Cell.EXIT)):
        for dc in (-1, 0, 1):
            b.road(row, col + dc, value)
    for row, col, value in ((center_row, 0, Cell.ENTRY), (center_row, cols - 1, Cell.EXIT)):
        for dr in (-1, 0, 1):
            b.road(row + dr, col, value)

    def on_ring(row: int, col: int) -> bool:
        return 2 <= row < rows - 2 and 2 <= col < cols - 2

    for angle in range(0, 360, 15):
        if b.done():
            break
        rad = math.radians(angle)
        row = _round_half_up(center_row + outer_radius * math.sin(rad))
        col = _round_half_up(center_col + outer_radius * math.cos(rad))
        if on_ring(row, col):
            b.place(row, col, direction="facing-center")

        if angle % 30 == 0 and not b.done():
            row = _round_half_up(center_row + (inner_radius + 3) * math.sin(rad))
            col = _round_half_up(center_col + (inner_radius + 3) * math.cos(rad))
            if on_ring(row, col):
                b.place(row, col, direction="facing-out")

    # central driving area
    for row in range(center_row - inner_radius, center_row + inner_radius + 1):
        for col in range(center_col - inner_radius, center_col + inner_radius + 1):
            if get_cell(b.grid, row, col) is None:
                continue
            if math.hypot(row - center_row, col - center_col) <= inner_radius and b.grid[row][col] != Cell.SLOT:
                b.grid[row][col] = Cell.LANE

    return b.build(entry="TOP & LEFT (Multiple Entries)", exit="BOTTOM & RIGHT (Multiple Exits)")


# ---------- 4. Separated zones (airport style) ----------
@_validated
def generate_separated_zones(car_slots: int, bike_slots: int,
                             price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    car_per_row, bike_per_row = 8, 12
    car_rows = math.ceil(car_slots / car_per_row)
    bike_rows = math.ceil(bike_slots / bike_per_row)
    rows = 3 + car_rows * 2 + 1 + bike_rows * 2 + 3
    cols = 16

    b = LayoutBuilder(GeneratorKind.SEPARATED_ZONES, "Airport Style Premium",
                      rows, cols, car_slots, bike_slots, price_per_hour)
    for row in (0, 1, 2):
        fill_row(b.grid, row, Cell.ENTRY)
    for row in (rows - 3, rows - 2, rows - 1):
        fill_row(b.grid, row, Cell.EXIT)

    # car zone: one parking row then one drive lane
    row = 3
    car_start = (cols - car_per_row) // 2
    for _ in range(car_rows):
        for col in range(car_start, car_start + car_per_row):
            b.place(row, col, VehicleType.CAR, zone="premium-car", direction="pull-through")
        row += 2

    fill_row(b.grid, row, Cell.SEPARATOR)
    row += 1

    # bike zone: narrower lanes, lane only between rows
    bike_start = (cols - bike_per_row) // 2
    for _ in range(bike_rows):
        for col in range(bike_start, bike_start + bike_per_row):
            b.place(row, col, VehicleType.BIKE, zone="bike-zone", direction="any-direction")
        row += 2

    return b.build(entry="MAIN ENTRANCE BOULEVARD (Top)", exit="MAIN EXIT BOULEVARD (Bottom)")


# ---------- 5. Mall style (legacy id) ----------
@_validated
def generate_mall_style(car_slots: int, bike_slots: int,
                        price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    total = car_slots + bike_slots
    aisle_gap = 2
    slots_per_aisle = min(12, math.ceil(total / 4))
    aisles = math.ceil(total / slots_per_aisle)
    rows = aisles * 3 + (aisles - 1) * aisle_gap + 1  # +1 access row at the bottom
    cols = slots_per_aisle + 4

    b = LayoutBuilder(GeneratorKind.MALL_STYLE, "Mall Style Layout",
                      rows, cols, car_slots, bike_slots, price_per_hour)
    mid = cols // 2
    b.road(rows - 1, mid - 1, Cell.ENTRY)
    b.road(rows - 1, mid, Cell.EXIT)

    for aisle in range(aisles):
        start = aisle * (3 + aisle_gap)
        for row in (start, start + 2):
            for col in range(1, cols - 1):
                if b.done():
                    break
                b.place(row, col)

    return b.build(entry="center-bottom", exit="center-bottom")


# ---------- 6. Compact urban (legacy id) ----------
@_validated
def generate_compact_urban(car_slots: int, bike_slots: int,
                           price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    total = car_slots + bike_slots
    cols = min(25, math.ceil(math.sqrt(total * 1.2)))
    rows = math.ceil(total / cols) + 1

    b = LayoutBuilder(GeneratorKind.COMPACT_URBAN, "Compact Urban Layout",
                      rows, cols, car_slots, bike_slots, price_per_hour)
    b.road(0, 0, Cell.ENTRY)
    b.road(rows - 1, cols - 1, Cell.EXIT)

    for row in range(rows):
        for col in range(cols):
            if b.done():
                break
            if row % 3 == 1 and col % 5 == 2:
                continue  # minimal circulation lane
            b.place(row, col)

    return b.build(entry="TOP-LEFT CORNER", exit="BOTTOM-RIGHT CORNER")


GENERATORS: Dict[GeneratorKind, Callable[..., Layout]] = {
    GeneratorKind.EFFICIENT_GRID: generate_efficient_grid,
    GeneratorKind.LINEAR_FLOW: generate_linear_flow,
    GeneratorKind.CIRCULAR_FLOW: generate_circular_flow,
    GeneratorKind.SEPARATED_ZONES: generate_separated_zones,
    GeneratorKind.MALL_STYLE: generate_mall_style,
    GeneratorKind.COMPACT_URBAN: generate_compact_urban,
}

_missing = set(GeneratorKind) - set(GENERATORS)
if _missing:
    raise RuntimeError(f"No generator registered for {sorted(k.value for k in _missing)}")


def generate(template_type, car_slots: int, bike_slots: int,
             price_per_hour: float = DEFAULT_PRICE_PER_HOUR) -> Layout:
    """Dispatch to the generator registered for ``template_type``."""
    try:
        kind = GeneratorKind(template_type)
    except ValueError:
        raise InputError(f"Unknown template type: {template_type!r}") from None
    validate_generation_input(car_slots, bike_slots, price_per_hour)
    return GENERATORS[kind](car_slots, bike_slots, price_per_hour)
