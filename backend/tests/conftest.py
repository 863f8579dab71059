from datetime import datetime, timezone

import pytest

from parkspace import db
from parkspace.grid import Cell, SlotMap, new_grid
from parkspace.schemas import Dimensions, Layout, PropertyIn, Slot, VehicleType


@pytest.fixture(autouse=True)
def clean_store():
    db.clear()
    yield
    db.clear()


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def make_layout(positions, rows=4, cols=4, **slot_fields):
    """Small hand-built layout: positions is {(row, col): vehicle type}."""
    grid = new_grid(rows, cols)
    slots = SlotMap()
    for i, ((r, c), vt) in enumerate(positions.items()):
        grid[r][c] = Cell.SLOT
        slots[(r, c)] = Slot(slotNumber=f"S{i + 1}", vehicleType=vt, **slot_fields)
    cars = sum(1 for vt in positions.values() if vt == VehicleType.CAR)
    return Layout(
        templateId="manual-blank",
        templateName="Manual Layout",
        layout=grid,
        slots=slots.to_dict(),
        dimensions=Dimensions(rows=rows, cols=cols),
        totalSlots=len(positions),
        availableSlots=len(positions),
        carSlots=cars,
        bikeSlots=len(positions) - cars,
    )


@pytest.fixture
def layout_factory():
    return make_layout


@pytest.fixture
def two_slot_layout():
    return make_layout({(0, 0): VehicleType.CAR, (0, 1): VehicleType.BIKE})


@pytest.fixture
def property_in(two_slot_layout):
    return PropertyIn(
        rental="renter-1",
        name="Riverside Lot",
        address="1 River Rd",
        carSlots=1,
        bikeSlots=1,
        pricePerHour=30,
        layoutData=two_slot_layout,
    )
