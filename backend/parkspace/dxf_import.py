# backend/parkspace/dxf_import.py
"""
Minimal ASCII DXF reader: pulls LWPOLYLINE / POLYLINE vertices out of a
drawing and rasterises them onto a slot grid for the layout editor.
"""
import logging
import math
from typing import Iterator, List, Optional, Tuple

from .errors import InputError
from .grid import Cell, SlotMap, new_grid
from .schemas import Dimensions, EntryExit, Layout, Slot, SlotStatus, VehicleType

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

POLYLINE_ENTITIES = {"LWPOLYLINE", "POLYLINE"}
MIN_SIDE, MAX_SIDE = 6, 20
TEMPLATE_ID = "dxf-import"
TEMPLATE_NAME = "DXF Imported Layout"


def _pairs(text: str) -> Iterator[Tuple[str, str]]:
    lines = text.splitlines()
    for i in range(0, len(lines) - 1, 2):
        yield lines[i].strip(), lines[i + 1].strip()


def _to_float(value: str) -> Optional[float]:
    try:
        x = float(value)
    except ValueError:
        return None
    return x if math.isfinite(x) else None


def parse_dxf_polylines(text: str) -> List[List[Point]]:
    """Vertex lists, one per polyline, in drawing order."""
    polylines: List[List[Point]] = []
    current: Optional[List[Point]] = None
    pending_x: Optional[float] = None
    # POLYLINE headers carry a dummy 10/20 point; vertices follow as VERTEX entities
    accepting = False

    def close():
        if current:
            polylines.append(current)

    for code, value in _pairs(text):
        if code == "0":
            if value in POLYLINE_ENTITIES:
                close()
                current, pending_x = [], None
                accepting = value == "LWPOLYLINE"
            elif value == "VERTEX" and current is not None:
                pending_x, accepting = None, True
            else:
                close()
                current, pending_x = None, None
            continue
        if current is None or not accepting:
            continue
        if code == "10":
            pending_x = _to_float(value)
        elif code == "20" and pending_x is not None:
            y = _to_float(value)
            if y is not None:
                current.append((pending_x, y))
            pending_x = None
    close()

    logger.debug("parse_dxf_polylines: %s polylines", len(polylines))
    return polylines


def _side(extent: float, other: float) -> int:
    return min(MAX_SIDE, max(MIN_SIDE, round(extent / max(1.0, other) * 8)))


def polylines_to_layout(polylines: List[List[Point]], price_per_hour: Optional[float] = None) -> Layout:
    """
    Scale every vertex into a bounding-box grid and mark the cell it lands
    on as a car slot (first vertex per cell wins). Raises InputError when
    there is nothing to place.
    """
    points = [p for poly in polylines for p in poly]
    if not points:
        raise InputError("DXF drawing has no polyline vertices")

    xs = [x for x, _ in points]
    ys = [y for _, y in points]
    min_x, min_y = min(xs), min(ys)
    width, height = max(xs) - min_x, max(ys) - min_y
    cols = _side(width, height)
    rows = _side(height, width)

    grid = new_grid(rows, cols)
    slots = SlotMap()
    for x, y in points:
        col = math.floor((x - min_x) / (width or 1) * (cols - 1))
        row = math.floor((y - min_y) / (height or 1) * (rows - 1))
        if grid[row][col] != Cell.LANE:
            continue
        grid[row][col] = Cell.SLOT
        slots[(row, col)] = Slot(
            slotNumber=f"S{len(slots) + 1}",
            status=SlotStatus.AVAILABLE,
            vehicleType=VehicleType.CAR,
            pricePerHour=price_per_hour,
        )

    total = len(slots)
    logger.info("DXF import: %s vertices -> %s slots on %sx%s grid", len(points), total, rows, cols)
    return Layout(
        templateId=TEMPLATE_ID,
        templateName=TEMPLATE_NAME,
        layout=grid,
        slots=slots.to_dict(),
        entryExit=EntryExit(),
        dimensions=Dimensions(rows=rows, cols=cols),
        totalSlots=total,
        availableSlots=total,
        carSlots=total,
        bikeSlots=0,
    )


def import_dxf(text: str, price_per_hour: Optional[float] = None) -> Layout:
    return polylines_to_layout(parse_dxf_polylines(text), price_per_hour)
