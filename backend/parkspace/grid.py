# backend/parkspace/grid.py
"""
Grid model shared by the generators, the editor and the stores.

A grid is a plain ``List[List[int]]`` (rows x cols) so it can be persisted
as-is inside a layout document. Cell semantics are given by ``Cell``.
Slot metadata lives in a ``SlotMap`` keyed by ``(row, col)``; the persisted
form keys the same data by ``"row-col"`` strings.
"""
import logging
from enum import IntEnum
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional, Set, Tuple

from .schemas import Layout, Slot

logger = logging.getLogger(__name__)

Grid = List[List[int]]
Position = Tuple[int, int]


class Cell(IntEnum):
    LANE = 0
    SLOT = 1
    ENTRY = 2
    EXIT = 3
    SEPARATOR = 4


# ---- Cells ----
def new_grid(rows: int, cols: int, fill: int = Cell.LANE) -> Grid:
    return [[int(fill)] * cols for _ in range(rows)]


def copy_grid(grid: Grid) -> Grid:
    return [list(row) for row in grid]


def dimensions(grid: Grid) -> Tuple[int, int]:
    rows = len(grid)
    return rows, (len(grid[0]) if rows else 0)


def in_bounds(grid: Grid, row: int, col: int) -> bool:
    return 0 <= row < len(grid) and 0 <= col < len(grid[row])


def get_cell(grid: Grid, row: int, col: int) -> Optional[int]:
    """Cell value, or None when (row, col) is outside the grid."""
    if not in_bounds(grid, row, col):
        return None
    return grid[row][col]


def set_cell(grid: Grid, row: int, col: int, value: int) -> bool:
    """
    Write one cell. Out-of-bounds writes are skipped with a warning
    instead of raising, so one bad position never aborts a whole generation.
    """
    if not in_bounds(grid, row, col):
        rows, cols = dimensions(grid)
        logger.warning("set_cell: (%s, %s) outside %sx%s grid; skipped", row, col, rows, cols)
        return False
    grid[row][col] = int(value)
    return True


def fill_row(grid: Grid, row: int, value: int, start: int = 0, stop: Optional[int] = None) -> None:
    _, cols = dimensions(grid)
    for col in range(start, cols if stop is None else stop):
        set_cell(grid, row, col, value)


def fill_col(grid: Grid, col: int, value: int, start: int = 0, stop: Optional[int] = None) -> None:
    rows, _ = dimensions(grid)
    for row in range(start, rows if stop is None else stop):
        set_cell(grid, row, col, value)


def slot_cells(grid: Grid) -> Set[Position]:
    return {
        (r, c)
        for r, row in enumerate(grid)
        for c, value in enumerate(row)
        if value == Cell.SLOT
    }


# ---- Position ids ----
def slot_key(row: int, col: int) -> str:
    return f"{row}-{col}"


def parse_slot_key(key) -> Optional[Position]:
    """'2-4' -> (2, 4); None for anything that is not a row-col id."""
    if not isinstance(key, str):
        return None
    parts = key.split("-")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


# ---- Slot metadata ----
class SlotMap(MutableMapping):
    """(row, col) -> Slot. Insertion order is placement order."""

    def __init__(self, items: Optional[Mapping[Position, Slot]] = None):
        self._slots: Dict[Position, Slot] = {}
        if items:
            for pos, slot in items.items():
                self[pos] = slot

    def __getitem__(self, pos: Position) -> Slot:
        return self._slots[tuple(pos)]

    def __setitem__(self, pos: Position, slot: Slot) -> None:
        row, col = pos
        self._slots[(row, col)] = slot.model_copy(update={"id": slot_key(row, col)})

    def __delitem__(self, pos: Position) -> None:
        del self._slots[tuple(pos)]

    def __iter__(self) -> Iterator[Position]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self) -> str:
        return f"SlotMap({len(self._slots)} slots)"

    def to_dict(self) -> Dict[str, Slot]:
        return {slot_key(r, c): slot for (r, c), slot in self._slots.items()}

    @classmethod
    def from_dict(cls, slots: Mapping[str, Slot]) -> "SlotMap":
        out = cls()
        for key, slot in slots.items():
            pos = parse_slot_key(key)
            if pos is None:
                logger.warning("SlotMap.from_dict: ignoring slot with non-positional id %r", key)
                continue
            out[pos] = slot if isinstance(slot, Slot) else Slot.model_validate(slot)
        return out


def check_bijection(grid: Grid, slots: Mapping[Position, Slot]) -> List[str]:
    """
    Issues breaking the grid/metadata invariant: every SLOT cell has exactly
    one metadata entry and every entry points at an in-bounds SLOT cell.
    """
    issues = []
    cells = slot_cells(grid)
    keys = set(slots.keys())
    for r, c in sorted(cells - keys):
        issues.append(f"Slot cell {slot_key(r, c)} has no slot metadata")
    for r, c in sorted(keys - cells):
        if not in_bounds(grid, r, c):
            issues.append(f"Slot {slot_key(r, c)} is outside the grid")
        else:
            issues.append(f"Slot {slot_key(r, c)} points at a non-slot cell ({grid[r][c]})")
    return issues


def layout_issues(layout: Layout) -> List[str]:
    """check_bijection for a persisted layout, plus slot ids that are not positions."""
    issues = [f"Slot id {key!r} is not a row-col position" for key in layout.slots if parse_slot_key(key) is None]
    return issues + check_bijection(layout.layout, SlotMap.from_dict(layout.slots))
