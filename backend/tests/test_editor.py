import pytest

from parkspace.editor import EditorMode, LayoutEditor, blank_grid_size
from parkspace.errors import InputError
from parkspace.generators import generate
from parkspace.grid import Cell, slot_cells
from parkspace.schemas import SlotStatus, VehicleType

DXF = """0
SECTION
2
ENTITIES
0
LWPOLYLINE
8
PARKING
90
4
10
0.0
20
0.0
10
10.0
20
0.0
10
10.0
20
5.0
10
0.0
20
5.0
0
ENDSEC
0
EOF
"""


@pytest.fixture
def editor(two_slot_layout):
    return LayoutEditor.from_layout(two_slot_layout, price_per_hour=15)


def test_select_toggles_availability(editor):
    assert editor.click(0, 0) is True
    assert editor.slots[(0, 0)].status is SlotStatus.UNAVAILABLE
    editor.click(0, 0)
    assert editor.slots[(0, 0)].status is SlotStatus.AVAILABLE
    assert editor.click(3, 3) is False


def test_select_leaves_booked_slots_alone(editor):
    editor.slots[(0, 0)] = editor.slots[(0, 0)].model_copy(update={"status": SlotStatus.BOOKED})
    assert editor.click(0, 0) is False
    assert editor.slots[(0, 0)].status is SlotStatus.BOOKED


def test_add_creates_slot_with_current_vehicle_type(editor):
    editor.set_mode("add")
    editor.set_new_slot_vehicle_type("bike")
    assert editor.click(2, 2) is True
    slot = editor.slots[(2, 2)]
    assert editor.grid[2][2] == Cell.SLOT
    assert slot.slotNumber == "S3"
    assert slot.vehicleType is VehicleType.BIKE
    assert slot.status is SlotStatus.AVAILABLE
    assert slot.pricePerHour == 15
    assert slot.id == "2-2"


def test_add_does_not_overwrite(editor):
    editor.set_mode(EditorMode.ADD)
    before = editor.slots[(0, 0)]
    assert editor.click(0, 0) is False
    assert editor.slots[(0, 0)] == before


def test_delete_removes_metadata_and_cell(editor):
    editor.set_mode("delete")
    assert editor.click(0, 1) is True
    assert (0, 1) not in editor.slots
    assert editor.grid[0][1] == Cell.LANE
    assert editor.click(0, 1) is False


def test_move_relocates_and_returns_to_select(editor):
    editor.set_mode("move")
    assert editor.click(0, 0) is False  # source picked
    assert editor.move_source == (0, 0)
    assert editor.click(3, 1) is True
    assert (0, 0) not in editor.slots
    assert editor.slots[(3, 1)].slotNumber == "S1"
    assert editor.slots[(3, 1)].id == "3-1"
    assert editor.grid[0][0] == Cell.LANE and editor.grid[3][1] == Cell.SLOT
    assert editor.move_source is None
    assert editor.mode is EditorMode.SELECT


def test_move_onto_occupied_cell_is_rejected(editor):
    before = editor.slots.to_dict()
    editor.set_mode("move")
    editor.click(0, 0)
    assert editor.click(0, 1) is False
    assert editor.slots.to_dict() == before
    assert editor.move_source == (0, 0)
    assert editor.mode is EditorMode.MOVE


def test_move_from_empty_cell_picks_nothing(editor):
    editor.set_mode("move")
    editor.click(2, 2)
    assert editor.move_source is None


def test_mode_switch_clears_pending_move(editor):
    editor.set_mode("move")
    editor.click(0, 0)
    editor.set_mode("select")
    assert editor.move_source is None


def test_out_of_bounds_click_is_ignored(editor):
    editor.set_mode("add")
    assert editor.click(9, 9) is False
    with pytest.raises(InputError):
        editor.click("1", 0)


def test_toggle_vehicle_type_and_filter(editor):
    assert editor.toggle_vehicle_type(0, 0) is True
    assert editor.slots[(0, 0)].vehicleType is VehicleType.BIKE
    assert set(editor.filtered_slots("bike")) == {"0-0", "0-1"}
    assert editor.filtered_slots("car") == {}
    assert len(editor.filtered_slots("all")) == 2


@pytest.mark.parametrize("cars,bikes,size", [(0, 0, (6, 8)), (10, 8, (12, 8)), (40, 0, (40, 14))])
def test_blank_grid_size(cars, bikes, size):
    assert blank_grid_size(cars, bikes) == size


def test_reset_blank_is_a_full_reset(editor):
    editor.set_mode("move")
    editor.click(0, 0)
    editor.reset_blank(10, 8)
    assert len(editor.slots) == 0
    assert slot_cells(editor.grid) == set()
    assert (len(editor.grid), len(editor.grid[0])) == (12, 8)
    assert editor.move_source is None
    assert editor.to_layout().templateName == "Manual Layout"


def test_to_layout_recomputes_totals(editor):
    editor.click(0, 1)  # bike -> unavailable
    editor.set_mode("add")
    editor.click(1, 1)
    layout = editor.to_layout()
    assert layout.totalSlots == 3
    assert layout.availableSlots == 2
    assert (layout.carSlots, layout.bikeSlots) == (2, 1)
    assert layout.dimensions.rows == 4
    assert set(layout.slots) == {"0-0", "0-1", "1-1"}


def test_to_layout_keeps_generated_template_name():
    editor = LayoutEditor.from_layout(generate("linear-flow", 4, 2))
    assert editor.to_layout().templateName == "One-Way Mall Style"


def test_to_layout_refuses_broken_grid(editor):
    editor.grid[3][3] = Cell.SLOT
    with pytest.raises(InputError, match="3-3 has no slot metadata"):
        editor.to_layout()


def test_dxf_import_replaces_state(editor):
    assert editor.import_dxf(DXF) is True
    layout = editor.to_layout()
    assert layout.templateId == "dxf-import"
    assert layout.templateName == "DXF Imported Layout"
    assert layout.totalSlots == 4
    assert all(s.vehicleType is VehicleType.CAR for s in layout.slots.values())


def test_dxf_without_polylines_falls_back(editor):
    fallback = generate("efficient-grid", 3, 0)
    assert editor.import_dxf("0\nEOF\n", fallback=fallback) is False
    assert editor.template_id == "efficient-grid"
    with pytest.raises(InputError):
        editor.import_dxf("0\nEOF\n")


def test_blank_editor_starts_empty():
    editor = LayoutEditor.blank(8, 4, price_per_hour=12)
    assert (len(editor.grid), len(editor.grid[0])) == (9, 8)
    assert editor.mode is EditorMode.SELECT
    editor.set_mode("add")
    editor.click(0, 0)
    assert editor.slots[(0, 0)].pricePerHour == 12
