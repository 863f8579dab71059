import pytest

from parkspace.dxf_import import import_dxf, parse_dxf_polylines, polylines_to_layout
from parkspace.errors import InputError
from parkspace.grid import check_bijection, SlotMap


def _dxf(*groups):
    return "\n".join(str(g) for pair in groups for g in pair) + "\n"


def test_lwpolyline_vertices():
    text = _dxf((0, "LWPOLYLINE"), (10, 1.5), (20, 2.0), (10, 3), (20, 4), (0, "EOF"))
    assert parse_dxf_polylines(text) == [[(1.5, 2.0), (3.0, 4.0)]]


def test_polyline_header_point_is_ignored():
    text = _dxf(
        (0, "POLYLINE"), (10, 0.0), (20, 0.0),
        (0, "VERTEX"), (10, 5), (20, 6),
        (0, "VERTEX"), (10, 7), (20, 8),
        (0, "SEQEND"),
        (0, "LINE"), (10, 99), (20, 99),
    )
    assert parse_dxf_polylines(text) == [[(5.0, 6.0), (7.0, 8.0)]]


def test_unparseable_numbers_are_skipped():
    text = _dxf((0, "LWPOLYLINE"), (10, "abc"), (20, 1), (10, 2), (20, "nan"), (10, 3), (20, 3))
    assert parse_dxf_polylines(text) == [[(3.0, 3.0)]]


def test_grid_is_clamped_and_consistent():
    layout = polylines_to_layout([[(0, 0), (100, 1), (50, 0.5)]], price_per_hour=12)
    assert layout.dimensions.cols == 20
    assert layout.dimensions.rows == 6
    assert layout.totalSlots == 3
    assert [s.slotNumber for s in layout.slots.values()] == ["S1", "S2", "S3"]
    assert check_bijection(layout.layout, SlotMap.from_dict(layout.slots)) == []


def test_points_in_the_same_cell_collapse():
    layout = polylines_to_layout([[(0, 0), (0.01, 0.01), (10, 10)]])
    assert layout.totalSlots == 2


def test_empty_drawing_is_an_input_error():
    with pytest.raises(InputError):
        import_dxf("0\nSECTION\n0\nEOF\n")
