import logging

import pytest

from parkspace import catalog, generators
from parkspace.errors import InputError
from parkspace.generators import GeneratorKind


def test_one_layout_per_user_facing_category():
    layouts = catalog.generate_all_templates(12, 6, 40)
    assert [l.templateId for l in layouts] == [
        "efficient-grid", "linear-flow", "circular-flow", "separated-zones",
    ]
    assert all(l.slots for l in layouts)


def test_legacy_generators_are_not_listed_but_resolvable():
    ids = {c.id for c in catalog.TEMPLATE_CATEGORIES}
    assert GeneratorKind.MALL_STYLE not in ids
    assert GeneratorKind.COMPACT_URBAN not in ids
    assert catalog.get_category("mall-style").legacy is True
    assert catalog.get_category(GeneratorKind.LINEAR_FLOW).name == "One-Way Mall Style"
    assert catalog.get_category("nope") is None


def test_failing_generator_is_dropped(monkeypatch, caplog):
    def boom(car_slots, bike_slots, price_per_hour=20):
        raise RuntimeError("geometry exploded")

    monkeypatch.setitem(generators.GENERATORS, GeneratorKind.CIRCULAR_FLOW, boom)
    with caplog.at_level(logging.ERROR, logger="parkspace.catalog"):
        layouts = catalog.generate_all_templates(10, 5)

    assert len(layouts) == len(catalog.TEMPLATE_CATEGORIES) - 1
    assert "circular-flow" not in [l.templateId for l in layouts]
    assert "geometry exploded" in caplog.text


def test_zero_slots_rejected_up_front():
    with pytest.raises(InputError):
        catalog.generate_all_templates(0, 0)


def test_category_to_dict():
    d = catalog.TEMPLATE_CATEGORIES[0].to_dict()
    assert d == {
        "id": "efficient-grid",
        "name": "Drive-Through Easy",
        "description": "Every car can exit easily! No one gets trapped in the middle.",
        "bestFor": "Busy areas where cars need quick exit",
        "legacy": False,
    }
