import logging
import threading
from datetime import timedelta

import pytest

from parkspace import booking, db, db_sql
from parkspace.errors import BookingNotFound, InputError, PropertyNotFound, SlotConflict, SlotNotFound
from parkspace.models import PropertyRow
from parkspace.schemas import BookingIn, ReserveResult, SlotStatus, VehicleType


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        return db
    db_sql.configure("sqlite://")
    return db_sql


@pytest.fixture
def prop(store, property_in):
    return store.create_property(property_in)


def _request(prop, slot, hours=2, **kw):
    return BookingIn(property=prop.id, slot=slot, hours=hours, **kw)


# ---- Properties ----
def test_create_and_get(store, prop):
    got = store.get_property(prop.id)
    assert got.name == "Riverside Lot"
    assert got.approved is False and got.active is True
    assert set(got.layoutData.slots) == {"0-0", "0-1"}
    assert store.get_property("missing") is None


def test_create_rejects_broken_layout(store, property_in):
    property_in.layoutData.layout[3][3] = 1
    with pytest.raises(InputError):
        store.create_property(property_in)


def test_approve_creates_legacy_slots_once(store, prop):
    approved = store.approve_property(prop.id, "owner-7")
    assert approved.approved is True and approved.owner == "owner-7"
    store.approve_property(prop.id, "owner-7")
    slots = store.list_legacy_slots(prop.id)
    assert sorted(s.slotNumber for s in slots) == ["Bike-1", "Car-1"]
    assert {s.type for s in slots} == {VehicleType.CAR, VehicleType.BIKE}

    with pytest.raises(PropertyNotFound):
        store.approve_property("missing", "owner-7")


def test_list_filters(store, prop, property_in):
    other = store.create_property(property_in.model_copy(update={"rental": "renter-2"}))
    store.approve_property(other.id, "owner")
    assert [p.id for p in store.list_properties(approved=True)] == [other.id]
    assert [p.id for p in store.list_properties(rental_id="renter-1")] == [prop.id]


def test_toggle_active(store, prop):
    assert store.set_active(prop.id, False).active is False
    assert store.get_property(prop.id).active is False


def test_delete_cascades(store, prop, now):
    store.approve_property(prop.id, "owner")
    booking.create_booking(store, _request(prop, "0-0"), "user-1", now)
    assert store.delete_property(prop.id) is True
    assert store.get_property(prop.id) is None
    assert store.list_legacy_slots(prop.id) == []
    assert store.list_bookings(property_id=prop.id) == []
    assert store.delete_property(prop.id) is False


def test_save_layout_replaces_wholesale(store, prop, layout_factory):
    new = layout_factory({(2, 2): VehicleType.CAR}, rows=3, cols=3)
    saved = store.save_layout(prop.id, new)
    assert list(saved.layoutData.slots) == ["2-2"]
    assert saved.layoutData.dimensions.rows == 3

    new.slots.clear()
    with pytest.raises(InputError):
        store.save_layout(prop.id, new)
    with pytest.raises(PropertyNotFound):
        store.save_layout("missing", layout_factory({}))


# ---- Reservation hook ----
def test_reserve_slot_results(store, prop):
    assert store.reserve_slot(prop.id, "0-0") is ReserveResult.SUCCESS
    assert store.reserve_slot(prop.id, "0-0") is ReserveResult.CONFLICT
    assert store.reserve_slot(prop.id, "7-7") is ReserveResult.NOT_FOUND
    assert store.reserve_slot("missing", "0-0") is ReserveResult.NOT_FOUND
    assert store.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.BOOKED

    assert store.release_slot(prop.id, "0-0") is True
    assert store.release_slot(prop.id, "0-0") is False
    assert store.reserve_slot(prop.id, "0-0") is ReserveResult.SUCCESS


def test_reserve_legacy_slot(store, property_in):
    prop = store.create_property(property_in.model_copy(update={"layoutData": None}))
    store.approve_property(prop.id, "owner")
    slot = store.list_legacy_slots(prop.id)[0]
    assert store.reserve_slot(prop.id, slot.id) is ReserveResult.SUCCESS
    assert store.reserve_slot(prop.id, slot.id) is ReserveResult.CONFLICT
    assert store.get_legacy_slot(slot.id).isBooked is True
    assert store.release_slot(prop.id, slot.id) is True


def test_concurrent_reservations_admit_one(property_in):
    prop = db.create_property(property_in)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(db.reserve_slot(prop.id, "0-1"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(ReserveResult.SUCCESS) == 1
    assert results.count(ReserveResult.CONFLICT) == 7


@pytest.fixture
def stale_layout_writes(monkeypatch):
    """Make the first `n` layout version guards miss, as if another writer got there first."""
    calls = []
    real_update = db_sql.update

    def install(n):
        def racing_update(table):
            calls.append(table)
            stmt = real_update(table)
            if len(calls) <= n:
                stmt = stmt.where(PropertyRow.layout_version == -1)
            return stmt

        monkeypatch.setattr(db_sql, "update", racing_update)
        return calls

    return install


def test_sql_reserve_retries_after_stale_version(property_in, stale_layout_writes):
    db_sql.configure("sqlite://")
    prop = db_sql.create_property(property_in)
    calls = stale_layout_writes(2)
    assert db_sql.reserve_slot(prop.id, "0-0") is ReserveResult.SUCCESS
    assert len(calls) == 3
    assert db_sql.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.BOOKED


def test_sql_reserve_gives_up_after_repeated_conflicts(property_in, stale_layout_writes, caplog):
    db_sql.configure("sqlite://")
    prop = db_sql.create_property(property_in)
    calls = stale_layout_writes(db_sql.RESERVE_ATTEMPTS)
    with caplog.at_level(logging.WARNING, logger="parkspace.db_sql"):
        assert db_sql.reserve_slot(prop.id, "0-0") is ReserveResult.CONFLICT
    assert len(calls) == db_sql.RESERVE_ATTEMPTS
    assert "Gave up updating slot 0-0" in caplog.text
    assert db_sql.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.AVAILABLE


# ---- Booking admission ----
def test_create_booking(store, prop, now):
    rec = booking.create_booking(store, _request(prop, "0-0", hours=1.5), "user-1", now)
    assert rec.id and rec.status == "confirmed"
    assert rec.user == "user-1"
    assert rec.endTime == now + timedelta(hours=1.5)
    assert rec.totalAmount == 45
    assert rec.slotInfo["slotNumber"] == "S1"
    assert store.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.BOOKED
    assert [b.id for b in store.list_bookings(user_id="user-1")] == [rec.id]


def test_second_booking_conflicts(store, prop, now):
    booking.create_booking(store, _request(prop, "0-0"), "user-1", now)
    with pytest.raises(SlotConflict, match="already booked"):
        booking.create_booking(store, _request(prop, "0-0"), "user-2", now)


def test_unknown_slot_and_property(store, prop, now):
    with pytest.raises(SlotNotFound):
        booking.create_booking(store, _request(prop, "9-9"), "user-1", now)
    with pytest.raises(PropertyNotFound):
        booking.create_booking(store, BookingIn(property="nope", slot="0-0", hours=1), "user-1", now)


def test_wrong_vehicle_type_conflicts(store, prop, now):
    with pytest.raises(SlotConflict, match="bikes only"):
        booking.create_booking(store, _request(prop, "0-1", vehicleType="car"), "user-1", now)


def test_unavailable_slot_conflicts(store, prop, now):
    layout = prop.layoutData.model_copy(deep=True)
    layout.slots["0-0"] = layout.slots["0-0"].model_copy(update={"status": SlotStatus.UNAVAILABLE})
    store.save_layout(prop.id, layout)
    with pytest.raises(SlotConflict, match="unavailable"):
        booking.create_booking(store, _request(prop, "0-0"), "user-1", now)


def test_inactive_property_rejects_bookings(store, prop, now):
    store.set_active(prop.id, False)
    with pytest.raises(SlotConflict):
        booking.create_booking(store, _request(prop, "0-0"), "user-1", now)


def test_booking_window_is_required(store, prop, now):
    with pytest.raises(InputError):
        booking.create_booking(store, BookingIn(property=prop.id, slot="0-0"), "user-1", now)
    with pytest.raises(InputError):
        booking.create_booking(
            store, BookingIn(property=prop.id, slot="0-0", startTime=now, endTime=now), "user-1", now,
        )
    assert store.reserve_slot(prop.id, "0-0") is ReserveResult.SUCCESS


def test_legacy_booking(store, property_in, now):
    prop = store.create_property(property_in.model_copy(update={"layoutData": None}))
    store.approve_property(prop.id, "owner")
    slot = next(s for s in store.list_legacy_slots(prop.id) if s.type is VehicleType.CAR)
    rec = booking.create_booking(store, _request(prop, slot.id, hours=1), "user-1", now)
    assert rec.totalAmount == 30
    assert store.get_legacy_slot(slot.id).isBooked is True


def test_cancel_frees_slot(store, prop, now):
    rec = booking.create_booking(store, _request(prop, "0-0"), "user-1", now)
    with pytest.raises(BookingNotFound):
        booking.cancel_booking(store, rec.id, "someone-else")

    cancelled = booking.cancel_booking(store, rec.id, "user-1")
    assert cancelled.status == "cancelled"
    assert store.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.AVAILABLE
    assert booking.cancel_booking(store, rec.id).status == "cancelled"
    booking.create_booking(store, _request(prop, "0-0"), "user-2", now)


def test_failed_write_releases_reservation(store, prop, now, monkeypatch):
    def broken(_booking):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "add_booking", broken)
    with pytest.raises(RuntimeError):
        booking.create_booking(store, _request(prop, "0-0"), "user-1", now)
    assert store.get_property(prop.id).layoutData.slots["0-0"].status is SlotStatus.AVAILABLE


def test_save_layout_keeps_booked_marks(store, prop):
    stale = prop.layoutData.model_copy(deep=True)
    booking.create_booking(store, _request(prop, "0-0"), "user-1")
    saved = store.save_layout(prop.id, stale)
    assert saved.layoutData.slots["0-0"].status is SlotStatus.BOOKED
    assert saved.layoutData.slots["0-1"].status is SlotStatus.AVAILABLE
    assert store.reserve_slot(prop.id, "0-0") is ReserveResult.CONFLICT
