# backend/tests/services/test_booking_gate.py
"""
Tests for BookingGate.

The race test books one slot from two threads, each with its own session on
a file-backed SQLite database.
"""

from datetime import timedelta

import pytest

from nakksha.core.exceptions import (
    NotFoundException,
    SlotAlreadyBookedException,
    ValidationException,
)
from nakksha.core.slot_times import day_of_week
from nakksha.core.timezone_utils import get_today
from nakksha.core.ulid_helper import generate_ulid
from nakksha.models import AvailabilitySlot, Consultant
from nakksha.services.booking_gate import BookingGate


@pytest.fixture
def gate(db, cache):
    return BookingGate(db, cache)


class TestBook:
    def test_book_sets_session(self, gate, consultant, today, add_slot, slots_of):
        slot = add_slot(consultant, today + timedelta(days=1))

        result = gate.set_booked_status([slot.id], consultant.id, True, session_id="session-1")

        assert result == {"updated_count": 1, "slot_ids": [slot.id]}
        booked = slots_of(consultant)[0]
        assert booked.is_booked is True
        assert booked.session_id == "session-1"

    def test_duplicate_ids_count_once(self, gate, consultant, today, add_slot):
        slot = add_slot(consultant, today + timedelta(days=1))
        result = gate.set_booked_status([slot.id, slot.id], consultant.id, True)
        assert result["updated_count"] == 1

    def test_already_booked_conflicts(self, gate, consultant, today, add_slot):
        slot = add_slot(consultant, today + timedelta(days=1), is_booked=True, session_id="s-1")

        with pytest.raises(SlotAlreadyBookedException) as exc_info:
            gate.set_booked_status([slot.id], consultant.id, True, session_id="s-2")

        assert exc_info.value.details == {"slot_ids": [slot.id]}

    def test_partial_conflict_books_nothing(self, gate, consultant, today, add_slot, slots_of):
        free = add_slot(consultant, today + timedelta(days=1), "09:00", "10:00")
        taken = add_slot(consultant, today + timedelta(days=1), "10:00", "11:00", is_booked=True)

        with pytest.raises(SlotAlreadyBookedException) as exc_info:
            gate.set_booked_status([free.id, taken.id], consultant.id, True)

        assert exc_info.value.details == {"slot_ids": [taken.id]}
        states = {s.id: s.is_booked for s in slots_of(consultant)}
        assert states == {free.id: False, taken.id: True}

    def test_blocked_slot_cannot_be_booked(self, gate, consultant, today, add_slot):
        slot = add_slot(consultant, today + timedelta(days=1), is_blocked=True)

        with pytest.raises(ValidationException, match="blocked"):
            gate.set_booked_status([slot.id], consultant.id, True)

    def test_foreign_slot_rejected(self, gate, consultant, other_consultant, today, add_slot, slots_of):
        slot = add_slot(other_consultant, today + timedelta(days=1))

        with pytest.raises(ValidationException, match="do not belong to you"):
            gate.set_booked_status([slot.id], consultant.id, True)

        assert slots_of(other_consultant)[0].is_booked is False

    def test_empty_request_rejected(self, gate, consultant):
        with pytest.raises(ValidationException):
            gate.set_booked_status([], consultant.id, True)


def test_release_makes_slot_bookable_again(gate, consultant, today, add_slot, slots_of):
    slot = add_slot(consultant, today + timedelta(days=1), is_booked=True, session_id="s-1")

    result = gate.set_booked_status([slot.id], consultant.id, False)

    assert result["updated_count"] == 1
    released = slots_of(consultant)[0]
    assert (released.is_booked, released.session_id) == (False, None)
    assert gate.is_slot_bookable(slot.id) is True


def test_booking_invalidates_public_listing(gate, cache, consultant, today, add_slot):
    slot = add_slot(consultant, today + timedelta(days=1))
    key = cache.public_slots_key(consultant.slug, None, None, None, 100, 0)
    cache.set(key, {"slots": ["stale"]})

    gate.set_booked_status([slot.id], consultant.id, True)

    assert cache.get(key) is None


class TestLookup:
    def test_find_bookable_slot(self, gate, consultant, today, add_slot):
        slot_date = today + timedelta(days=1)
        slot = add_slot(consultant, slot_date, "14:00", "15:00")

        assert gate.find_bookable_slot(consultant.id, "PERSONAL", slot_date, "14:00").id == slot.id
        with pytest.raises(NotFoundException, match="not available for booking"):
            gate.find_bookable_slot(consultant.id, "PERSONAL", slot_date, "16:00")

    def test_is_slot_bookable(self, gate, consultant, today, add_slot):
        booked = add_slot(consultant, today + timedelta(days=1), "09:00", "10:00", is_booked=True)
        blocked = add_slot(consultant, today + timedelta(days=1), "10:00", "11:00", is_blocked=True)

        assert gate.is_slot_bookable(booked.id) is False
        assert gate.is_slot_bookable(blocked.id) is False
        assert gate.is_slot_bookable("01HZZZZZZZZZZZZZZZZZZZZZZZ") is False


class TestDeleteSlot:
    def test_delete_open_slot(self, gate, consultant, today, add_slot, slots_of):
        slot = add_slot(consultant, today + timedelta(days=1))
        assert gate.delete_slot(slot.id, consultant.id) == {"deleted": True, "slot_id": slot.id}
        assert slots_of(consultant) == []

    def test_booked_slot_cannot_be_deleted(self, gate, consultant, today, add_slot, slots_of):
        slot = add_slot(consultant, today + timedelta(days=1), is_booked=True)
        with pytest.raises(ValidationException, match="Cannot delete a booked availability slot"):
            gate.delete_slot(slot.id, consultant.id)
        assert len(slots_of(consultant)) == 1

    def test_foreign_slot_not_found(self, gate, consultant, other_consultant, today, add_slot):
        slot = add_slot(other_consultant, today + timedelta(days=1))
        with pytest.raises(NotFoundException, match="Availability slot not found"):
            gate.delete_slot(slot.id, consultant.id)


def test_concurrent_bookings_exactly_one_wins(file_session_factory, run_concurrently):
    setup = file_session_factory()
    consultant = Consultant(id=generate_ulid(), slug="race", first_name="Race", timezone="UTC")
    setup.add(consultant)
    setup.commit()

    slot_date = get_today("UTC") + timedelta(days=1)
    slot = AvailabilitySlot(
        id=generate_ulid(),
        consultant_id=consultant.id,
        session_type="PERSONAL",
        date=slot_date,
        day_of_week=day_of_week(slot_date),
        start_time="14:00",
        end_time="15:00",
        is_booked=False,
        is_blocked=False,
    )
    setup.add(slot)
    setup.commit()
    setup.close()

    session_a, session_b = file_session_factory(), file_session_factory()
    try:
        gate_a, gate_b = BookingGate(session_a), BookingGate(session_b)

        results = run_concurrently(
            [
                lambda: gate_a.set_booked_status([slot.id], consultant.id, True, "session-a"),
                lambda: gate_b.set_booked_status([slot.id], consultant.id, True, "session-b"),
            ]
        )

        wins = [r for r in results if isinstance(r, dict)]
        losses = [r for r in results if isinstance(r, SlotAlreadyBookedException)]
        assert len(wins) == 1, results
        assert len(losses) == 1, results
        assert wins[0]["updated_count"] == 1

        winner = "session-a" if results[0] is wins[0] else "session-b"
        check = file_session_factory()
        stored = check.get(AvailabilitySlot, slot.id)
        assert (stored.is_booked, stored.session_id) == (True, winner)
        check.close()
    finally:
        session_a.close()
        session_b.close()
