# backend/tests/services/test_pattern_service.py
"""
Tests for PatternService: validation, reconciliation and bulk replace.

Run with: pytest backend/tests/services/test_pattern_service.py -v
"""

from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import MagicMock, call, patch

import pytest

from nakksha.core.exceptions import (
    NotFoundException,
    PatternUpdateInProgressException,
    ServiceException,
    ValidationException,
)
from nakksha.core.slot_times import day_of_week
from nakksha.core.ulid_helper import generate_ulid
from nakksha.models import Consultant, WeeklyAvailabilityPattern
from nakksha.schemas.weekly_pattern import WeeklyPatternCreate, WeeklyPatternUpdate
from nakksha.services.cache_service import CacheService
from nakksha.services.pattern_service import PatternService
from nakksha.services.slot_generator import SlotGenerator
from nakksha.services.slot_manager import SlotManager


def _create(day=3, start="14:00", end="15:00", session_type="PERSONAL", **extra):
    return WeeklyPatternCreate(
        session_type=session_type,
        day_of_week=day,
        start_time=start,
        end_time=end,
        timezone="UTC",
        **extra,
    )


@pytest.fixture
def service(db, cache):
    return PatternService(db, cache)


@pytest.fixture
def generate(db, cache):
    generator = SlotGenerator(db, cache)

    def _generate(consultant, start, days=13):
        return generator.generate_slots(consultant.id, start, start + timedelta(days=days))

    return _generate


class TestCreatePattern:
    def test_create_normalizes_and_persists(self, service, consultant):
        pattern = service.create_pattern(
            consultant.id,
            WeeklyPatternCreate(
                session_type="PERSONAL", day_of_week=1, start_time="9:00", end_time="10:30"
            ),
        )
        assert pattern.id
        assert (pattern.start_time, pattern.end_time) == ("09:00", "10:30")
        assert pattern.is_active is True

    def test_overlap_rejected(self, service, consultant):
        service.create_pattern(consultant.id, _create(start="09:00", end="10:00"))

        with pytest.raises(ValidationException, match="Time slot overlaps with existing pattern"):
            service.create_pattern(consultant.id, _create(start="09:30", end="10:30"))

    def test_adjacent_interval_accepted(self, service, consultant):
        service.create_pattern(consultant.id, _create(start="09:00", end="10:00"))
        adjacent = service.create_pattern(consultant.id, _create(start="10:00", end="11:00"))
        assert adjacent.start_time == "10:00"

    def test_same_time_on_other_day_or_type_accepted(self, service, consultant):
        service.create_pattern(consultant.id, _create(day=3))
        service.create_pattern(consultant.id, _create(day=4))
        service.create_pattern(consultant.id, _create(day=3, session_type="WEBINAR"))
        assert service.list_patterns(consultant.id)["total_patterns"] == 3

    def test_other_consultants_patterns_do_not_conflict(self, service, consultant, other_consultant):
        service.create_pattern(other_consultant.id, _create())
        assert service.create_pattern(consultant.id, _create()).consultant_id == consultant.id

    def test_schema_rejects_bad_input(self):
        with pytest.raises(ValueError):
            _create(start="10:00", end="09:00")
        with pytest.raises(ValueError):
            _create(day=7)
        with pytest.raises(ValueError):
            _create(start="25:00")


class TestListPatterns:
    def test_counts_and_cache(self, service, cache, consultant, add_pattern):
        add_pattern(consultant, 1, "09:00", "10:00")
        add_pattern(consultant, 2, "09:00", "10:00", is_active=False)

        result = service.list_patterns(consultant.id)

        assert result["total_patterns"] == 2
        assert result["active_patterns"] == 1
        assert cache.get(cache.patterns_key(consultant.id)) == result

    def test_mutation_invalidates_cached_list(self, service, consultant):
        assert service.list_patterns(consultant.id)["total_patterns"] == 0
        service.create_pattern(consultant.id, _create())
        assert service.list_patterns(consultant.id)["total_patterns"] == 1


class TestDeletePattern:
    def test_booked_slot_survives_and_sibling_is_blocked(
        self, service, consultant, today, add_pattern, next_weekday, generate, slots_of
    ):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        start = next_weekday(today + timedelta(days=1), 3)
        generate(consultant, start)
        first, second = slots_of(consultant)
        first.is_booked = True
        first.session_id = "session-1"
        service.db.commit()

        result = service.delete_pattern(pattern.id, consultant.id)

        assert result == {"deleted": True, "pattern_id": pattern.id, "slots_blocked": 1}
        booked, sibling = slots_of(consultant)
        assert (booked.is_booked, booked.is_blocked, booked.session_id) == (True, False, "session-1")
        assert (sibling.is_booked, sibling.is_blocked) == (False, True)
        assert service.db.get(WeeklyAvailabilityPattern, pattern.id) is None

    def test_weekday_isolation(
        self, service, consultant, today, add_pattern, next_weekday, generate, slots_of
    ):
        monday = add_pattern(consultant, 1, "10:00", "11:00")
        add_pattern(consultant, 3, "10:00", "11:00")
        generate(consultant, today + timedelta(days=1))

        service.delete_pattern(monday.id, consultant.id)

        for slot in slots_of(consultant):
            assert slot.is_blocked is (slot.day_of_week == 1)

    def test_past_slots_are_not_touched(
        self, service, consultant, today, add_pattern, add_slot, slots_of
    ):
        past = today - timedelta(days=7)
        pattern = add_pattern(consultant, day_of_week(past), "14:00", "15:00")
        add_slot(consultant, past)

        service.delete_pattern(pattern.id, consultant.id)

        assert slots_of(consultant)[0].is_blocked is False

    def test_unknown_or_foreign_pattern(self, service, consultant, other_consultant, add_pattern):
        foreign = add_pattern(other_consultant, 3, "14:00", "15:00")
        with pytest.raises(NotFoundException):
            service.delete_pattern(foreign.id, consultant.id)
        with pytest.raises(NotFoundException):
            service.delete_pattern("01HZZZZZZZZZZZZZZZZZZZZZZZ", consultant.id)


class TestUpdatePattern:
    def test_time_change_blocks_old_key(
        self, service, consultant, today, add_pattern, generate, slots_of
    ):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        generate(consultant, today + timedelta(days=1))

        updated = service.update_pattern(
            pattern.id, consultant.id, WeeklyPatternUpdate(start_time="16:00", end_time="17:00")
        )

        assert (updated.start_time, updated.end_time) == ("16:00", "17:00")
        assert all(s.is_blocked for s in slots_of(consultant))

        generate(consultant, today + timedelta(days=1))
        open_slots = [s for s in slots_of(consultant) if not s.is_blocked]
        assert {s.start_time for s in open_slots} == {"16:00"}

    def test_deactivation_blocks_slots(
        self, service, consultant, today, add_pattern, generate, slots_of
    ):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        generate(consultant, today + timedelta(days=1))

        service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(is_active=False))

        assert all(s.is_blocked for s in slots_of(consultant))

    def test_end_time_change_retimes_open_slots(
        self, service, consultant, today, add_pattern, next_weekday, generate, slots_of
    ):
        pattern = add_pattern(consultant, 3, "14:00", "16:00")
        generate(consultant, next_weekday(today + timedelta(days=1), 3))
        booked = slots_of(consultant)[0]
        booked.is_booked = True
        booked.session_id = "session-1"
        service.db.commit()

        service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(end_time="15:00"))
        generate(consultant, next_weekday(today + timedelta(days=1), 3))

        first, *rest = slots_of(consultant)
        assert (first.end_time, first.is_booked) == ("16:00", True)
        assert rest
        assert {(s.end_time, s.is_blocked) for s in rest} == {("15:00", False)}

    def test_merged_times_validated(self, service, consultant, add_pattern):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        with pytest.raises(ValidationException, match="End time must be after start time"):
            service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(start_time="15:30"))

    def test_update_into_overlap_rejected(self, service, consultant, add_pattern):
        add_pattern(consultant, 3, "09:00", "10:00")
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        with pytest.raises(ValidationException, match="overlaps"):
            service.update_pattern(
                pattern.id,
                consultant.id,
                WeeklyPatternUpdate(start_time="09:30", end_time="10:30"),
            )

    def test_update_may_overlap_its_own_old_interval(self, service, consultant, add_pattern):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        updated = service.update_pattern(
            pattern.id, consultant.id, WeeklyPatternUpdate(start_time="14:30", end_time="15:30")
        )
        assert updated.start_time == "14:30"


def test_re_adding_pattern_restores_blocked_slots(
    service, consultant, today, add_pattern, generate, slots_of
):
    pattern = add_pattern(consultant, 3, "14:00", "15:00")
    generate(consultant, today + timedelta(days=1))
    service.delete_pattern(pattern.id, consultant.id)
    assert all(s.is_blocked for s in slots_of(consultant))

    service.create_pattern(consultant.id, _create())

    assert not any(s.is_blocked for s in slots_of(consultant))


def test_reactivation_keeps_manual_blocks(
    service, db, cache, consultant, today, add_pattern, next_weekday, generate, slots_of
):
    pattern = add_pattern(consultant, 3, "14:00", "15:00")
    generate(consultant, next_weekday(today + timedelta(days=1), 3))
    manual = slots_of(consultant)[0]
    SlotManager(db, cache).set_blocked_status([manual.id], consultant.id, True)

    service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(is_active=False))
    first, second = slots_of(consultant)
    assert (first.is_blocked, first.blocked_reason) == (True, "manual")
    assert (second.is_blocked, second.blocked_reason) == (True, "pattern_removed")

    service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(is_active=True))

    first, second = slots_of(consultant)
    assert (first.is_blocked, first.blocked_reason) == (True, "manual")
    assert (second.is_blocked, second.blocked_reason) == (False, None)


class TestBulkReplace:
    def test_replaces_patterns_and_generates(
        self, service, consultant, today, add_pattern, next_weekday, generate, slots_of
    ):
        add_pattern(consultant, 1, "10:00", "11:00")
        generate(consultant, today + timedelta(days=1))

        result = service.bulk_replace(
            consultant.id,
            [_create(day=3, start="14:00", end="15:00"), _create(day=5, start="09:00", end="10:00")],
            generate_days=13,
        )

        assert result["total_created"] == 2
        assert result["slots_blocked"] >= 1
        assert result["slots_created"] >= 2
        assert result["generation_error"] is None
        remaining = service.list_patterns(consultant.id)["patterns"]
        assert [(p["day_of_week"], p["start_time"]) for p in remaining] == [(3, "14:00"), (5, "09:00")]
        for slot in slots_of(consultant):
            assert slot.is_blocked is (slot.day_of_week == 1)

    def test_empty_set_clears_everything(
        self, service, consultant, today, add_pattern, generate, slots_of
    ):
        add_pattern(consultant, 3, "14:00", "15:00")
        generate(consultant, today + timedelta(days=1))

        result = service.bulk_replace(consultant.id, [])

        assert result["total_created"] == 0
        assert result["slots_created"] == 0
        assert all(s.is_blocked for s in slots_of(consultant))

    def test_overlap_within_set_rejected_before_any_write(self, service, consultant, add_pattern):
        add_pattern(consultant, 1, "10:00", "11:00")

        with pytest.raises(ValidationException, match="overlaps"):
            service.bulk_replace(
                consultant.id,
                [_create(start="09:00", end="10:00"), _create(start="09:30", end="10:30")],
            )

        assert service.list_patterns(consultant.id)["total_patterns"] == 1

    def test_lock_held_elsewhere(self, service, consultant):
        @contextmanager
        def held(_consultant_id):
            yield False

        with patch("nakksha.services.pattern_service.pattern_lock", held):
            with pytest.raises(PatternUpdateInProgressException):
                service.bulk_replace(consultant.id, [_create()])

    def test_generation_failure_keeps_patterns(self, db, cache, consultant):
        generator = MagicMock(spec=SlotGenerator)
        generator.generate_slots.side_effect = ServiceException("Failed to generate availability slots")
        service = PatternService(db, cache, generator=generator)

        result = service.bulk_replace(consultant.id, [_create()])

        assert result["total_created"] == 1
        assert result["generation_error"] == "Failed to generate availability slots"
        assert service.list_patterns(consultant.id)["total_patterns"] == 1

    def test_unchanged_key_is_not_blocked(
        self, service, consultant, today, add_pattern, generate, slots_of
    ):
        add_pattern(consultant, 3, "14:00", "15:00")
        generate(consultant, today + timedelta(days=1))

        result = service.bulk_replace(consultant.id, [_create()], generate_days=0)

        assert result["slots_blocked"] == 0
        assert not any(s.is_blocked for s in slots_of(consultant))


class TestConcurrentMutations:
    def test_every_mutation_locks_the_consultant_first(self, service, consultant, add_pattern):
        pattern = add_pattern(consultant, 3, "14:00", "15:00")
        repo = service.consultant_repository

        with patch.object(repo, "lock_for_update", wraps=repo.lock_for_update) as lock:
            service.create_pattern(consultant.id, _create(day=4))
            service.update_pattern(pattern.id, consultant.id, WeeklyPatternUpdate(end_time="16:00"))
            service.delete_pattern(pattern.id, consultant.id)
            service.bulk_replace(consultant.id, [], generate_days=0)

        assert lock.call_args_list == [call(consultant.id)] * 4

    def test_overlapping_creates_admit_exactly_one(self, file_session_factory, run_concurrently):
        setup = file_session_factory()
        consultant = Consultant(
            id=generate_ulid(), slug="overlap-race", first_name="Race", timezone="UTC"
        )
        setup.add(consultant)
        setup.commit()
        setup.close()

        session_a, session_b = file_session_factory(), file_session_factory()
        try:
            service_a = PatternService(session_a, CacheService(redis_client=None))
            service_b = PatternService(session_b, CacheService(redis_client=None))

            results = run_concurrently(
                [
                    lambda: service_a.create_pattern(
                        consultant.id, _create(start="09:00", end="10:00")
                    ),
                    lambda: service_b.create_pattern(
                        consultant.id, _create(start="09:30", end="10:30")
                    ),
                ]
            )

            created = [r for r in results if isinstance(r, WeeklyAvailabilityPattern)]
            rejected = [r for r in results if isinstance(r, ValidationException)]
            assert len(created) == 1, results
            assert len(rejected) == 1, results

            check = file_session_factory()
            stored = (
                check.query(WeeklyAvailabilityPattern)
                .filter(WeeklyAvailabilityPattern.consultant_id == consultant.id)
                .all()
            )
            assert [p.id for p in stored] == [created[0].id]
            check.close()
        finally:
            session_a.close()
            session_b.close()
