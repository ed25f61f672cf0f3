# backend/tests/repositories/test_pattern_repository.py
from nakksha.repositories.factory import RepositoryFactory


def test_find_overlapping_uses_half_open_intervals(db, consultant, add_pattern):
    repo = RepositoryFactory.create_pattern_repository(db)
    existing = add_pattern(consultant, 3, "09:00", "10:00")

    assert [p.id for p in repo.find_overlapping(consultant.id, "PERSONAL", 3, "09:30", "10:30")] == [
        existing.id
    ]
    assert repo.find_overlapping(consultant.id, "PERSONAL", 3, "10:00", "11:00") == []
    assert repo.find_overlapping(consultant.id, "PERSONAL", 4, "09:30", "10:30") == []
    assert repo.find_overlapping(consultant.id, "WEBINAR", 3, "09:30", "10:30") == []
    assert (
        repo.find_overlapping(consultant.id, "PERSONAL", 3, "09:00", "10:00", exclude_id=existing.id)
        == []
    )


def test_list_for_consultant_filters_and_orders(db, consultant, other_consultant, add_pattern):
    repo = RepositoryFactory.create_pattern_repository(db)
    add_pattern(consultant, 5, "09:00", "10:00")
    add_pattern(consultant, 1, "14:00", "15:00")
    add_pattern(consultant, 1, "09:00", "10:00", is_active=False)
    add_pattern(consultant, 2, "09:00", "10:00", session_type="WEBINAR")
    add_pattern(other_consultant, 1, "09:00", "10:00")

    patterns = repo.list_for_consultant(consultant.id)
    assert [(p.session_type, p.day_of_week, p.start_time) for p in patterns] == [
        ("PERSONAL", 1, "09:00"),
        ("PERSONAL", 1, "14:00"),
        ("PERSONAL", 5, "09:00"),
        ("WEBINAR", 2, "09:00"),
    ]
    assert len(repo.list_for_consultant(consultant.id, active_only=True)) == 3
    assert len(repo.list_for_consultant(consultant.id, session_type="WEBINAR")) == 1


def test_consultants_with_active_patterns(db, consultant, other_consultant, add_pattern):
    repo = RepositoryFactory.create_consultant_repository(db)
    add_pattern(consultant, 1, "09:00", "10:00")
    add_pattern(other_consultant, 1, "09:00", "10:00", is_active=False)

    assert repo.get_ids_with_active_patterns() == [consultant.id]
    assert repo.get_by_slug_or_id("priya-sharma").id == consultant.id
    assert repo.get_by_slug_or_id(consultant.id).id == consultant.id
    assert repo.get_by_slug_or_id("unknown") is None
