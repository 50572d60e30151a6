from datetime import datetime

import pytest

from budget.errors import NotFoundError, ValidationError
from budget.goals import GoalTracker, is_overcommitted, project_timeline, total_committed_contributions

NOW = datetime(2024, 3, 1, 9, 0)


def _tracker():
    return GoalTracker(now=lambda: NOW)


def test_contributions_are_capped_at_target():
    tracker = _tracker()
    goal = tracker.create("Laptop", 10000, 2000)

    for _ in range(4):
        tracker.contribute(goal.id, 2000)
    goal = tracker.contribute(goal.id, 5000)

    assert goal.current_amount == 10000
    assert goal.is_completed
    assert len(goal.contributions) == 5
    assert goal.contributions[-1].amount == 2000
    assert goal.contributions[-1].requested_amount == 5000
    assert sum(c.amount for c in goal.contributions) == goal.current_amount


def test_create_sets_start_date_only_with_timeline():
    tracker = _tracker()

    assert tracker.create("Trip", 5000, 500).start_date is None
    assert tracker.create("Bike", 60000, 5000, timeline_months=12).start_date == NOW


def test_create_validates_input():
    tracker = _tracker()

    with pytest.raises(ValidationError):
        tracker.create("  ", 100, 10)
    with pytest.raises(ValidationError):
        tracker.create("Phone", 0, 10)
    assert tracker.goals == []


def test_edit_rejects_target_below_saved_amount():
    tracker = _tracker()
    goal = tracker.create("Phone", 20000, 2000)
    tracker.contribute(goal.id, 8000)

    with pytest.raises(ValidationError):
        tracker.edit(goal.id, target_amount=5000)

    updated = tracker.edit(goal.id, target_amount=25000, timeline_months=6)
    assert updated.target_amount == 25000
    assert updated.current_amount == 8000
    assert updated.start_date == NOW


def test_contribute_to_unknown_goal_raises():
    with pytest.raises(NotFoundError):
        _tracker().contribute("missing", 10)


def test_remove_and_restore():
    tracker = _tracker()
    goal = tracker.create("Trip", 5000, 500)
    snapshot = tracker.goals

    assert tracker.remove(goal.id) == goal
    assert tracker.remove(goal.id) is None
    tracker.restore(snapshot)
    assert tracker.get(goal.id) == goal


def test_project_timeline_rounds_up():
    assert project_timeline(10000, 3000) == 4
    assert project_timeline(9000, 3000) == 3
    with pytest.raises(ValidationError):
        project_timeline(1000, 0)


def test_overcommitment_compares_against_monthly_savings():
    tracker = _tracker()
    tracker.create("A", 10000, 3000)
    tracker.create("B", 10000, 2500)

    assert total_committed_contributions(tracker.goals) == 5500
    assert is_overcommitted(tracker.goals, 5000)
    assert not is_overcommitted(tracker.goals, 6000)
