from datetime import datetime
import logging
import math
from typing import Callable, Iterable, List, Optional

from budget.errors import NotFoundError, ValidationError
from budget.models import Contribution, Goal, local_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"name", "target_amount", "monthly_contribution", "timeline_months"}


def _positive(value, field: str) -> float:
    if value is None or value <= 0:
        raise ValidationError(f"{field} must be greater than zero.", field=field)
    return value


class GoalTracker:
    """Savings goals and their contribution history.

    ``current_amount`` never exceeds ``target_amount``. A contribution that
    would overshoot is logged with the amount actually applied and keeps the
    original request in ``requested_amount``, so the history always sums to
    ``current_amount``.
    """

    def __init__(self, goals: Iterable[Goal] = (), now: Callable[[], datetime] = local_now):
        self._now = now
        self._goals: List[Goal] = list(goals)

    @property
    def goals(self) -> List[Goal]:
        return list(self._goals)

    def get(self, goal_id: str) -> Optional[Goal]:
        for goal in self._goals:
            if goal.id == goal_id:
                return goal
        return None

    def _require(self, goal_id: str) -> Goal:
        goal = self.get(goal_id)
        if goal is None:
            raise NotFoundError("Goal", goal_id)
        return goal

    def _replace(self, updated: Goal) -> None:
        self._goals = [updated if g.id == updated.id else g for g in self._goals]

    def create(
        self,
        name: str,
        target_amount: float,
        monthly_contribution: float,
        timeline_months: Optional[int] = None,
    ) -> Goal:
        if not name or not name.strip():
            raise ValidationError("name is required.", field="name")
        if timeline_months is not None:
            _positive(timeline_months, "timeline_months")
        goal = Goal(
            name=name.strip(),
            target_amount=_positive(target_amount, "target_amount"),
            monthly_contribution=_positive(monthly_contribution, "monthly_contribution"),
            timeline_months=timeline_months,
            start_date=self._now() if timeline_months else None,
        )
        self._goals.append(goal)
        return goal

    def edit(self, goal_id: str, **changes) -> Goal:
        goal = self._require(goal_id)
        payload = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        for field in ("target_amount", "monthly_contribution", "timeline_months"):
            if field in payload:
                _positive(payload[field], field)
        if "name" in payload:
            if not payload["name"].strip():
                raise ValidationError("name is required.", field="name")
            payload["name"] = payload["name"].strip()
        if payload.get("target_amount", goal.target_amount) < goal.current_amount:
            raise ValidationError(
                "target_amount cannot be lower than the amount already saved.",
                field="target_amount",
            )
        timeline = payload.get("timeline_months", goal.timeline_months)
        if timeline and goal.start_date is None:
            payload["start_date"] = self._now()
        updated = goal.model_copy(update=payload)
        self._replace(updated)
        return updated

    def contribute(self, goal_id: str, amount: float) -> Goal:
        _positive(amount, "amount")
        goal = self._require(goal_id)
        applied = min(amount, goal.remaining_amount)
        entry = Contribution(
            amount=applied,
            date=self._now(),
            requested_amount=amount if applied != amount else None,
        )
        if applied != amount:
            logger.info("Contribution to goal %s capped at %.2f of %.2f requested", goal_id, applied, amount)
        updated = goal.model_copy(
            update={
                "current_amount": goal.current_amount + applied,
                "contributions": [*goal.contributions, entry],
            }
        )
        self._replace(updated)
        return updated

    def remove(self, goal_id: str) -> Optional[Goal]:
        goal = self.get(goal_id)
        if goal is not None:
            self._goals = [g for g in self._goals if g.id != goal_id]
        return goal

    def restore(self, goals: Iterable[Goal]) -> None:
        self._goals = list(goals)


def project_timeline(target: float, monthly_contribution: float) -> int:
    """Months needed to reach ``target`` at a steady monthly contribution."""
    if monthly_contribution <= 0:
        raise ValidationError("monthly_contribution must be greater than zero.", field="monthly_contribution")
    return math.ceil(target / monthly_contribution)


def total_committed_contributions(goals: Iterable[Goal]) -> float:
    return sum(g.monthly_contribution for g in goals)


def total_saved(goals: Iterable[Goal]) -> float:
    return sum(g.current_amount for g in goals)


def total_target(goals: Iterable[Goal]) -> float:
    return sum(g.target_amount for g in goals)


def is_overcommitted(goals: Iterable[Goal], monthly_savings: float) -> bool:
    return total_committed_contributions(goals) > monthly_savings
