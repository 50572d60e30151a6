"""Monthly paid/unpaid marks for fixed expenses.

The log is separate from the transaction ledger: marking a bill paid does
not record any spending. The number of months marked paid doubles as the
elapsed count for EMI/loan style expenses that run for a fixed number of
months.
"""
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Set

from budget.models import FixedExpense, as_local, local_day, local_now

UPCOMING_WINDOW_MONTHS = 3


class MonthKey(NamedTuple):
    year: int
    month: int

    @classmethod
    def of(cls, moment: datetime | date) -> "MonthKey":
        day = local_day(moment) if isinstance(moment, datetime) else moment
        return cls(day.year, day.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class PaymentLog:
    def __init__(
        self,
        marks: Optional[Mapping[str, Iterable[MonthKey]]] = None,
        now: Callable[[], datetime] = local_now,
    ):
        self._now = now
        self._marks: Dict[str, Set[MonthKey]] = {k: set(v) for k, v in (marks or {}).items()}

    def current_month(self) -> MonthKey:
        return MonthKey.of(self._now())

    def toggle(self, expense_id: str) -> bool:
        """Flip this month's mark for ``expense_id`` and return the new paid state."""
        month = self.current_month()
        months = self._marks.setdefault(expense_id, set())
        if month in months:
            months.discard(month)
            return False
        months.add(month)
        return True

    def is_paid_this_month(self, expense_id: str) -> bool:
        return self.current_month() in self._marks.get(expense_id, set())

    def logged_month_count(self, expense_id: str) -> int:
        return len(self._marks.get(expense_id, ()))

    def months(self, expense_id: str) -> List[MonthKey]:
        return sorted(self._marks.get(expense_id, ()))

    def paid_this_month(self, expense_ids: Iterable[str]) -> int:
        return sum(1 for expense_id in expense_ids if self.is_paid_this_month(expense_id))

    def snapshot(self) -> Dict[str, Set[MonthKey]]:
        return {k: set(v) for k, v in self._marks.items()}

    def restore(self, marks: Mapping[str, Set[MonthKey]]) -> None:
        self._marks = {k: set(v) for k, v in marks.items()}


def add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class TimelineProgress:
    total_months: int
    elapsed_months: int
    remaining_months: int
    progress_percent: float
    end_date: Optional[datetime]

    @property
    def completed(self) -> bool:
        return self.remaining_months == 0


def end_date(expense: FixedExpense) -> Optional[datetime]:
    if not expense.timeline_months or expense.start_date is None:
        return None
    return add_months(as_local(expense.start_date), expense.timeline_months)


def timeline_progress(expense: FixedExpense, log: PaymentLog) -> Optional[TimelineProgress]:
    if not expense.timeline_months:
        return None
    total = expense.timeline_months
    elapsed = log.logged_month_count(expense.id)
    return TimelineProgress(
        total_months=total,
        elapsed_months=elapsed,
        remaining_months=max(0, total - elapsed),
        progress_percent=max(0.0, min(100.0, elapsed / total * 100)),
        end_date=end_date(expense),
    )


def upcoming_deadlines(
    expenses: Iterable[FixedExpense],
    now: datetime,
    within_months: int = UPCOMING_WINDOW_MONTHS,
) -> List[FixedExpense]:
    """Timeline-bound expenses that end after ``now`` but within the window."""
    now = as_local(now)
    horizon = add_months(now, within_months)
    upcoming = []
    for expense in expenses:
        ends = end_date(expense)
        if ends is not None and now < ends <= horizon:
            upcoming.append(expense)
    return sorted(upcoming, key=end_date)
