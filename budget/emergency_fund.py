from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable, List, Optional

from budget.errors import ValidationError
from budget.models import EmergencyFund, EmergencyFundEntry, EntryType, local_day, local_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Milestone:
    threshold: float
    label: str
    coverage: str
    reached: bool = False


MILESTONES = (
    (25.0, "Basic Safety Net", "One month's expenses"),
    (50.0, "Stable Foundation", "Three months' coverage"),
    (100.0, "Financial Freedom", "Six months secured"),
)


def progress_percent(current: float, target: float) -> float:
    return current / target * 100 if target > 0 else 0.0


def milestones(percent: float) -> List[Milestone]:
    return [
        Milestone(threshold=threshold, label=label, coverage=coverage, reached=percent >= threshold)
        for threshold, label, coverage in MILESTONES
    ]


class EmergencyFundLedger:
    """Deposits and withdrawals against the emergency fund.

    The balance floors at zero. A withdrawal bigger than the balance is
    recorded with the amount actually taken out, and the request is kept in
    ``requested_amount``; deposits minus withdrawals always equals
    ``current``.
    """

    def __init__(self, fund: Optional[EmergencyFund] = None, now: Callable[[], datetime] = local_now):
        self._now = now
        self.fund = fund or EmergencyFund()

    def _entry(self, entry_type: EntryType, applied: float, requested: float, notes: Optional[str]) -> EmergencyFundEntry:
        return EmergencyFundEntry(
            amount=applied,
            date=self._now(),
            type=entry_type,
            notes=notes or None,
            requested_amount=requested if applied != requested else None,
        )

    @staticmethod
    def _check(amount) -> float:
        if amount is None or amount <= 0:
            raise ValidationError("amount must be greater than zero.", field="amount")
        return float(amount)

    def deposit(self, amount: float, notes: Optional[str] = None) -> EmergencyFundEntry:
        amount = self._check(amount)
        entry = self._entry(EntryType.DEPOSIT, amount, amount, notes)
        self.fund = self.fund.model_copy(
            update={"current": self.fund.current + amount, "history": [entry, *self.fund.history]}
        )
        return entry

    def withdraw(self, amount: float, notes: Optional[str] = None) -> EmergencyFundEntry:
        amount = self._check(amount)
        applied = min(amount, self.fund.current)
        if applied != amount:
            logger.info("Withdrawal of %.2f exceeds balance %.2f, flooring at zero", amount, self.fund.current)
        entry = self._entry(EntryType.WITHDRAWAL, applied, amount, notes)
        self.fund = self.fund.model_copy(
            update={"current": max(0.0, self.fund.current - applied), "history": [entry, *self.fund.history]}
        )
        return entry

    def set_target(self, target: float) -> EmergencyFund:
        if target is None or target < 0:
            raise ValidationError("target cannot be negative.", field="target")
        self.fund = self.fund.model_copy(update={"target": float(target)})
        return self.fund

    def progress_percent(self) -> float:
        return progress_percent(self.fund.current, self.fund.target)

    def milestones(self) -> List[Milestone]:
        return milestones(self.progress_percent())

    def reached_milestone(self) -> Optional[Milestone]:
        reached = [m for m in self.milestones() if m.reached]
        return reached[-1] if reached else None

    def history(self) -> List[EmergencyFundEntry]:
        return sorted(self.fund.history, key=lambda e: e.date, reverse=True)

    def total_deposits(self) -> float:
        return sum(e.amount for e in self.fund.history if e.type == EntryType.DEPOSIT)

    def total_withdrawals(self) -> float:
        return sum(e.amount for e in self.fund.history if e.type == EntryType.WITHDRAWAL)

    def deposits_this_month(self) -> float:
        today = local_day(self._now())
        return sum(
            e.amount
            for e in self.fund.history
            if e.type == EntryType.DEPOSIT
            and (local_day(e.date).year, local_day(e.date).month) == (today.year, today.month)
        )
