from collections import defaultdict
from datetime import date, datetime
import logging
from typing import Callable, Dict, Iterable, List, Optional

from budget.errors import NotFoundError, ValidationError
from budget.models import Category, Transaction, local_day, local_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"amount", "category", "description"}


def _check_amount(amount) -> float:
    if amount is None or amount <= 0:
        raise ValidationError("amount must be greater than zero.", field="amount")
    return float(amount)


def _check_category(category) -> Category:
    try:
        return Category(category)
    except ValueError:
        raise ValidationError(f"Unsupported category: {category}", field="category")


class TransactionLedger:
    """Discretionary spending, most recent first."""

    def __init__(self, transactions: Iterable[Transaction] = (), now: Callable[[], datetime] = local_now):
        self._now = now
        self._items: List[Transaction] = sorted(transactions, key=lambda t: t.date, reverse=True)

    @property
    def transactions(self) -> List[Transaction]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self._items:
            if txn.id == transaction_id:
                return txn
        return None

    def add(self, amount: float, category, description: str = "") -> Transaction:
        txn = Transaction(
            amount=_check_amount(amount),
            category=_check_category(category),
            description=description or "",
            date=self._now(),
        )
        self._items.insert(0, txn)
        return txn

    def edit(self, transaction_id: str, **changes) -> Transaction:
        current = self.get(transaction_id)
        if current is None:
            raise NotFoundError("Transaction", transaction_id)
        payload = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        if "amount" in payload:
            payload["amount"] = _check_amount(payload["amount"])
        if "category" in payload:
            payload["category"] = _check_category(payload["category"])
        updated = current.model_copy(update=payload)
        self._items = [updated if t.id == transaction_id else t for t in self._items]
        return updated

    def remove(self, transaction_id: str) -> Optional[Transaction]:
        """Drop a transaction; an unknown id leaves the ledger as it was."""
        removed = self.get(transaction_id)
        if removed is None:
            logger.info("Transaction %s not in ledger, nothing removed", transaction_id)
            return None
        self._items = [t for t in self._items if t.id != transaction_id]
        return removed

    def restore(self, transactions: Iterable[Transaction]) -> None:
        self._items = list(transactions)

    def todays_total(self) -> float:
        today = local_day(self._now())
        return sum(t.amount for t in self._items if local_day(t.date) == today)


def spending_by_day(transactions: Iterable[Transaction]) -> Dict[date, float]:
    totals: Dict[date, float] = defaultdict(float)
    for txn in transactions:
        totals[local_day(txn.date)] += txn.amount
    return dict(totals)


def aggregate_by_category(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """Total spend per category, largest first."""
    totals: Dict[str, float] = defaultdict(float)
    for txn in transactions:
        totals[Category(txn.category).value] += txn.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))
