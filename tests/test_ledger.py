from datetime import datetime, timedelta

import pytest

from budget.errors import NotFoundError, ValidationError
from budget.ledger import TransactionLedger, aggregate_by_category
from budget.metrics import remaining_today
from budget.models import Category, Transaction

NOW = datetime(2024, 6, 15, 18, 30)


def _ledger(transactions=()):
    return TransactionLedger(transactions, now=lambda: NOW)


def test_add_puts_newest_first_and_stamps_date():
    ledger = _ledger()
    first = ledger.add(100, Category.GROCERIES, "milk")
    second = ledger.add(40, "Transport", "bus")

    assert [t.id for t in ledger.transactions] == [second.id, first.id]
    assert second.category == Category.TRANSPORT
    assert second.date == NOW


def test_todays_total_only_counts_today():
    yesterday = Transaction(amount=900, category=Category.SHOPPING, date=NOW - timedelta(days=1))
    ledger = _ledger([yesterday])
    for amount in (100, 200, 50):
        ledger.add(amount, Category.FOOD_DINING)

    assert ledger.todays_total() == 350
    assert remaining_today(300, ledger.todays_total()) == -50


@pytest.mark.parametrize("amount", [0, -5, None])
def test_add_rejects_non_positive_amounts(amount):
    ledger = _ledger()

    with pytest.raises(ValidationError):
        ledger.add(amount, Category.OTHER)
    assert len(ledger) == 0


def test_add_rejects_unknown_category():
    with pytest.raises(ValidationError) as exc:
        _ledger().add(10, "Gambling")
    assert exc.value.field == "category"


def test_remove_unknown_id_is_a_no_op():
    ledger = _ledger()
    ledger.add(10, Category.OTHER)

    assert ledger.remove("missing") is None
    assert len(ledger) == 1


def test_edit_keeps_id_and_date():
    ledger = _ledger()
    txn = ledger.add(10, Category.OTHER, "snack")

    updated = ledger.edit(txn.id, amount=25, description="lunch", date=NOW - timedelta(days=3))

    assert updated.id == txn.id
    assert updated.date == txn.date
    assert updated.amount == 25
    assert updated.description == "lunch"
    assert ledger.get(txn.id) == updated


def test_edit_unknown_id_raises():
    with pytest.raises(NotFoundError):
        _ledger().edit("missing", amount=5)


def test_aggregate_by_category_sorted_largest_first():
    transactions = [
        Transaction(amount=50, category=Category.TRANSPORT, date=NOW),
        Transaction(amount=300, category=Category.SHOPPING, date=NOW),
        Transaction(amount=70, category=Category.TRANSPORT, date=NOW),
    ]

    totals = aggregate_by_category(transactions)

    assert list(totals.items()) == [("Shopping", 300), ("Transport", 120)]
