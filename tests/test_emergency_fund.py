from datetime import datetime

import pytest

from budget.emergency_fund import EmergencyFundLedger, milestones
from budget.errors import ValidationError
from budget.models import EmergencyFund, EntryType

NOW = datetime(2024, 5, 20, 12, 0)


def _ledger(target=20000.0, current=0.0):
    return EmergencyFundLedger(EmergencyFund(target=target, current=current), now=lambda: NOW)


def test_first_deposit_reaches_basic_safety_net():
    fund = _ledger()
    fund.deposit(5000, "bonus")

    assert fund.fund.current == 5000
    assert fund.progress_percent() == 25
    assert fund.reached_milestone().label == "Basic Safety Net"
    assert fund.deposits_this_month() == 5000


def test_withdrawal_floors_at_zero_and_records_applied_amount():
    fund = _ledger()
    fund.deposit(5000)

    entry = fund.withdraw(8000, "car repair")

    assert fund.fund.current == 0
    assert entry.amount == 5000
    assert entry.requested_amount == 8000
    assert entry.type == EntryType.WITHDRAWAL
    assert fund.total_deposits() - fund.total_withdrawals() == fund.fund.current


def test_deposit_then_equal_withdrawal_returns_to_start():
    fund = _ledger(current=1200)
    fund.deposit(300)
    fund.withdraw(300)

    assert fund.fund.current == 1200
    assert len(fund.history()) == 2
    assert fund.history()[0].type == EntryType.WITHDRAWAL


def test_non_positive_amounts_are_rejected():
    fund = _ledger()

    with pytest.raises(ValidationError):
        fund.deposit(0)
    with pytest.raises(ValidationError):
        fund.withdraw(-10)
    assert fund.fund.history == []


def test_zero_target_gives_zero_progress():
    fund = _ledger(target=0, current=500)

    assert fund.progress_percent() == 0
    assert fund.reached_milestone() is None


def test_set_target_rejects_negative():
    fund = _ledger()
    with pytest.raises(ValidationError):
        fund.set_target(-1)
    assert fund.set_target(50000).target == 50000


def test_milestones_flags():
    flags = [m.reached for m in milestones(60)]
    assert flags == [True, True, False]
