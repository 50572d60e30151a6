from datetime import datetime, timedelta

import pytest

from budget.metrics import (
    available_for_emergency_fund,
    cumulative_daily_savings,
    suggested_daily_limit,
    summarize,
)
from budget.allocator import apply_budget
from budget.models import Category, FixedExpense, Goal, Transaction, UserProfile

NOW = datetime(2024, 6, 15, 20, 0)


def _txn(amount, days_ago=0, category=Category.FOOD_DINING):
    return Transaction(amount=amount, category=category, date=NOW - timedelta(days=days_ago))


def test_cumulative_savings_skips_today_and_overspent_days():
    transactions = [
        _txn(100, days_ago=0),   # today, ignored
        _txn(300, days_ago=1),   # saved 200
        _txn(700, days_ago=2),   # overspent, adds nothing
        _txn(250, days_ago=3),
        _txn(150, days_ago=3),   # 400 total, saved 100
    ]

    assert cumulative_daily_savings(transactions, 500, NOW.date()) == 300


def test_cumulative_savings_without_spending_is_zero():
    assert cumulative_daily_savings([], 500, NOW.date()) == 0


def test_available_for_emergency_fund_never_negative():
    goals = [Goal(name="A", target_amount=1000, monthly_contribution=6000)]

    assert available_for_emergency_fund(5000, goals) == 0
    assert available_for_emergency_fund(10000, goals) == 4000


def test_suggested_limit_pulls_down_after_overspending():
    transactions = [_txn(700, days_ago=d) for d in range(7)]

    assert suggested_daily_limit(transactions, 500, NOW) == pytest.approx(300)


def test_suggested_limit_ignores_older_spending_and_floors_at_zero():
    old = [_txn(10000, days_ago=30)]
    heavy = [_txn(8000, days_ago=1)]

    assert suggested_daily_limit(old, 500, NOW) == pytest.approx(1000)
    assert suggested_daily_limit(heavy, 500, NOW) == 0


def test_summarize_composes_dashboard_figures():
    profile = apply_budget(UserProfile(
        role="Professional",
        income=50000,
        fixed_expenses=[FixedExpense(name="Rent", amount=15000, category=Category.RENT_EMI)],
    ))
    goals = [Goal(name="Laptop", target_amount=60000, current_amount=12000, monthly_contribution=4000)]
    transactions = [_txn(200), _txn(100, days_ago=1, category=Category.TRANSPORT)]

    summary = summarize(profile, transactions, goals, NOW)

    assert summary.todays_spending == 200
    assert summary.remaining_today == pytest.approx(300)
    assert summary.cumulative_daily_savings == pytest.approx(400)
    assert summary.overall_spending == 300
    assert summary.total_goal_saved == 12000
    assert summary.available_for_emergency_fund == pytest.approx(6000)
    assert not summary.goals_overcommitted
    assert summary.spending_by_category == {"Food & Dining": 200, "Transport": 100}
