import pytest

from budget.allocator import allocate, apply_budget
from budget.models import Category, FixedExpense, UserProfile


def test_allocate_splits_income_into_needs_wants_and_savings():
    split = allocate(50000, [FixedExpense(name="Rent", amount=15000, category=Category.RENT_EMI)])

    assert split.monthly_needs == 15000
    assert split.monthly_wants == pytest.approx(15000)
    assert split.monthly_savings == pytest.approx(10000)
    assert split.daily_spending_limit == pytest.approx(500)


def test_needs_do_not_depend_on_income():
    expenses = [FixedExpense(name="Rent", amount=8000), FixedExpense(name="Wifi", amount=700)]

    assert allocate(10000, expenses).monthly_needs == 8700
    assert allocate(90000, expenses).monthly_needs == 8700


def test_zero_income_gives_zero_daily_limit():
    split = allocate(0, [])

    assert split.monthly_wants == 0
    assert split.monthly_savings == 0
    assert split.daily_spending_limit == 0


def test_apply_budget_recomputes_derived_fields():
    profile = UserProfile(name="Asha", income=30000, monthly_needs=999, daily_spending_limit=1)

    updated = apply_budget(profile)

    assert updated.monthly_needs == 0
    assert updated.monthly_wants == pytest.approx(9000)
    assert updated.daily_spending_limit == pytest.approx(300)
    # the input is left alone
    assert profile.monthly_needs == 999
