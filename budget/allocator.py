from dataclasses import asdict, dataclass
from typing import Iterable

from budget.models import FixedExpense, UserProfile

WANTS_SHARE = 0.30
SAVINGS_SHARE = 0.20
DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class BudgetSplit:
    monthly_needs: float
    monthly_wants: float
    monthly_savings: float
    daily_spending_limit: float


def allocate(income: float, fixed_expenses: Iterable[FixedExpense]) -> BudgetSplit:
    """Split a monthly income into needs, wants, savings and a daily limit.

    Needs are whatever the fixed expenses add up to and do not depend on
    income; wants and savings are fixed shares of income.
    """
    needs = sum((exp.amount or 0.0) for exp in fixed_expenses)
    wants = income * WANTS_SHARE
    savings = income * SAVINGS_SHARE
    daily = wants / DAYS_PER_MONTH if wants > 0 else 0.0
    return BudgetSplit(
        monthly_needs=needs,
        monthly_wants=wants,
        monthly_savings=savings,
        daily_spending_limit=daily,
    )


def apply_budget(profile: UserProfile) -> UserProfile:
    """Return a copy of ``profile`` with its derived budget fields recomputed."""
    split = allocate(profile.income, profile.fixed_expenses)
    return profile.model_copy(update=asdict(split))
