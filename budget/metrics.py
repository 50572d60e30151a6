"""Read-only figures composed from the profile, ledger, goals and fund.

Nothing here is cached; every value is recomputed from its inputs.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, Sequence

from budget import goals as goal_math
from budget.emergency_fund import progress_percent
from budget.ledger import aggregate_by_category, spending_by_day
from budget.models import Goal, Transaction, UserProfile, as_local, local_day

FORECAST_WINDOW_DAYS = 7
MIN_TRANSACTIONS_FOR_FORECAST = 3


def todays_spending(transactions: Iterable[Transaction], today: date) -> float:
    return sum(t.amount for t in transactions if local_day(t.date) == today)


def remaining_today(daily_spending_limit: float, spent_today: float) -> float:
    """Left to spend today; negative once the limit is blown."""
    return daily_spending_limit - spent_today


def cumulative_daily_savings(
    transactions: Iterable[Transaction],
    daily_spending_limit: float,
    today: date,
) -> float:
    """Sum of what was left under the daily limit on each past day with spending.

    Today is still open and is skipped. A day over the limit adds nothing
    rather than eating into earlier savings.
    """
    saved = 0.0
    for day, spent in spending_by_day(transactions).items():
        if day == today:
            continue
        saving = daily_spending_limit - spent
        if saving > 0:
            saved += saving
    return saved


def overall_spending(transactions: Iterable[Transaction]) -> float:
    return sum(t.amount for t in transactions)


def available_for_emergency_fund(monthly_savings: float, goals: Iterable[Goal]) -> float:
    return max(0.0, monthly_savings - goal_math.total_committed_contributions(goals))


def suggested_daily_limit(transactions: Iterable[Transaction], daily_spending_limit: float, now: datetime) -> float:
    """Next week's limit: pull the limit down by however much the last week ran over it."""
    now = as_local(now)
    recent = [t for t in transactions if (now - as_local(t.date)).days < FORECAST_WINDOW_DAYS]
    average = sum(t.amount for t in recent) / FORECAST_WINDOW_DAYS
    return max(0.0, daily_spending_limit - (average - daily_spending_limit))


@dataclass(frozen=True)
class DashboardSummary:
    income: float
    monthly_needs: float
    monthly_wants: float
    monthly_savings: float
    daily_spending_limit: float
    todays_spending: float
    remaining_today: float
    cumulative_daily_savings: float
    overall_spending: float
    total_goal_saved: float
    total_goal_target: float
    committed_goal_contributions: float
    goals_overcommitted: bool
    available_for_emergency_fund: float
    emergency_fund_progress: float
    spending_by_category: Dict[str, float]


def summarize(
    profile: UserProfile,
    transactions: Sequence[Transaction],
    goals: Sequence[Goal],
    now: datetime,
) -> DashboardSummary:
    today = local_day(now)
    spent_today = todays_spending(transactions, today)
    fund = profile.emergency_fund
    return DashboardSummary(
        income=profile.income,
        monthly_needs=profile.monthly_needs,
        monthly_wants=profile.monthly_wants,
        monthly_savings=profile.monthly_savings,
        daily_spending_limit=profile.daily_spending_limit,
        todays_spending=spent_today,
        remaining_today=remaining_today(profile.daily_spending_limit, spent_today),
        cumulative_daily_savings=cumulative_daily_savings(transactions, profile.daily_spending_limit, today),
        overall_spending=overall_spending(transactions),
        total_goal_saved=goal_math.total_saved(goals),
        total_goal_target=goal_math.total_target(goals),
        committed_goal_contributions=goal_math.total_committed_contributions(goals),
        goals_overcommitted=goal_math.is_overcommitted(goals, profile.monthly_savings),
        available_for_emergency_fund=available_for_emergency_fund(profile.monthly_savings, goals),
        emergency_fund_progress=progress_percent(fund.current, fund.target),
        spending_by_category=aggregate_by_category(transactions),
    )
