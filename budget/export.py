import csv
from datetime import datetime
import io
from typing import Any, Dict, Iterable, Optional

from budget.models import FixedExpense, Goal, Transaction, UserProfile

TRANSACTION_COLUMNS = ["id", "date", "description", "amount", "category"]
FIXED_EXPENSE_COLUMNS = ["name", "category", "amount", "timeline_months", "start_date"]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else None


def build_report(
    profile: Optional[UserProfile],
    transactions: Iterable[Transaction],
    goals: Iterable[Goal],
    generated_at: datetime,
) -> Dict[str, Any]:
    return {
        "generated_at": generated_at.isoformat(),
        "summary": {
            "name": profile.name if profile else None,
            "role": profile.role.value if profile else None,
            "income": profile.income if profile else None,
            "monthly_needs": profile.monthly_needs if profile else None,
            "monthly_wants": profile.monthly_wants if profile else None,
            "monthly_savings": profile.monthly_savings if profile else None,
        },
        "fixed_expenses": [
            {
                "id": e.id,
                "name": e.name,
                "category": e.category.value,
                "amount": e.amount,
                "timeline_months": e.timeline_months,
                "start_date": _iso(e.start_date),
            }
            for e in (profile.fixed_expenses if profile else [])
        ],
        "transactions": [
            {
                "id": t.id,
                "date": _iso(t.date),
                "description": t.description,
                "amount": t.amount,
                "category": t.category.value,
            }
            for t in transactions
        ],
        "goals": [
            {
                "id": g.id,
                "name": g.name,
                "target": g.target_amount,
                "monthly_contribution": g.monthly_contribution,
            }
            for g in goals
        ],
    }


def _to_csv(header, rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def transactions_to_csv(transactions: Iterable[Transaction]) -> str:
    return _to_csv(
        TRANSACTION_COLUMNS,
        ([t.id, _iso(t.date), t.description, t.amount, t.category.value] for t in transactions),
    )


def fixed_expenses_to_csv(expenses: Iterable[FixedExpense]) -> str:
    return _to_csv(
        FIXED_EXPENSE_COLUMNS,
        (
            [e.name, e.category.value, e.amount, e.timeline_months if e.timeline_months else "", _iso(e.start_date) or ""]
            for e in expenses
        ),
    )
