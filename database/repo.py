# database/repo.py
from sqlalchemy import select, desc, delete
from datetime import datetime
from typing import List, Dict, Any, Optional, Set
from database.core import SessionLocal
from database.models import (
    UserProfile,
    FixedExpense,
    Transaction,
    Goal,
    FixedExpensePayment,
    ChatHistory,
)
from budget import models as domain
from budget.payment_log import MonthKey


def _to_iso(dt):
    return dt.isoformat() if isinstance(dt, datetime) else None


class DatabaseActions:
    """Per-user persistence: one row per record, full replace on save."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    # ----------------------------
    # Helpers
    # ----------------------------
    def _get_profile_row(self, db, user_id: str) -> Optional[UserProfile]:
        return db.execute(select(UserProfile).where(UserProfile.user_id == user_id)).scalars().first()

    def _credentials_to_dict(self, u: UserProfile) -> Dict[str, Any]:
        return {
            "user_id": u.user_id,
            "name": u.name,
            "email": u.email,
            "username": u.username,
            "created_date": _to_iso(u.created_date),
            "updated_date": _to_iso(u.updated_date),
        }

    def _fixed_expense_to_model(self, r: FixedExpense) -> domain.FixedExpense:
        return domain.FixedExpense(
            id=r.id,
            name=r.name,
            amount=r.amount,
            category=r.category,
            timeline_months=r.timeline_months,
            start_date=r.start_date,
        )

    def _transaction_to_model(self, r: Transaction) -> domain.Transaction:
        return domain.Transaction(
            id=r.id,
            amount=r.amount,
            category=r.category,
            description=r.description,
            date=r.date,
        )

    def _goal_to_model(self, r: Goal) -> domain.Goal:
        return domain.Goal(
            id=r.id,
            name=r.name,
            target_amount=r.target_amount,
            current_amount=r.current_amount,
            monthly_contribution=r.monthly_contribution,
            timeline_months=r.timeline_months,
            start_date=r.start_date,
            contributions=[domain.Contribution.model_validate(c) for c in (r.contributions or [])],
        )

    def _profile_to_model(self, u: UserProfile, expenses: List[FixedExpense]) -> domain.UserProfile:
        return domain.UserProfile(
            name=u.name or "",
            role=u.role or "",
            income=u.income or 0.0,
            fixed_expenses=[self._fixed_expense_to_model(r) for r in expenses],
            monthly_needs=u.monthly_needs,
            monthly_wants=u.monthly_wants,
            monthly_savings=u.monthly_savings,
            daily_spending_limit=u.daily_spending_limit,
            emergency_fund=domain.EmergencyFund(
                target=u.emergency_fund_target,
                current=u.emergency_fund_current,
                history=[domain.EmergencyFundEntry.model_validate(e) for e in (u.emergency_fund_history or [])],
            ),
        )

    # ----------------------------
    # Credentials
    # ----------------------------
    def ensure_user_exists(self, user_id: str) -> bool:
        with self.session_factory() as db:
            return db.execute(select(UserProfile.user_id).where(UserProfile.user_id == user_id)).scalar_one_or_none() is not None

    def get_user_name(self, user_id: str) -> Optional[str]:
        with self.session_factory() as db:
            return db.execute(select(UserProfile.name).where(UserProfile.user_id == user_id)).scalar_one_or_none()

    def create_user_credentials(self, name: str, email: str, username: str, password_hash: str) -> dict:
        with self.session_factory() as db:
            u = UserProfile(
                name=name or "",
                email=email.lower().strip(),
                username=username.strip(),
                password_hash=password_hash,
                emergency_fund_history=[],
            )
            db.add(u)
            db.commit()
            db.refresh(u)
            return self._credentials_to_dict(u)

    def get_credentials(self, login: str) -> Optional[dict]:
        """Look a user up by email or username; includes the password hash."""
        login_norm = login.strip()
        with self.session_factory() as db:
            stmt = select(UserProfile).where(
                (UserProfile.email == login_norm.lower()) | (UserProfile.username == login_norm)
            )
            u = db.execute(stmt).scalars().first()
            if u is None:
                return None
            return {**self._credentials_to_dict(u), "password_hash": u.password_hash}

    # ----------------------------
    # Profile (with embedded emergency fund)
    # ----------------------------
    def fetch_profile(self, user_id: str) -> Optional[domain.UserProfile]:
        with self.session_factory() as db:
            u = self._get_profile_row(db, user_id)
            if u is None:
                return None
            expenses = self._list_fixed_expense_rows(db, user_id)
            return self._profile_to_model(u, expenses)

    def save_profile(self, user_id: str, profile: domain.UserProfile) -> None:
        fund = profile.emergency_fund
        with self.session_factory() as db:
            u = self._get_profile_row(db, user_id)
            if u is None:
                raise LookupError(f"user_id {user_id} not found")
            u.name = profile.name
            u.role = profile.role.value
            u.income = profile.income
            u.monthly_needs = profile.monthly_needs
            u.monthly_wants = profile.monthly_wants
            u.monthly_savings = profile.monthly_savings
            u.daily_spending_limit = profile.daily_spending_limit
            u.emergency_fund_target = fund.target
            u.emergency_fund_current = fund.current
            u.emergency_fund_history = [e.model_dump(mode="json") for e in fund.history]
            u.updated_date = datetime.now()
            db.execute(delete(FixedExpense).where(FixedExpense.user_id == user_id))
            db.add_all(
                self._fixed_expense_row(user_id, e, position)
                for position, e in enumerate(profile.fixed_expenses)
            )
            db.commit()

    # ----------------------------
    # Fixed expenses
    # ----------------------------
    def _fixed_expense_row(self, user_id: str, e: domain.FixedExpense, position: int) -> FixedExpense:
        return FixedExpense(
            id=e.id,
            user_id=user_id,
            position=position,
            name=e.name,
            amount=e.amount,
            category=e.category.value,
            timeline_months=e.timeline_months,
            start_date=e.start_date,
        )

    def _list_fixed_expense_rows(self, db, user_id: str) -> List[FixedExpense]:
        stmt = select(FixedExpense).where(FixedExpense.user_id == user_id).order_by(FixedExpense.position)
        return list(db.execute(stmt).scalars().all())

    # ----------------------------
    # Transactions
    # ----------------------------
    def save_transaction(self, user_id: str, txn: domain.Transaction) -> None:
        with self.session_factory() as db:
            db.merge(
                Transaction(
                    id=txn.id,
                    user_id=user_id,
                    amount=txn.amount,
                    category=txn.category.value,
                    description=txn.description,
                    date=txn.date,
                )
            )
            db.commit()

    def list_transactions(self, user_id: str) -> List[domain.Transaction]:
        with self.session_factory() as db:
            stmt = select(Transaction).where(Transaction.user_id == user_id).order_by(desc(Transaction.date))
            return [self._transaction_to_model(r) for r in db.execute(stmt).scalars().all()]

    def delete_transaction(self, user_id: str, transaction_id: str) -> int:
        with self.session_factory() as db:
            res = db.execute(delete(Transaction).where(Transaction.user_id == user_id, Transaction.id == transaction_id))
            db.commit()
            return res.rowcount or 0

    # ----------------------------
    # Goals
    # ----------------------------
    def save_goal(self, user_id: str, goal: domain.Goal) -> None:
        with self.session_factory() as db:
            db.merge(
                Goal(
                    id=goal.id,
                    user_id=user_id,
                    name=goal.name,
                    target_amount=goal.target_amount,
                    current_amount=goal.current_amount,
                    monthly_contribution=goal.monthly_contribution,
                    timeline_months=goal.timeline_months,
                    start_date=goal.start_date,
                    contributions=[c.model_dump(mode="json") for c in goal.contributions],
                )
            )
            db.commit()

    def list_goals(self, user_id: str) -> List[domain.Goal]:
        with self.session_factory() as db:
            stmt = select(Goal).where(Goal.user_id == user_id).order_by(Goal.created_date, Goal.id)
            return [self._goal_to_model(r) for r in db.execute(stmt).scalars().all()]

    def delete_goal(self, user_id: str, goal_id: str) -> int:
        with self.session_factory() as db:
            res = db.execute(delete(Goal).where(Goal.user_id == user_id, Goal.id == goal_id))
            db.commit()
            return res.rowcount or 0

    # ----------------------------
    # Fixed-expense payment marks
    # ----------------------------
    def list_payment_marks(self, user_id: str) -> Dict[str, Set[MonthKey]]:
        with self.session_factory() as db:
            rows = db.execute(select(FixedExpensePayment).where(FixedExpensePayment.user_id == user_id)).scalars().all()
            marks: Dict[str, Set[MonthKey]] = {}
            for r in rows:
                marks.setdefault(r.expense_id, set()).add(MonthKey(r.year, r.month))
            return marks

    def set_payment_mark(self, user_id: str, expense_id: str, month: MonthKey, paid: bool) -> None:
        with self.session_factory() as db:
            match = (
                FixedExpensePayment.user_id == user_id,
                FixedExpensePayment.expense_id == expense_id,
                FixedExpensePayment.year == month.year,
                FixedExpensePayment.month == month.month,
            )
            existing = db.execute(select(FixedExpensePayment).where(*match)).scalars().first()
            if paid and existing is None:
                db.add(FixedExpensePayment(user_id=user_id, expense_id=expense_id, year=month.year, month=month.month))
            elif not paid:
                db.execute(delete(FixedExpensePayment).where(*match))
            db.commit()

    # ----------------------------
    # Account deletion
    # ----------------------------
    def delete_user_data(self, user_id: str) -> int:
        with self.session_factory() as db:
            db.execute(delete(Goal).where(Goal.user_id == user_id))
            db.execute(delete(Transaction).where(Transaction.user_id == user_id))
            db.execute(delete(FixedExpense).where(FixedExpense.user_id == user_id))
            db.execute(delete(FixedExpensePayment).where(FixedExpensePayment.user_id == user_id))
            db.execute(delete(ChatHistory).where(ChatHistory.user_id == user_id))
            res = db.execute(delete(UserProfile).where(UserProfile.user_id == user_id))
            db.commit()
            return res.rowcount or 0

    # ----------------------------
    # ChatHistory CRUD
    # ----------------------------
    def add_chat_message(self, user_id: str, role: str, content: str) -> dict:
        with self.session_factory() as db:
            msg = ChatHistory(user_id=user_id, role=role, content=content)
            db.add(msg)
            db.commit()
            db.refresh(msg)
            return {
                "id": msg.id,
                "role": msg.role,
                "content": msg.content,
                "timestamp": msg.timestamp.isoformat()
            }

    def get_chat_history(self, user_id: str, limit: int = 50) -> List[dict]:
        with self.session_factory() as db:
            stmt = select(ChatHistory).where(ChatHistory.user_id == user_id).order_by(ChatHistory.timestamp.asc(), ChatHistory.id.asc()).limit(limit)
            rows = db.execute(stmt).scalars().all()
            return [
                {"role": r.role, "content": r.content}
                for r in rows
            ]
