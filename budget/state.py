"""Per-user application state.

``ProfileState`` owns one user's profile, goals, transactions and payment
log in memory and is the only place they are mutated. Each mutation
updates memory first, then awaits a write of the single affected record.
If the write fails the in-memory change is rolled back and
``PersistenceError`` is raised, so memory never runs ahead of the store.
"""
from datetime import datetime
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from starlette.concurrency import run_in_threadpool

from budget import metrics
from budget.allocator import apply_budget
from budget.emergency_fund import EmergencyFundLedger
from budget.errors import NotFoundError, PersistenceError, ValidationError
from budget.goals import GoalTracker, total_committed_contributions
from budget.ledger import TransactionLedger
from budget.models import (
    Category,
    EmergencyFundEntry,
    FixedExpense,
    Goal,
    Transaction,
    UserProfile,
    UserRole,
    as_local,
    local_day,
    local_now,
    new_id,
)
from budget.payment_log import PaymentLog, TimelineProgress, timeline_progress, upcoming_deadlines

logger = logging.getLogger(__name__)


class ProfileState:
    def __init__(
        self,
        user_id: str,
        store,
        profile: Optional[UserProfile] = None,
        goals: Iterable[Goal] = (),
        transactions: Iterable[Transaction] = (),
        payment_marks: Optional[Mapping] = None,
        now: Callable[[], datetime] = local_now,
    ):
        self.user_id = user_id
        self._store = store
        self._now = now
        self._profile = apply_budget(profile or UserProfile())
        self._ledger = TransactionLedger(transactions, now=now)
        self._goals = GoalTracker(goals, now=now)
        self._payments = PaymentLog(payment_marks, now=now)

    @classmethod
    async def load(cls, store, user_id: str, now: Callable[[], datetime] = local_now) -> "ProfileState":
        profile = await run_in_threadpool(store.fetch_profile, user_id)
        goals = await run_in_threadpool(store.list_goals, user_id)
        transactions = await run_in_threadpool(store.list_transactions, user_id)
        marks = await run_in_threadpool(store.list_payment_marks, user_id)
        return cls(user_id, store, profile, goals, transactions, marks, now=now)

    async def _persist(self, rollback: Callable[[], None], write: Callable[..., Any], *args) -> None:
        try:
            await run_in_threadpool(write, self.user_id, *args)
        except Exception as exc:
            rollback()
            logger.error("Persisting %s for user %s failed: %s", getattr(write, "__name__", "record"), self.user_id, exc)
            raise PersistenceError(f"Could not save changes: {exc}") from exc

    # ----------------------------
    # Reads
    # ----------------------------
    @property
    def profile(self) -> UserProfile:
        return self._profile

    @property
    def goals(self) -> List[Goal]:
        return self._goals.goals

    @property
    def transactions(self) -> List[Transaction]:
        return self._ledger.transactions

    @property
    def onboarding_complete(self) -> bool:
        return self._profile.onboarding_complete

    @property
    def emergency_fund(self) -> EmergencyFundLedger:
        return EmergencyFundLedger(self._profile.emergency_fund, now=self._now)

    def todays_spending(self) -> float:
        return self._ledger.todays_total()

    def remaining_today(self) -> float:
        return metrics.remaining_today(self._profile.daily_spending_limit, self.todays_spending())

    def over_daily_limit(self) -> bool:
        return self.todays_spending() > self._profile.daily_spending_limit

    def cumulative_daily_savings(self) -> float:
        return metrics.cumulative_daily_savings(
            self._ledger.transactions,
            self._profile.daily_spending_limit,
            local_day(self._now()),
        )

    def total_goal_contributions(self) -> float:
        return total_committed_contributions(self._goals.goals)

    def suggested_daily_limit(self) -> float:
        return metrics.suggested_daily_limit(self._ledger.transactions, self._profile.daily_spending_limit, self._now())

    def dashboard(self) -> metrics.DashboardSummary:
        return metrics.summarize(self._profile, self._ledger.transactions, self._goals.goals, self._now())

    def fixed_expense(self, expense_id: str) -> FixedExpense:
        for expense in self._profile.fixed_expenses:
            if expense.id == expense_id:
                return expense
        raise NotFoundError("Fixed expense", expense_id)

    def is_fixed_expense_paid(self, expense_id: str) -> bool:
        return self._payments.is_paid_this_month(expense_id)

    def logged_payment_count(self, expense_id: str) -> int:
        return self._payments.logged_month_count(expense_id)

    def paid_months(self, expense_id: str) -> List[str]:
        return [str(m) for m in self._payments.months(expense_id)]

    def payments_this_month(self) -> int:
        return self._payments.paid_this_month(e.id for e in self._profile.fixed_expenses)

    def timeline(self, expense_id: str) -> Optional[TimelineProgress]:
        return timeline_progress(self.fixed_expense(expense_id), self._payments)

    def upcoming_deadlines(self) -> List[FixedExpense]:
        return upcoming_deadlines(self._profile.fixed_expenses, self._now())

    # ----------------------------
    # Profile
    # ----------------------------
    def _stored_start_date(self, expense_id: str) -> Optional[datetime]:
        for expense in self._profile.fixed_expenses:
            if expense.id == expense_id:
                return expense.start_date
        return None

    def _normalize_fixed_expense(self, raw) -> FixedExpense:
        data: Dict[str, Any] = raw.model_dump() if isinstance(raw, FixedExpense) else dict(raw)
        amount = data.get("amount") or 0.0
        if amount < 0:
            raise ValidationError("Fixed expense amount cannot be negative.", field="fixed_expenses")
        timeline = data.get("timeline_months")
        if timeline is not None and timeline <= 0:
            raise ValidationError("timeline_months must be greater than zero.", field="fixed_expenses")
        try:
            category = Category(data.get("category") or Category.OTHER)
        except ValueError:
            raise ValidationError(f"Unsupported category: {data.get('category')}", field="fixed_expenses")
        expense_id = data.get("id") or new_id()
        start = data.get("start_date") or self._stored_start_date(expense_id)
        return FixedExpense(
            id=expense_id,
            name=data.get("name") or "",
            amount=float(amount),
            category=category,
            timeline_months=timeline,
            start_date=as_local(start) if start else self._now(),
        )

    async def update_profile(
        self,
        name: Optional[str] = None,
        role: Optional[str] = None,
        income: Optional[float] = None,
        fixed_expenses: Optional[Iterable] = None,
    ) -> UserProfile:
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if role is not None:
            try:
                changes["role"] = UserRole(role)
            except ValueError:
                raise ValidationError(f"Unsupported role: {role}", field="role")
        if income is not None:
            if income < 0:
                raise ValidationError("income cannot be negative.", field="income")
            changes["income"] = float(income)
        if fixed_expenses is not None:
            expenses = [self._normalize_fixed_expense(e) for e in fixed_expenses]
            ids = [e.id for e in expenses]
            if len(ids) != len(set(ids)):
                raise ValidationError("Fixed expense ids must be unique.", field="fixed_expenses")
            changes["fixed_expenses"] = expenses

        previous = self._profile
        self._profile = apply_budget(previous.model_copy(update=changes))
        await self._persist(lambda: setattr(self, "_profile", previous), self._store.save_profile, self._profile)
        logger.info("Profile updated for user %s", self.user_id)
        return self._profile

    # ----------------------------
    # Transactions
    # ----------------------------
    async def add_transaction(self, amount: float, category, description: str = "") -> Transaction:
        snapshot = self._ledger.transactions
        txn = self._ledger.add(amount, category, description)
        await self._persist(lambda: self._ledger.restore(snapshot), self._store.save_transaction, txn)
        logger.info("Transaction %s added for user %s", txn.id, self.user_id)
        if self.over_daily_limit():
            logger.info("User %s is over the daily limit", self.user_id)
        return txn

    async def edit_transaction(self, transaction_id: str, **changes) -> Transaction:
        snapshot = self._ledger.transactions
        txn = self._ledger.edit(transaction_id, **changes)
        await self._persist(lambda: self._ledger.restore(snapshot), self._store.save_transaction, txn)
        logger.info("Transaction %s updated for user %s", transaction_id, self.user_id)
        return txn

    async def delete_transaction(self, transaction_id: str) -> bool:
        snapshot = self._ledger.transactions
        removed = self._ledger.remove(transaction_id)
        if removed is None:
            return False
        await self._persist(lambda: self._ledger.restore(snapshot), self._store.delete_transaction, transaction_id)
        logger.info("Transaction %s deleted for user %s", transaction_id, self.user_id)
        return True

    # ----------------------------
    # Goals
    # ----------------------------
    async def add_goal(
        self,
        name: str,
        target_amount: float,
        monthly_contribution: float,
        timeline_months: Optional[int] = None,
    ) -> Goal:
        snapshot = self._goals.goals
        goal = self._goals.create(name, target_amount, monthly_contribution, timeline_months)
        await self._persist(lambda: self._goals.restore(snapshot), self._store.save_goal, goal)
        logger.info("Goal %s added for user %s", goal.id, self.user_id)
        return goal

    async def edit_goal(self, goal_id: str, **changes) -> Goal:
        snapshot = self._goals.goals
        goal = self._goals.edit(goal_id, **changes)
        await self._persist(lambda: self._goals.restore(snapshot), self._store.save_goal, goal)
        logger.info("Goal %s updated for user %s", goal_id, self.user_id)
        return goal

    async def contribute_to_goal(self, goal_id: str, amount: float) -> Goal:
        snapshot = self._goals.goals
        goal = self._goals.contribute(goal_id, amount)
        await self._persist(lambda: self._goals.restore(snapshot), self._store.save_goal, goal)
        logger.info("Contribution of %.2f to goal %s for user %s", amount, goal_id, self.user_id)
        return goal

    async def delete_goal(self, goal_id: str) -> bool:
        snapshot = self._goals.goals
        if self._goals.remove(goal_id) is None:
            return False
        await self._persist(lambda: self._goals.restore(snapshot), self._store.delete_goal, goal_id)
        logger.info("Goal %s deleted for user %s", goal_id, self.user_id)
        return True

    # ----------------------------
    # Emergency fund
    # ----------------------------
    async def _save_fund(self, ledger: EmergencyFundLedger) -> None:
        previous = self._profile
        self._profile = previous.model_copy(update={"emergency_fund": ledger.fund})
        await self._persist(lambda: setattr(self, "_profile", previous), self._store.save_profile, self._profile)

    async def deposit_emergency_fund(self, amount: float, notes: Optional[str] = None) -> EmergencyFundEntry:
        ledger = self.emergency_fund
        entry = ledger.deposit(amount, notes)
        await self._save_fund(ledger)
        logger.info("Emergency fund deposit %s for user %s", entry.id, self.user_id)
        return entry

    async def withdraw_emergency_fund(self, amount: float, notes: Optional[str] = None) -> EmergencyFundEntry:
        ledger = self.emergency_fund
        entry = ledger.withdraw(amount, notes)
        await self._save_fund(ledger)
        logger.info("Emergency fund withdrawal %s for user %s", entry.id, self.user_id)
        return entry

    async def set_emergency_fund_target(self, target: float) -> None:
        ledger = self.emergency_fund
        ledger.set_target(target)
        await self._save_fund(ledger)
        logger.info("Emergency fund target set to %.2f for user %s", target, self.user_id)

    # ----------------------------
    # Fixed-expense payments
    # ----------------------------
    async def toggle_fixed_expense_paid(self, expense_id: str) -> bool:
        self.fixed_expense(expense_id)
        snapshot = self._payments.snapshot()
        month = self._payments.current_month()
        paid = self._payments.toggle(expense_id)
        await self._persist(
            lambda: self._payments.restore(snapshot),
            self._store.set_payment_mark,
            expense_id,
            month,
            paid,
        )
        logger.info("Fixed expense %s marked %s for %s", expense_id, "paid" if paid else "unpaid", month)
        return paid

    # ----------------------------
    # Account
    # ----------------------------
    async def delete_account(self) -> None:
        try:
            await run_in_threadpool(self._store.delete_user_data, self.user_id)
        except Exception as exc:
            logger.error("Deleting account %s failed: %s", self.user_id, exc)
            raise PersistenceError(f"Could not delete account: {exc}") from exc
        self._profile = apply_budget(UserProfile())
        self._ledger.restore([])
        self._goals.restore([])
        self._payments.restore({})
        logger.info("Account %s deleted", self.user_id)
