from datetime import date, datetime
from enum import Enum
import uuid

from pydantic import BaseModel, Field


class Category(str, Enum):
    FOOD_DINING = "Food & Dining"
    GROCERIES = "Groceries"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    RENT_EMI = "Rent/EMI"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    OTHER = "Other"


EXPENSE_CATEGORIES = [c.value for c in Category]


class UserRole(str, Enum):
    STUDENT = "Student"
    PROFESSIONAL = "Professional"
    HOUSEWIFE = "Housewife"
    UNSET = ""


class EntryType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


def new_id() -> str:
    return uuid.uuid4().hex


def local_now() -> datetime:
    return datetime.now()


def as_local(moment: datetime) -> datetime:
    """Naive local time; naive values are taken as local already."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def local_day(moment: datetime) -> date:
    return as_local(moment).date()


class FixedExpense(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    amount: float = Field(default=0.0, ge=0)
    category: Category = Category.OTHER
    timeline_months: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    amount: float = Field(gt=0)
    category: Category = Category.OTHER
    description: str = ""
    date: datetime


class Contribution(BaseModel):
    amount: float = Field(ge=0)
    date: datetime
    # Only set when the cap cut the contribution down.
    requested_amount: float | None = None


class Goal(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    target_amount: float = Field(gt=0)
    current_amount: float = Field(default=0.0, ge=0)
    monthly_contribution: float = Field(gt=0)
    timeline_months: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    contributions: list[Contribution] = Field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.current_amount >= self.target_amount

    @property
    def remaining_amount(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)

    @property
    def progress_percent(self) -> float:
        return self.current_amount / self.target_amount * 100


class EmergencyFundEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    amount: float = Field(ge=0)
    date: datetime
    type: EntryType
    notes: str | None = None
    requested_amount: float | None = None


class EmergencyFund(BaseModel):
    target: float = Field(default=0.0, ge=0)
    current: float = Field(default=0.0, ge=0)
    history: list[EmergencyFundEntry] = Field(default_factory=list)


class UserProfile(BaseModel):
    name: str = ""
    role: UserRole = UserRole.UNSET
    income: float = Field(default=0.0, ge=0)
    fixed_expenses: list[FixedExpense] = Field(default_factory=list)
    # Derived by budget.allocator.apply_budget; never set directly.
    monthly_needs: float = 0.0
    monthly_wants: float = 0.0
    monthly_savings: float = 0.0
    daily_spending_limit: float = 0.0
    emergency_fund: EmergencyFund = Field(default_factory=EmergencyFund)

    @property
    def onboarding_complete(self) -> bool:
        return self.role != UserRole.UNSET
