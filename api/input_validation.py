from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from budget.models import Category, UserRole


class RegisterIn(BaseModel):
    name: str = ""
    email: str
    username: str
    password: str = Field(min_length=6)

class LoginIn(BaseModel):
    login: str        # email or username
    password: str
    ttl_seconds: int | None = None


class FixedExpenseIn(BaseModel):
    id: str | None = None
    name: str = ""
    amount: float = Field(default=0.0, ge=0)
    category: Category = Category.OTHER
    timeline_months: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None


# partial update; derived budget fields are not accepted here
class ProfileUpdateIn(BaseModel):
    name: str | None = None
    role: UserRole | None = None
    income: float | None = Field(default=None, ge=0)
    fixed_expenses: list[FixedExpenseIn] | None = None


class TransactionIn(BaseModel):
    amount: float = Field(gt=0)
    category: Category
    description: str = ""

class TransactionUpdateIn(BaseModel):
    amount: float | None = Field(default=None, gt=0)
    category: Category | None = None
    description: str | None = None


class GoalIn(BaseModel):
    name: str = Field(min_length=1)
    target_amount: float = Field(gt=0)
    monthly_contribution: float = Field(gt=0)
    timeline_months: int | None = Field(default=None, gt=0)

class GoalUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    target_amount: float | None = Field(default=None, gt=0)
    monthly_contribution: float | None = Field(default=None, gt=0)
    timeline_months: int | None = Field(default=None, gt=0)

class ContributionIn(BaseModel):
    amount: float = Field(gt=0)


class EmergencyFundActionIn(BaseModel):
    amount: float = Field(gt=0)
    notes: str | None = None

class EmergencyFundTargetIn(BaseModel):
    target: float = Field(ge=0)


class ChatIn(BaseModel):
    message: str = Field(min_length=1)
    include_context: bool = False  # return the payload sent to the model, for debugging


class SpeechIn(BaseModel):
    audio: str = Field(min_length=1)    # base64 or data URL
    mime_type: str = "audio/webm"

class ParseFieldsIn(BaseModel):
    text: str = Field(min_length=1)
    target_form: Literal["onboarding", "expense"] = "onboarding"
