from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.orm import declarative_base
from datetime import datetime
import uuid


Base = declarative_base()


def _now():
    return datetime.now()


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="")
    income = Column(Float, nullable=False, default=0.0)
    # Derived from income and fixed expenses; rewritten on every profile save
    monthly_needs = Column(Float, nullable=False, default=0.0)
    monthly_wants = Column(Float, nullable=False, default=0.0)
    monthly_savings = Column(Float, nullable=False, default=0.0)
    daily_spending_limit = Column(Float, nullable=False, default=0.0)
    emergency_fund_target = Column(Float, nullable=False, default=0.0)
    emergency_fund_current = Column(Float, nullable=False, default=0.0)
    emergency_fund_history = Column(JSON, nullable=False, default=list)
    created_date = Column(DateTime, default=_now)
    updated_date = Column(DateTime, default=_now)


class FixedExpense(Base):
    __tablename__ = "fixed_expenses"
    # ids are client-visible, so they are only unique per user
    id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False, default="")
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    timeline_months = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=True)


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(DateTime, nullable=False, index=True)
    updated_date = Column(DateTime, default=_now, onupdate=_now)


class Goal(Base):
    __tablename__ = "goals"
    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    target_amount = Column(Float, nullable=False)
    current_amount = Column(Float, nullable=False, default=0.0)
    monthly_contribution = Column(Float, nullable=False)
    timeline_months = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=True)
    contributions = Column(JSON, nullable=False, default=list)
    created_date = Column(DateTime, default=_now, index=True)
    updated_date = Column(DateTime, default=_now, onupdate=_now)


class FixedExpensePayment(Base):
    __tablename__ = "fixed_expense_payments"
    __table_args__ = (UniqueConstraint("user_id", "expense_id", "year", "month", name="uq_payment_month"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    expense_id = Column(String, index=True, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    marked_date = Column(DateTime, default=_now)


class ChatHistory(Base):
    __tablename__ = "chat_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)  # 'user' or 'ai'
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=_now, index=True)
