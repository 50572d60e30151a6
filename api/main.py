from fastapi import FastAPI, UploadFile, File, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException as FastApiHTTPException
from contextlib import asynccontextmanager
from dataclasses import asdict
from sqlalchemy.exc import IntegrityError
import logging
import os

from api.auth import (
    create_access_token,
    get_current_user,
    get_db_actions,
    hash_password,
    verify_password,
)
from api.input_validation import (
    ChatIn,
    ContributionIn,
    EmergencyFundActionIn,
    EmergencyFundTargetIn,
    GoalIn,
    GoalUpdateIn,
    LoginIn,
    ParseFieldsIn,
    ProfileUpdateIn,
    RegisterIn,
    SpeechIn,
    TransactionIn,
    TransactionUpdateIn,
)
from budget import export
from budget.errors import NotFoundError, PersistenceError, ValidationError as BudgetValidationError
from budget.goals import project_timeline
from budget.ledger import aggregate_by_category
from budget.metrics import MIN_TRANSACTIONS_FOR_FORECAST, available_for_emergency_fund, overall_spending
from budget.models import Goal, local_now
from budget.state import ProfileState
from database.core import init_db
from database.repo import DatabaseActions
from pipeline.advisor import (
    AssistantInput,
    ExpensePoint,
    FinanceAdvisor,
    GoalBrief,
    GoalPlan,
    NamedAmount,
    RecommendationsInput,
    SpendingAlertsInput,
)
from pipeline.field_parser import FieldParser
from pipeline.ocr_model import ExpenseExtractor
from pipeline.speech import SpeechTranscriber

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger("budget-api")

FRONTEND_ORIGINS = [o.strip() for o in os.getenv("FRONTEND_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
ALERT_HISTORY_LIMIT = 20


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Smart Budget Planner API", version="1.0", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

advisor = FinanceAdvisor()
field_parser = FieldParser()
extractor = ExpenseExtractor(field_parser=field_parser)
transcriber = SpeechTranscriber()


def get_advisor() -> FinanceAdvisor:
    return advisor

def get_field_parser() -> FieldParser:
    return field_parser

def get_extractor() -> ExpenseExtractor:
    return extractor

def get_transcriber() -> SpeechTranscriber:
    return transcriber


async def get_state(current: dict = Depends(get_current_user), db: DatabaseActions = Depends(get_db_actions)) -> ProfileState:
    return await ProfileState.load(db, current["user_id"])


# ---------- Unified response helpers ----------
def ok(data=None, message="OK", status_code: int = 200):
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": True, "message": message, "data": data, "error": None}),
    )

def fail(message="Error", code="ERROR", details=None, status_code: int = 400):
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "message": message, "data": None, "error": {"code": code, "details": details}}),
    )


# Centralized exception shaping
@app.exception_handler(FastApiHTTPException)
async def http_exception_handler(request: Request, exc: FastApiHTTPException):
    return fail(message=exc.detail if isinstance(exc.detail, str) else "HTTP error", code=f"HTTP_{exc.status_code}", details=exc.detail, status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return fail(message="Validation error", code="VALIDATION_ERROR", details=exc.errors(), status_code=422)

@app.exception_handler(BudgetValidationError)
async def budget_validation_handler(request: Request, exc: BudgetValidationError):
    return fail(message=str(exc), code="VALIDATION_ERROR", details={"field": exc.field}, status_code=422)

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return fail(message=str(exc), code="NOT_FOUND", details={"kind": exc.kind, "id": exc.entity_id}, status_code=404)

@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    return fail(message="Could not save your changes. Please try again.", code="PERSISTENCE_FAILED", details=str(exc), status_code=503)

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return fail(message="An unexpected error occurred.", code="UNEXPECTED_ERROR", details=str(exc), status_code=500)


# ---------- Views ----------
def goal_view(goal: Goal) -> dict:
    return {
        **goal.model_dump(mode="json"),
        "completed": goal.is_completed,
        "remaining_amount": goal.remaining_amount,
        "progress_percent": goal.progress_percent,
        "projected_months": project_timeline(goal.target_amount, goal.monthly_contribution),
    }

def profile_view(state: ProfileState) -> dict:
    return {
        **state.profile.model_dump(mode="json"),
        "onboarding_complete": state.onboarding_complete,
    }


# ---------- Auth endpoints ----------
@app.post("/auth/register")
def register(payload: RegisterIn, db: DatabaseActions = Depends(get_db_actions)):
    try:
        profile = db.create_user_credentials(
            name=payload.name,
            email=payload.email,
            username=payload.username,
            password_hash=hash_password(payload.password),
        )
    except IntegrityError as e:
        return fail(message="Email or username already in use", code="DUPLICATE_KEY", details=str(e.orig), status_code=409)
    return ok(data={"user_id": profile["user_id"], "email": profile["email"], "username": profile["username"]}, message="Registered")

@app.post("/auth/login")
def login(payload: LoginIn, db: DatabaseActions = Depends(get_db_actions)):
    u = db.get_credentials(payload.login)
    if not u or not verify_password(payload.password, u["password_hash"]):
        return fail(message="Invalid credentials", code="INVALID_CREDENTIALS", status_code=401)
    token = create_access_token(user_id=u["user_id"], ttl_seconds=payload.ttl_seconds)
    return ok(data={"access_token": token, "token_type": "bearer", "user_id": u["user_id"], "name": u["name"]}, message="Logged in")


# ---------- Profile ----------
@app.get("/me/profile")
def me_profile(state: ProfileState = Depends(get_state)):
    return ok(data=profile_view(state), message="Profile")

@app.put("/me/profile")
async def update_my_profile(payload: ProfileUpdateIn, state: ProfileState = Depends(get_state)):
    fixed = None
    if payload.fixed_expenses is not None:
        fixed = [e.model_dump() for e in payload.fixed_expenses]
    await state.update_profile(
        name=payload.name,
        role=payload.role.value if payload.role is not None else None,
        income=payload.income,
        fixed_expenses=fixed,
    )
    return ok(data=profile_view(state), message="Profile updated successfully")

@app.delete("/me/profile")
async def delete_my_profile(state: ProfileState = Depends(get_state)):
    await state.delete_account()
    return ok(data={"user_id": state.user_id}, message="Your account and all data have been deleted")

@app.get("/me/dashboard")
def me_dashboard(state: ProfileState = Depends(get_state)):
    summary = asdict(state.dashboard())
    summary["suggested_daily_limit"] = state.suggested_daily_limit()
    return ok(data=summary, message="Dashboard")


# ---------- Transactions ----------
@app.get("/me/transactions")
def list_transactions(state: ProfileState = Depends(get_state)):
    return ok(data={"items": state.transactions, "overall_spending": overall_spending(state.transactions)}, message="Transactions")

@app.get("/me/transactions/by-category")
def transactions_by_category(state: ProfileState = Depends(get_state)):
    return ok(data=aggregate_by_category(state.transactions), message="Spending by category")

@app.post("/me/transactions")
async def add_transaction(payload: TransactionIn, state: ProfileState = Depends(get_state)):
    txn = await state.add_transaction(payload.amount, payload.category, payload.description)
    return ok(
        data={
            "transaction": txn,
            "todays_spending": state.todays_spending(),
            "remaining_today": state.remaining_today(),
            "over_daily_limit": state.over_daily_limit(),
        },
        message="Transaction added successfully",
        status_code=201,
    )

@app.put("/me/transactions/{transaction_id}")
async def update_transaction(transaction_id: str, payload: TransactionUpdateIn, state: ProfileState = Depends(get_state)):
    txn = await state.edit_transaction(transaction_id, **payload.model_dump(exclude_none=True))
    return ok(data=txn, message="Transaction updated successfully")

@app.delete("/me/transactions/{transaction_id}")
async def delete_transaction(transaction_id: str, state: ProfileState = Depends(get_state)):
    deleted = await state.delete_transaction(transaction_id)
    return ok(data={"deleted": deleted}, message="Transaction deleted successfully" if deleted else "Nothing to delete")


# ---------- Goals ----------
@app.get("/me/goals")
def list_goals(state: ProfileState = Depends(get_state)):
    dashboard = state.dashboard()
    return ok(
        data={
            "items": [goal_view(g) for g in state.goals],
            "committed_contributions": dashboard.committed_goal_contributions,
            "monthly_savings": state.profile.monthly_savings,
            "overcommitted": dashboard.goals_overcommitted,
            "total_saved": dashboard.total_goal_saved,
            "total_target": dashboard.total_goal_target,
        },
        message="Goals",
    )

@app.post("/me/goals")
async def add_goal(payload: GoalIn, state: ProfileState = Depends(get_state)):
    goal = await state.add_goal(payload.name, payload.target_amount, payload.monthly_contribution, payload.timeline_months)
    return ok(data=goal_view(goal), message=f'You\'re now saving for "{goal.name}".', status_code=201)

@app.put("/me/goals/{goal_id}")
async def update_goal(goal_id: str, payload: GoalUpdateIn, state: ProfileState = Depends(get_state)):
    goal = await state.edit_goal(goal_id, **payload.model_dump(exclude_none=True))
    return ok(data=goal_view(goal), message="Your goal has been successfully updated.")

@app.post("/me/goals/{goal_id}/contributions")
async def contribute(goal_id: str, payload: ContributionIn, state: ProfileState = Depends(get_state)):
    goal = await state.contribute_to_goal(goal_id, payload.amount)
    return ok(data=goal_view(goal), message=f"You've added ₹{goal.contributions[-1].amount:.2f} to your goal.")

@app.delete("/me/goals/{goal_id}")
async def delete_goal(goal_id: str, state: ProfileState = Depends(get_state)):
    deleted = await state.delete_goal(goal_id)
    if not deleted:
        return fail(message="Goal not found", code="NOT_FOUND", status_code=404)
    return ok(data={"deleted": deleted}, message="Goal deleted")


# ---------- Emergency fund ----------
def emergency_fund_view(state: ProfileState) -> dict:
    fund = state.emergency_fund
    reached = fund.reached_milestone()
    return {
        "target": fund.fund.target,
        "current": fund.fund.current,
        "progress_percent": fund.progress_percent(),
        "milestones": [asdict(m) for m in fund.milestones()],
        "reached_milestone": reached.label if reached else None,
        "total_deposits": fund.total_deposits(),
        "total_withdrawals": fund.total_withdrawals(),
        "deposits_this_month": fund.deposits_this_month(),
        "available_monthly": available_for_emergency_fund(state.profile.monthly_savings, state.goals),
        "history": fund.history(),
    }

@app.get("/me/emergency-fund")
def get_emergency_fund(state: ProfileState = Depends(get_state)):
    return ok(data=emergency_fund_view(state), message="Emergency fund")

@app.post("/me/emergency-fund/deposit")
async def deposit(payload: EmergencyFundActionIn, state: ProfileState = Depends(get_state)):
    entry = await state.deposit_emergency_fund(payload.amount, payload.notes)
    return ok(data={"entry": entry, "fund": emergency_fund_view(state)}, message=f"₹{entry.amount:.2f} has been added to your emergency fund.")

@app.post("/me/emergency-fund/withdraw")
async def withdraw(payload: EmergencyFundActionIn, state: ProfileState = Depends(get_state)):
    entry = await state.withdraw_emergency_fund(payload.amount, payload.notes)
    return ok(data={"entry": entry, "fund": emergency_fund_view(state)}, message=f"₹{entry.amount:.2f} has been withdrawn from your emergency fund.")

@app.put("/me/emergency-fund/target")
async def set_target(payload: EmergencyFundTargetIn, state: ProfileState = Depends(get_state)):
    await state.set_emergency_fund_target(payload.target)
    return ok(data=emergency_fund_view(state), message=f"Your new emergency fund target is ₹{payload.target:.2f}.")


# ---------- Fixed expenses ----------
@app.get("/me/fixed-expenses")
def list_fixed_expenses(state: ProfileState = Depends(get_state)):
    items = []
    for expense in state.profile.fixed_expenses:
        timeline = state.timeline(expense.id)
        items.append({
            **expense.model_dump(mode="json"),
            "paid_this_month": state.is_fixed_expense_paid(expense.id),
            "logged_months": state.logged_payment_count(expense.id),
            "paid_months": state.paid_months(expense.id),
            "timeline": asdict(timeline) if timeline else None,
        })
    return ok(
        data={
            "items": items,
            "monthly_total": state.profile.monthly_needs,
            "paid_this_month": state.payments_this_month(),
            "upcoming_deadlines": [e.id for e in state.upcoming_deadlines()],
        },
        message="Fixed expenses",
    )

@app.post("/me/fixed-expenses/{expense_id}/toggle-paid")
async def toggle_paid(expense_id: str, state: ProfileState = Depends(get_state)):
    paid = await state.toggle_fixed_expense_paid(expense_id)
    return ok(
        data={"expense_id": expense_id, "paid": paid, "logged_months": state.logged_payment_count(expense_id)},
        message="Expense marked as paid." if paid else "Expense marked as unpaid.",
    )


# ---------- Exports ----------
@app.get("/me/export/report")
def export_report(state: ProfileState = Depends(get_state)):
    return ok(data=export.build_report(state.profile, state.transactions, state.goals, local_now()), message="Report")

@app.get("/me/export/transactions.csv")
def export_transactions(state: ProfileState = Depends(get_state)):
    return Response(
        content=export.transactions_to_csv(state.transactions),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )

@app.get("/me/export/fixed-expenses.csv")
def export_fixed_expenses(state: ProfileState = Depends(get_state)):
    return Response(
        content=export.fixed_expenses_to_csv(state.profile.fixed_expenses),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="fixed-expenses.csv"'},
    )


# ---------- AI advice ----------
def build_assistant_input(state: ProfileState, query: str) -> AssistantInput:
    profile = state.profile
    return AssistantInput(
        query=query,
        role=profile.role.value,
        income=profile.income,
        fixed_expenses=[NamedAmount(name=e.name, amount=e.amount) for e in profile.fixed_expenses],
        daily_spending_limit=profile.daily_spending_limit,
        savings=sum(g.current_amount for g in state.goals),
    )

def build_recommendations_input(state: ProfileState) -> RecommendationsInput:
    profile = state.profile
    return RecommendationsInput(
        income=profile.income,
        fixed_expenses=[NamedAmount(name=e.name, amount=e.amount) for e in profile.fixed_expenses],
        goals=[GoalBrief(name=g.name, target=g.target_amount, timeline_months=g.timeline_months) for g in state.goals],
        current_expenses=[NamedAmount(name=t.category.value, amount=t.amount) for t in state.transactions],
        discretionary_spending_limit=profile.daily_spending_limit,
    )

def build_alerts_input(state: ProfileState) -> SpendingAlertsInput:
    return SpendingAlertsInput(
        income=state.profile.income,
        goals=[
            GoalPlan(name=g.name, target_amount=g.target_amount, monthly_contribution=g.monthly_contribution)
            for g in state.goals
        ],
        expenses_data=[
            ExpensePoint(amount=t.amount, category=t.category.value, date=t.date.isoformat())
            for t in state.transactions[:ALERT_HISTORY_LIMIT]
        ],
    )


@app.post("/ai/chat")
def chat(
    payload: ChatIn,
    state: ProfileState = Depends(get_state),
    advisor: FinanceAdvisor = Depends(get_advisor),
    db: DatabaseActions = Depends(get_db_actions),
):
    if not state.onboarding_complete:
        return fail(message="Please complete onboarding to use the chatbot.", code="ONBOARDING_INCOMPLETE", status_code=400)
    assistant_input = build_assistant_input(state, payload.message)
    result = advisor.ask(assistant_input)
    db.add_chat_message(user_id=state.user_id, role="user", content=payload.message)
    db.add_chat_message(user_id=state.user_id, role="ai", content=result.response)
    data = {"reply": result.response}
    if payload.include_context:
        data["context"] = assistant_input.model_dump()
    return ok(data=data, message="Chat")

@app.get("/ai/chat/history")
def get_chat_history(current_user: dict = Depends(get_current_user), db: DatabaseActions = Depends(get_db_actions)):
    history = db.get_chat_history(user_id=current_user["user_id"])
    return ok(data=history, message="Chat history retrieved")

@app.get("/ai/recommendations")
def recommendations(state: ProfileState = Depends(get_state), advisor: FinanceAdvisor = Depends(get_advisor)):
    if not state.onboarding_complete:
        return fail(message="Please complete onboarding first.", code="ONBOARDING_INCOMPLETE", status_code=400)
    result = advisor.recommend(build_recommendations_input(state))
    return ok(data=result, message="Recommendations")

@app.get("/ai/spending-alerts")
def spending_alerts(state: ProfileState = Depends(get_state), advisor: FinanceAdvisor = Depends(get_advisor)):
    if not state.onboarding_complete:
        return fail(message="Please complete onboarding first.", code="ONBOARDING_INCOMPLETE", status_code=400)
    if len(state.transactions) < MIN_TRANSACTIONS_FOR_FORECAST:
        return fail(
            message=f"Log at least {MIN_TRANSACTIONS_FOR_FORECAST} expenses before getting a forecast.",
            code="NOT_ENOUGH_DATA",
            status_code=400,
        )
    result = advisor.spending_alerts(build_alerts_input(state))
    limit = state.suggested_daily_limit()
    return ok(
        data={
            "suggested_daily_limit": limit,
            "predicted_limit": f"Based on your recent spending, we recommend a daily limit of around ₹{limit:.2f} for the next week to stay on track.",
            "suggestion": result.suggestion,
        },
        message="Spending forecast",
    )


# ---------- Capture (voice / text / receipt) ----------
@app.post("/capture/speech-to-text")
def speech_to_text(payload: SpeechIn, transcriber: SpeechTranscriber = Depends(get_transcriber), current=Depends(get_current_user)):
    result = transcriber.transcribe(payload.audio, payload.mime_type)
    if result.error:
        return fail(message=result.error, code="SPEECH_TO_TEXT_FAILED", details={"status": result.status}, status_code=502)
    return ok(data={"text": result.text}, message="Transcribed")

@app.post("/capture/parse-fields")
def parse_fields(payload: ParseFieldsIn, parser: FieldParser = Depends(get_field_parser), current=Depends(get_current_user)):
    result = parser.parse(payload.text, target_form=payload.target_form)
    return ok(data=result, message="Parsed" if not result.error else result.error)

@app.post("/capture/extract")
async def extraction(
    file: UploadFile = File(..., description="upload receipt image"),
    extractor: ExpenseExtractor = Depends(get_extractor),
    current=Depends(get_current_user),
):
    image_bytes = await file.read()
    if not image_bytes:
        return fail(message="Empty upload", code="EMPTY_FILE", status_code=400)
    mime_type = file.content_type or "image/jpeg"
    result = extractor.extract_expense(image_bytes, mime_type)
    return ok(data=result, message="Extracted" if not result.error else result.error)
