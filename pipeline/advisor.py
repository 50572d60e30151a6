"""LLM-backed advice: the finance assistant, expense recommendations and
spending alerts.

None of these raise. Any failure upstream (no key, network, empty or
malformed reply) is logged and answered with a fixed fallback payload of
the same shape as a real answer.
"""
import logging
from typing import List, Literal, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, Field

from pipeline.llm import build_chat_model, message_text

logger = logging.getLogger(__name__)

ASSISTANT_FALLBACK = "Sorry, I am having trouble connecting to my knowledge base right now. Please try again in a moment."
RECOMMENDATIONS_FALLBACK = "Sorry, I am having trouble generating recommendations right now. Please try again in a moment."
ALERTS_FALLBACK = "The AI service is temporarily unavailable. Please try again later."


class NamedAmount(BaseModel):
    name: str
    amount: float


class GoalBrief(BaseModel):
    name: str
    target: float
    timeline_months: Optional[int] = None


class GoalPlan(BaseModel):
    name: str
    target_amount: float
    monthly_contribution: float


class ExpensePoint(BaseModel):
    amount: float
    category: str
    date: str


class AssistantInput(BaseModel):
    query: str
    role: Literal["Student", "Professional", "Housewife"]
    income: float
    fixed_expenses: List[NamedAmount] = Field(default_factory=list)
    daily_spending_limit: float
    savings: float


class AssistantOutput(BaseModel):
    response: str


class RecommendationsInput(BaseModel):
    income: float
    fixed_expenses: List[NamedAmount] = Field(default_factory=list)
    goals: List[GoalBrief] = Field(default_factory=list)
    current_expenses: List[NamedAmount] = Field(default_factory=list)
    discretionary_spending_limit: float


class RecommendationsOutput(BaseModel):
    recommendations: List[str]


class SpendingAlertsInput(BaseModel):
    income: float
    goals: List[GoalPlan] = Field(default_factory=list)
    expenses_data: List[ExpensePoint] = Field(default_factory=list)


class SpendingAlertsOutput(BaseModel):
    suggestion: str


ASSISTANT_PROMPT = (
    "You are FinMate, a friendly personal finance assistant for users in India; amounts are in rupees. "
    "The JSON context holds the user's role, monthly income, fixed monthly expenses (needs), "
    "daily spending limit (wants) and monthly savings. "
    "Acknowledge the question, do any arithmetic it needs against that budget, give a direct answer "
    "and finish with one or two tips suited to the user's role. Stay encouraging."
)

RECOMMENDATIONS_PROMPT = (
    "You are a personal finance advisor for users in India; amounts are in rupees. "
    "From the JSON context (income, fixed expenses, goals, recent discretionary spending and the daily "
    "limit for wants) pick the two or three spending categories with the easiest wins and give one "
    "short, specific tip for each. Only suggest cutting spending, never earning more. "
    'Reply with JSON only: {"recommendations": ["tip", ...]}'
)

ALERTS_PROMPT = (
    "You are FinMate's spending analyst. From the JSON context (income, goals and recent expenses) find "
    "the category with the highest spend and write one friendly suggestion for the coming week: a small "
    "cut in that category and which goal it would bring closer. "
    'Reply with JSON only: {"suggestion": "..."}'
)


class FinanceAdvisor:
    def __init__(self, llm=None):
        self._llm = llm
        self._parser = JsonOutputParser()

    @property
    def llm(self):
        if self._llm is None:
            self._llm = build_chat_model()
        return self._llm

    def _invoke(self, system_prompt: str, payload: BaseModel, question: Optional[str] = None) -> str:
        context_blob = payload.model_dump_json(exclude={"query"})
        human = f"Context(JSON): {context_blob}"
        if question:
            human += f"\n\nUser: {question}"
        resp = self.llm.invoke([SystemMessage(content=system_prompt), HumanMessage(content=human)])
        text = message_text(resp).strip()
        if not text:
            raise ValueError("AI model returned no output.")
        return text

    def ask(self, payload: AssistantInput) -> AssistantOutput:
        try:
            return AssistantOutput(response=self._invoke(ASSISTANT_PROMPT, payload, payload.query))
        except Exception as e:
            logger.error("Finance assistant failed: %s", e)
            return AssistantOutput(response=ASSISTANT_FALLBACK)

    def recommend(self, payload: RecommendationsInput) -> RecommendationsOutput:
        try:
            data = self._parser.parse(self._invoke(RECOMMENDATIONS_PROMPT, payload))
            result = RecommendationsOutput.model_validate(data)
            if not result.recommendations:
                raise ValueError("AI model returned no recommendations.")
            return result
        except Exception as e:
            logger.error("Expense recommendations failed: %s", e)
            return RecommendationsOutput(recommendations=[RECOMMENDATIONS_FALLBACK])

    def spending_alerts(self, payload: SpendingAlertsInput) -> SpendingAlertsOutput:
        try:
            data = self._parser.parse(self._invoke(ALERTS_PROMPT, payload))
            return SpendingAlertsOutput.model_validate(data)
        except Exception as e:
            logger.error("Spending alerts failed: %s", e)
            return SpendingAlertsOutput(suggestion=ALERTS_FALLBACK)
