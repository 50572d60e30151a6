"""Turn free text (a transcript or OCR'd receipt) into form fields.

Best effort: the model is tried first, then each fallback model, and if
none answers the amount and description are scraped from the text itself.
"""
import logging
import os
import re
from typing import Any, Callable, Dict, List, Literal, Optional

from langchain_core.exceptions import OutputParserException
from langchain_core.messages import HumanMessage
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, Field

from budget.errors import ValidationError
from budget.models import EXPENSE_CATEGORIES, Category
from pipeline.llm import CHAT_MODEL_NAME, build_chat_model, message_text

logger = logging.getLogger(__name__)

PARSE_FIELDS_MODEL = os.getenv("PARSE_FIELDS_MODEL", CHAT_MODEL_NAME)
PARSE_FIELDS_MODEL_FALLBACKS = [
    m.strip()
    for m in os.getenv("PARSE_FIELDS_MODEL_FALLBACKS", "gemini-2.0-flash,gemini-1.5-pro").split(",")
    if m.strip()
]
MAX_DESCRIPTION_WORDS = 6

TargetForm = Literal["onboarding", "expense"]

INSTRUCTIONS = {
    "onboarding": (
        "Produce a JSON object with keys: role (Student|Professional|Housewife), income (number), "
        "fixed_expenses (array of {name, category, amount, timeline_months, start_date}). "
        "Dates as ISO strings. Leave out anything the input does not mention. Output JSON only."
    ),
    "expense": (
        "Produce a JSON object with keys: description (2-6 words), amount (plain number, the receipt total), "
        f"category (exactly one of: {' | '.join(EXPENSE_CATEGORIES)}; use Other when unsure), "
        "date (ISO date if present). Prefer an explicit Total line; otherwise add up the item prices. "
        "Output JSON only."
    ),
}

CATEGORY_KEYWORDS = [
    (Category.FOOD_DINING, r"food|restaurant|dine|dining|cafe|meal|lunch|dinner|breakfast"),
    (Category.GROCERIES, r"grocer|supermarket|vegetable|fruit|mart"),
    (Category.TRANSPORT, r"taxi|uber|ola|rapido|bus|metro|train|transport|ride|fuel|petrol"),
    (Category.SHOPPING, r"shopping|mall|clothes|apparel|purchase"),
    (Category.ENTERTAINMENT, r"movie|netflix|spotify|entertainment|show"),
    (Category.UTILITIES, r"electric|water|bill|utility|internet|wifi|gas"),
    (Category.RENT_EMI, r"rent|emi|loan|mortgage"),
    (Category.HEALTHCARE, r"doctor|hospital|medicine|clinic|health|pharmacy"),
    (Category.EDUCATION, r"tuition|course|study|education|school|college"),
]

_TOTAL_RE = re.compile(r"total\D{0,12}?(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)


class FieldParseResult(BaseModel):
    parsed: Dict[str, Any] = Field(default_factory=dict)
    raw: str = ""
    error: Optional[str] = None


def normalize_category(raw: Any) -> str:
    if not raw or not isinstance(raw, str):
        return Category.OTHER.value
    for category in EXPENSE_CATEGORIES:
        if raw.strip().lower() == category.lower():
            return category
    lower = raw.lower()
    for category, pattern in CATEGORY_KEYWORDS:
        if re.search(pattern, lower):
            return category.value
    return Category.OTHER.value


def extract_amount(text: Optional[str]) -> Optional[float]:
    """The Total line if there is one, otherwise the largest number in the text."""
    if not text:
        return None
    totals = _TOTAL_RE.findall(text)
    if totals:
        return float(totals[-1].replace(",", ""))
    numbers = []
    for token in _NUMBER_RE.findall(text):
        try:
            value = float(token.replace(",", ""))
        except ValueError:
            continue
        if value > 0:
            numbers.append(value)
    return max(numbers) if numbers else None


def short_description(text: str) -> str:
    cleaned = re.sub(r"[^\w\s]", " ", text)
    words = cleaned.split()
    return " ".join(words[:MAX_DESCRIPTION_WORDS]) or "Expense"


_json_parser = JsonOutputParser()


def _load_json(output: str) -> Dict[str, Any]:
    """Model reply -> dict; a JSON object wrapped in prose is cut out and retried."""
    try:
        data = _json_parser.parse(output)
    except OutputParserException:
        match = _JSON_RE.search(output)
        if not match:
            return {}
        try:
            data = _json_parser.parse(match.group(0))
        except OutputParserException:
            return {}
    return data if isinstance(data, dict) else {}


class FieldParser:
    def __init__(
        self,
        llm_factory: Callable[[str], Any] = build_chat_model,
        model_names: Optional[List[str]] = None,
    ):
        self.llm_factory = llm_factory
        self.model_names = model_names or [PARSE_FIELDS_MODEL, *PARSE_FIELDS_MODEL_FALLBACKS]

    def _call_models(self, prompt: str) -> Optional[str]:
        for model_name in self.model_names:
            try:
                resp = self.llm_factory(model_name).invoke([HumanMessage(content=prompt)])
                logger.info("parse-fields answered by %s", model_name)
                return message_text(resp)
            except Exception as e:
                logger.warning("parse-fields model %s failed: %s", model_name, e)
        return None

    def parse(self, text: str, target_form: TargetForm = "expense") -> FieldParseResult:
        if not text or not text.strip():
            raise ValidationError("Missing text", field="text")
        if target_form not in INSTRUCTIONS:
            raise ValidationError(f"Unsupported target form: {target_form}", field="target_form")

        prompt = f'{INSTRUCTIONS[target_form]}\n\nInput: "{text}"'
        output = self._call_models(prompt)
        if output is None:
            logger.error("parse-fields: every model failed, scraping the text instead")
            amount = extract_amount(text)
            parsed: Dict[str, Any] = {
                "description": short_description(text),
                "category": Category.OTHER.value,
                "amount_source": "fallback" if amount is not None else "none",
            }
            if amount is not None:
                parsed["amount"] = amount
            return FieldParseResult(parsed=parsed, error="Generative API error")

        parsed = _load_json(output)
        try:
            if target_form == "onboarding":
                return FieldParseResult(parsed=self._normalize_onboarding(parsed), raw=output)
            return FieldParseResult(parsed=self._normalize_expense(parsed, output, text), raw=output)
        except Exception as e:
            logger.error("parse-fields: could not use the model reply: %s", e)
            return FieldParseResult(raw=output, error="Could not understand the model reply")

    def _normalize_expense(self, parsed: Dict[str, Any], output: str, text: str) -> Dict[str, Any]:
        description = parsed.get("description")
        if isinstance(description, str) and description.strip():
            parsed["description"] = " ".join(description.split()[:MAX_DESCRIPTION_WORDS])
        else:
            parsed["description"] = short_description(text)

        amount = parsed.get("amount", parsed.get("total", parsed.get("Total")))
        try:
            parsed["amount"] = float(amount)
            parsed["amount_source"] = "model"
        except (TypeError, ValueError):
            fallback = extract_amount(output)
            if fallback is None:
                fallback = extract_amount(text)
            parsed.pop("amount", None)
            if fallback is not None:
                parsed["amount"] = fallback
            parsed["amount_source"] = "fallback" if fallback is not None else "none"
        parsed.pop("total", None)
        parsed.pop("Total", None)

        parsed["category"] = normalize_category(parsed.get("category"))
        date = parsed.get("date")
        if date is not None and not isinstance(date, str):
            parsed.pop("date")
        return parsed

    def _normalize_onboarding(self, parsed: Dict[str, Any]) -> Dict[str, Any]:
        expenses = parsed.get("fixed_expenses")
        if isinstance(expenses, list):
            parsed["fixed_expenses"] = [
                {**e, "category": normalize_category(e.get("category") or e.get("name"))}
                for e in expenses
                if isinstance(e, dict)
            ]
        return parsed
