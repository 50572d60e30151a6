import base64
import logging
from typing import Optional

from langchain_core.messages import HumanMessage

from budget.models import Category
from pipeline.field_parser import FieldParseResult, FieldParser
from pipeline.llm import build_chat_model, message_text

logger = logging.getLogger(__name__)

OCR_PROMPT = (
    "Transcribe all of the text on this receipt or bill exactly as printed, line by line, "
    "including item names, prices and the total. Output plain text only."
)


def image_to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("utf-8")


class ExpenseExtractor:
    """Receipt image -> text (Gemini vision) -> expense fields."""

    def __init__(self, llm=None, field_parser: Optional[FieldParser] = None):
        self._llm = llm
        self.field_parser = field_parser or FieldParser()

    @property
    def llm(self):
        if self._llm is None:
            self._llm = build_chat_model(temperature=0)
        return self._llm

    def read_text(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        msg = HumanMessage(content=[
            {"type": "text", "text": OCR_PROMPT},
            {"type": "image_url", "image_url": f"data:{mime_type};base64,{image_to_base64(image_bytes)}"},
        ])
        return message_text(self.llm.invoke([msg])).strip()

    def extract_expense(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> FieldParseResult:
        try:
            text = self.read_text(image_bytes, mime_type)
        except Exception as e:
            logger.error("Receipt OCR failed: %s", e)
            text = ""
        if not text:
            return FieldParseResult(
                parsed={"description": "Expense", "category": Category.OTHER.value, "amount_source": "none"},
                error="Could not read any text from the image",
            )
        return self.field_parser.parse(text, target_form="expense")
