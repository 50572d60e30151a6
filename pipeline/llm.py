import os

from langchain_google_genai import ChatGoogleGenerativeAI

CHAT_MODEL_NAME = os.getenv("CHAT_MODEL_NAME", "gemini-2.5-flash")


def google_api_key():
    return os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")


def build_chat_model(model_name: str = CHAT_MODEL_NAME, temperature: float = 0.2):
    return ChatGoogleGenerativeAI(model=model_name, google_api_key=google_api_key(), temperature=temperature)


def message_text(resp) -> str:
    """Plain text of a chat model reply, whatever shape the content comes in."""
    content = getattr(resp, "content", resp)
    if isinstance(content, list):
        parts = [p.get("text", "") if isinstance(p, dict) else str(p) for p in content]
        return "".join(parts)
    return content if isinstance(content, str) else str(content)
