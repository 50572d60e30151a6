import logging
import os
import re
from typing import Any, Optional

import requests
from pydantic import BaseModel

from budget.errors import ValidationError
from pipeline.llm import google_api_key

logger = logging.getLogger(__name__)

SPEECH_API_URL = os.getenv("SPEECH_API_URL", "https://speech.googleapis.com/v1/speech:recognize")
SPEECH_LANGUAGE_CODE = os.getenv("SPEECH_LANGUAGE_CODE", "en-US")
PHRASE_HINTS = ["expense", "rent", "subscription", "EMI", "lunch", "dinner", "groceries"]

_DATA_URL_PREFIX = re.compile(r"^data:.*;base64,")


class TranscriptionResult(BaseModel):
    text: str = ""
    error: Optional[str] = None
    status: Optional[int] = None


def encoding_for(mime_type: str) -> str:
    if "webm" in mime_type:
        return "WEBM_OPUS"
    if "ogg" in mime_type:
        return "OGG_OPUS"
    if "wav" in mime_type:
        return "LINEAR16"
    return "ENCODING_UNSPECIFIED"


def build_request(audio_b64: str, mime_type: str) -> dict:
    encoding = encoding_for(mime_type)
    config: dict[str, Any] = {
        "encoding": encoding,
        "languageCode": SPEECH_LANGUAGE_CODE,
        "enableAutomaticPunctuation": True,
        "audioChannelCount": 1,
        "speechContexts": [{"phrases": PHRASE_HINTS}],
        "maxAlternatives": 1,
    }
    # Opus containers carry their own sample rate
    if encoding == "LINEAR16":
        config["sampleRateHertz"] = 16000
    return {"config": config, "audio": {"content": audio_b64}}


def first_transcript(body: Any) -> Optional[str]:
    """Top transcript of a recognize response; "" when nothing was heard, None when the shape is wrong."""
    if not isinstance(body, dict):
        return None
    results = body.get("results") or []
    if not isinstance(results, list):
        return None
    if not results:
        return ""
    first = results[0]
    if not isinstance(first, dict):
        return None
    alternatives = first.get("alternatives") or []
    if not isinstance(alternatives, list):
        return None
    if not alternatives:
        return ""
    transcript = alternatives[0].get("transcript", "") if isinstance(alternatives[0], dict) else None
    return transcript if isinstance(transcript, str) else None


class SpeechTranscriber:
    def __init__(self, api_key: Optional[str] = None, session=None, timeout: float = 30):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def transcribe(self, audio: str, mime_type: str = "audio/webm") -> TranscriptionResult:
        """Transcribe base64 (or data-URL) audio; failures come back as ``error``, never raised."""
        if not audio:
            raise ValidationError("Missing audio payload", field="audio")
        api_key = self.api_key or google_api_key()
        if not api_key:
            return TranscriptionResult(error="Missing API key: set GOOGLE_API_KEY or GEMINI_API_KEY")

        audio_b64 = _DATA_URL_PREFIX.sub("", audio)
        try:
            resp = self.session.post(
                SPEECH_API_URL,
                params={"key": api_key},
                json=build_request(audio_b64, mime_type),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("speech-to-text request failed: %s", e)
            return TranscriptionResult(error=f"Speech-to-text request failed: {e}")

        if not resp.ok:
            logger.error("speech-to-text upstream error %s: %s", resp.status_code, resp.text[:500])
            return TranscriptionResult(error="Speech-to-text API error", status=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            return TranscriptionResult(error="Speech-to-text returned a non-JSON body", status=resp.status_code)
        transcript = first_transcript(body)
        if transcript is None:
            logger.error("speech-to-text returned an unexpected body: %r", body)
            return TranscriptionResult(error="Speech-to-text returned an unexpected body", status=resp.status_code)
        return TranscriptionResult(text=transcript, status=resp.status_code)
