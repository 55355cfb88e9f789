"""
================================================================================
SOCIALNET - CONTENT MODERATION GATE
================================================================================

User-authored text is classified before it is stored. A moderator exposes a
single synchronous call:

    moderator.classify(text) -> Verdict.SAFE | Verdict.UNSAFE

Implementations:
    GeminiModerator   Google Generative Language API (generateContent)
    KeywordModerator  Local blocked-term list, used when no API key is set

ensure_safe() is what services call. It raises ContentRejected for unsafe
text and treats any failure of the moderator itself as safe (fail-open), so
the moderation service is never a hard dependency of a write.

SETTINGS
================================================================================
CONTENT_MODERATOR         Dotted path of the moderator class
MODERATION_API_KEY        API key (GOOGLE_AI_API_KEY env var)
MODERATION_MODEL          Model name, e.g. gemma-3-27b-it
MODERATION_TIMEOUT        Seconds before the HTTP call is abandoned
MODERATION_BLOCKED_TERMS  Terms used by KeywordModerator

================================================================================
"""

import enum
import logging
import re

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import ContentRejected


logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PROMPT = (
    "Analyze this text for hate speech, violence, or severe insults. "
    "Reply with only one word: 'SAFE' or 'UNSAFE'. Text: {text}"
)


class Verdict(enum.Enum):
    SAFE = "safe"
    UNSAFE = "unsafe"


class ContentModerator:
    """Base class. Subclasses implement classify()."""

    @classmethod
    def from_settings(cls):
        return cls()

    def classify(self, text):
        raise NotImplementedError


# ============================================================================
# LOCAL TERM LIST
# ============================================================================

class KeywordModerator(ContentModerator):

    def __init__(self, terms=None):
        self.terms = [t.lower() for t in (terms or []) if t]

    @classmethod
    def from_settings(cls):
        return cls(getattr(settings, "MODERATION_BLOCKED_TERMS", []))

    def classify(self, text):
        words = set(re.findall(r"\w+", (text or "").lower()))
        for term in self.terms:
            if term in words:
                return Verdict.UNSAFE
        return Verdict.SAFE


# ============================================================================
# GOOGLE GENERATIVE LANGUAGE API
# ============================================================================

class GeminiModerator(ContentModerator):
    """
    Ask a hosted model whether the text is SAFE or UNSAFE.

    A blocked prompt (finishReason SAFETY) or a reply containing "UNSAFE"
    means unsafe. Transport errors, non-2xx answers and malformed bodies are
    logged and answered SAFE. Without an API key the keyword fallback decides.
    """

    def __init__(self, api_key, model="gemma-3-27b-it", timeout=8, fallback=None, session=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.fallback = fallback or KeywordModerator()
        self.session = session or requests

    @classmethod
    def from_settings(cls):
        return cls(
            api_key=getattr(settings, "MODERATION_API_KEY", ""),
            model=getattr(settings, "MODERATION_MODEL", "gemma-3-27b-it"),
            timeout=getattr(settings, "MODERATION_TIMEOUT", 8),
            fallback=KeywordModerator.from_settings(),
        )

    def classify(self, text):
        if not text or not text.strip():
            return Verdict.SAFE
        if not self.api_key:
            return self.fallback.classify(text)

        payload = {
            "contents": [{"parts": [{"text": PROMPT.format(text=text)}]}],
            "generationConfig": {"temperature": 0.0},
        }

        try:
            response = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
                headers={"User-Agent": "SocialNet/1.0 (Moderation)"}
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Moderation API error, allowing content: {e}")
            return Verdict.SAFE

        candidates = data.get("candidates") or []
        if not candidates:
            logger.warning("Moderation API returned no candidates, allowing content")
            return Verdict.SAFE

        candidate = candidates[0] or {}
        if candidate.get("finishReason") == "SAFETY":
            return Verdict.UNSAFE

        parts = (candidate.get("content") or {}).get("parts") or []
        reply = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if "UNSAFE" in reply.upper():
            return Verdict.UNSAFE
        return Verdict.SAFE


# ============================================================================
# GATE
# ============================================================================

def get_moderator():
    moderator_class = import_string(settings.CONTENT_MODERATOR)
    return moderator_class.from_settings()


def ensure_safe(moderator, *texts):
    """Raise ContentRejected if any non-empty text is unsafe."""
    for text in texts:
        if not text:
            continue
        try:
            verdict = moderator.classify(text)
        except Exception as e:
            logger.warning(f"Moderator failed, allowing content: {e}", exc_info=True)
            continue
        if verdict == Verdict.UNSAFE:
            logger.info("Content rejected by moderation")
            raise ContentRejected()
