from __future__ import annotations

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from config.settings import Settings, get_settings
from models.llm_schemas import ReplyClassificationResponse
from models.workflow import FinalResult
from ports.llm import LLMClientPort
from ports.outreach import ReplyClassifierPort


logger = logging.getLogger(__name__)

YES_KEYWORDS = (
    "yes", "confirmed", "confirm", "verify", "was employed", "did work", "worked here",
    "employment confirmed",
)
NO_KEYWORDS = (
    "no record", "not employed", "never worked", "no employment", "was not employed",
    "did not work",
)
REFUSE_KEYWORDS = (
    "unable to disclose", "cannot disclose", "policy", "not allowed", "cannot confirm or deny",
    "refuse",
)
# Phrases that contain a yes keyword but mean the opposite
YES_NEGATORS = ("not employed", "no record", "never worked", "cannot confirm")


def _has_any(text: str, keywords) -> bool:
    return any(re.search(rf"\b{re.escape(k)}\b", text) for k in keywords)


class KeywordReplyClassifier:
    """Free-text verdict by keyword lists; refusal beats no, no beats yes."""

    def classify(self, text: str) -> FinalResult:
        lower = (text or "").lower()
        if _has_any(lower, REFUSE_KEYWORDS):
            return FinalResult.REFUSE_TO_DISCLOSE
        if _has_any(lower, NO_KEYWORDS):
            return FinalResult.NO
        if _has_any(lower, YES_KEYWORDS) and not _has_any(lower, YES_NEGATORS):
            return FinalResult.YES
        return FinalResult.INCONCLUSIVE


_SYSTEM_PROMPT = (
    "You classify replies from employers to employment verification requests. "
    "Answer with JSON only: {\"verdict\": \"YES|NO|REFUSE_TO_DISCLOSE|INCONCLUSIVE\", \"reasoning\": \"...\"}. "
    "YES means the employer confirms the person worked there; NO means they state the person did not; "
    "REFUSE_TO_DISCLOSE means they decline to share; anything else is INCONCLUSIVE."
)


class LLMReplyClassifier:
    """Model-based classifier; any failure degrades to INCONCLUSIVE."""

    def __init__(self, llm: LLMClientPort):
        self.llm = llm

    def classify(self, text: str) -> FinalResult:
        if not (text or "").strip():
            return FinalResult.INCONCLUSIVE
        try:
            resp = self.llm.chat(
                use_case="reply_classification",
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": text[:4000]},
                ],
                prompt_name="reply_classification",
                prompt_text=text,
            )
            content = resp.choices[0].message.content or ""
            parsed = ReplyClassificationResponse.model_validate(json.loads(_strip_fences(content)))
        except (ValueError, ValidationError, AttributeError, IndexError) as e:
            logger.warning("Reply classification response unusable", extra={"provider": "openai", "error": str(e)})
            return FinalResult.INCONCLUSIVE
        except Exception as e:
            logger.warning("Reply classification failed", extra={"provider": "openai", "error": str(e)})
            return FinalResult.INCONCLUSIVE
        try:
            return FinalResult(parsed.verdict.strip().upper())
        except ValueError:
            return FinalResult.INCONCLUSIVE


def _strip_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```"):
        content = re.sub(r"^```(?:json)?\s*|\s*```$", "", content)
    return content


def build_reply_classifier(settings: Optional[Settings] = None, llm: Optional[LLMClientPort] = None) -> ReplyClassifierPort:
    settings = settings or get_settings()
    if settings.reply_classifier == "llm":
        if llm is None:
            from services.llm_client import LLMClient
            llm = LLMClient()
        return LLMReplyClassifier(llm)
    return KeywordReplyClassifier()
