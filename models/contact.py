from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContactConfidence(str, Enum):
    HIGH = "HIGH"
    NOT_FOUND = "NOT_FOUND"


class ContactResult(BaseModel):
    value: Optional[str] = None
    source_url: Optional[str] = None
    confidence: ContactConfidence = ContactConfidence.NOT_FOUND

    @classmethod
    def not_found(cls) -> "ContactResult":
        return cls()

    @property
    def is_high(self) -> bool:
        return self.confidence == ContactConfidence.HIGH and bool(self.value)


class ContactDiscoveryResult(BaseModel):
    phone: ContactResult = Field(default_factory=ContactResult)
    email: ContactResult = Field(default_factory=ContactResult)
    notes: str = ""


class PhoneLabel(str, Enum):
    HR = "hr"
    MAIN = "main"
    CONTACT = "contact"
    SUPPORT = "support"
    UNKNOWN = "unknown"


class PhoneCandidate(BaseModel):
    """One number pulled from a page, plus the text around it."""

    raw: str
    digits: str
    source_url: Optional[str] = None
    origin: str = "text"  # tel | text | json_ld | script | search
    context: str = ""
    label: PhoneLabel = PhoneLabel.UNKNOWN
    score: float = 0.0

    model_config = ConfigDict(extra="ignore")

    @property
    def e164(self) -> Optional[str]:
        if len(self.digits) == 10:
            return f"+1{self.digits}"
        if len(self.digits) >= 11:
            return f"+{self.digits}"
        return None


class PhoneLookupResult(BaseModel):
    company: str
    phone: Optional[PhoneCandidate] = None
    checked_urls: List[str] = Field(default_factory=list)
    candidates: List[PhoneCandidate] = Field(default_factory=list)
    used_fallback: bool = False
    decision: str = ""
