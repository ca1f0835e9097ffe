from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.contact import ContactDiscoveryResult


class WorkflowStatus(str, Enum):
    PENDING_CONSENT = "PENDING_CONSENT"
    CONSENT_APPROVED = "CONSENT_APPROVED"
    WEB_RUNNING = "WEB_RUNNING"
    CONTACT_DISCOVERY_RUNNING = "CONTACT_DISCOVERY_RUNNING"
    PHONE_RUNNING = "PHONE_RUNNING"
    EMAIL_SENT = "EMAIL_SENT"
    COMPLETED = "COMPLETED"


class ConsentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class FinalResult(str, Enum):
    YES = "YES"
    NO = "NO"
    REFUSE_TO_DISCLOSE = "REFUSE_TO_DISCLOSE"
    INCONCLUSIVE = "INCONCLUSIVE"


class FinalReason(str, Enum):
    WEB_YES = "WEB_YES"
    PHONE_YES = "PHONE_YES"
    PHONE_NO = "PHONE_NO"
    EMAIL_YES = "EMAIL_YES"
    EMAIL_NO = "EMAIL_NO"
    EMAIL_REFUSED = "EMAIL_REFUSED"
    EMAIL_INCONCLUSIVE = "EMAIL_INCONCLUSIVE"
    EMAIL_TIMEOUT = "EMAIL_TIMEOUT"
    EMAIL_SEND_FAILED = "EMAIL_SEND_FAILED"
    NO_PHONE_NO_EMAIL = "NO_PHONE_NO_EMAIL"
    CONSENT_DENIED = "CONSENT_DENIED"


class CallOutcome(str, Enum):
    YES = "YES"
    NO = "NO"
    INCONCLUSIVE = "INCONCLUSIVE"
    NO_ANSWER = "NO_ANSWER"


class StepStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ProgressEntry(BaseModel):
    status: StepStatus
    message: str
    timestamp: str


class CallStatusReport(BaseModel):
    """Provider view of a placed call, validated right after the poll."""

    status: str = "queued"
    transcript: str = ""
    structured_outcome: Optional[str] = Field(default=None, alias="structuredOutcome")
    duration_seconds: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def ended(self) -> bool:
        return self.status == "ended"


class CallResult(BaseModel):
    call_id: Optional[str] = None
    outcome: CallOutcome = CallOutcome.INCONCLUSIVE
    transcript: str = ""
    duration_seconds: Optional[float] = None
    error: Optional[str] = None


class Verification(BaseModel):
    """A single consented verification request for one employer."""

    id: Optional[str] = None
    candidate_id: Optional[str] = None
    candidate_name: str
    company_name: str
    company_domain: Optional[str] = None
    job_title: Optional[str] = None
    status: WorkflowStatus = WorkflowStatus.PENDING_CONSENT
    consent_status: ConsentStatus = ConsentStatus.PENDING
    final_result: Optional[FinalResult] = None
    final_reason: Optional[FinalReason] = None
    progress: Dict[str, ProgressEntry] = Field(default_factory=dict)
    web_evidence: List[Dict[str, Any]] = Field(default_factory=list)
    contact_data: Optional[ContactDiscoveryResult] = None
    phone_call: Optional[CallResult] = None
    email_sent_to: Optional[str] = None
    email_sent_at: Optional[str] = None
    email_response_from: Optional[str] = None
    email_response_preview: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_completed(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED
