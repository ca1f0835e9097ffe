from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.evidence import EvidenceArtifact
from services.errors import InvalidTransitionError


class Stage(str, Enum):
    CONTACT_ENRICHMENT = "contact_enrichment"
    POLICY_DISCOVERY = "policy_discovery"
    PUBLIC_EVIDENCE_VERIFICATION = "public_evidence_verification"
    COMPLETION = "completion"


class AttemptStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    ACTION_REQUIRED = "action_required"
    COMPLETED = "completed"
    FAILED = "failed"


class Outcome(str, Enum):
    VERIFIED_PUBLIC_EVIDENCE = "verified_public_evidence"
    NETWORK_REQUIRED = "network_required"
    POLICY_IDENTIFIED = "policy_identified"
    CONTACT_IDENTIFIED = "contact_identified"
    UNABLE_TO_VERIFY = "unable_to_verify"


class StageEntry(BaseModel):
    stage: Stage
    timestamp: datetime

    model_config = ConfigDict(frozen=True)


class NextStep(BaseModel):
    action: str
    label: str
    enabled: bool
    priority: int

    model_config = ConfigDict(frozen=True)


class VerificationResult(BaseModel):
    """What the orchestrator returns to its caller for one employer."""

    stage: Stage
    stage_history: List[StageEntry] = Field(default_factory=list, alias="stageHistory")
    status: AttemptStatus
    outcome: Outcome
    method: str
    confidence: float = Field(ge=0.0, le=1.0)
    is_verified: bool = Field(default=False, alias="isVerified")
    next_steps: List[NextStep] = Field(default_factory=list, alias="nextSteps")
    proof_artifacts: List[EvidenceArtifact] = Field(default_factory=list, alias="proofArtifacts")
    attempt_id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class VerificationAttempt(BaseModel):
    """One orchestrator run for a (candidate, employer) pair.

    The stage history only grows and stays strictly time-ordered, artifacts
    are append-only, and a completed attempt refuses further mutation.
    """

    id: Optional[str] = None
    candidate_id: Optional[str] = None
    candidate_name: str
    employer_name: str
    stage: Stage = Stage.CONTACT_ENRICHMENT
    stage_history: List[StageEntry] = Field(default_factory=list)
    status: AttemptStatus = AttemptStatus.QUEUED
    outcome: Optional[Outcome] = None
    method: Optional[str] = None
    confidence: float = 0.0
    is_verified: bool = False
    proof_artifacts: List[EvidenceArtifact] = Field(default_factory=list)
    next_steps: List[NextStep] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def _guard(self) -> None:
        if self.status == AttemptStatus.COMPLETED:
            raise InvalidTransitionError(f"attempt {self.id or '-'} is completed")

    def enter_stage(self, stage: Stage, at: Optional[datetime] = None) -> None:
        self._guard()
        if self.stage_history and self.stage_history[-1].stage == stage:
            return
        ts = at or datetime.now(timezone.utc)
        if self.stage_history:
            last = self.stage_history[-1].timestamp
            if ts <= last:
                # Clock granularity: keep the log strictly increasing
                ts = last + timedelta(microseconds=1)
        self.stage_history.append(StageEntry(stage=stage, timestamp=ts))
        self.stage = stage
        if self.status == AttemptStatus.QUEUED:
            self.status = AttemptStatus.IN_PROGRESS

    def attach(self, artifact: EvidenceArtifact) -> None:
        self._guard()
        self.proof_artifacts.append(artifact)

    def conclude(
        self,
        *,
        outcome: Outcome,
        status: AttemptStatus,
        method: str,
        confidence: float,
        is_verified: bool = False,
        next_steps: Optional[List[NextStep]] = None,
    ) -> None:
        self._guard()
        self.outcome = outcome
        self.status = status
        self.method = method
        self.confidence = confidence
        self.is_verified = is_verified
        self.next_steps = list(next_steps or [])

    def fail(self, error: str) -> None:
        # Stage, history and artifacts stay as they were at the failure point
        self._guard()
        self.status = AttemptStatus.FAILED
        self.error = error

    def to_result(self) -> VerificationResult:
        if self.outcome is None:
            raise InvalidTransitionError(f"attempt {self.id or '-'} has no outcome yet")
        return VerificationResult(
            stage=self.stage,
            stage_history=list(self.stage_history),
            status=self.status,
            outcome=self.outcome,
            method=self.method or "",
            confidence=self.confidence,
            is_verified=self.is_verified,
            next_steps=list(self.next_steps),
            proof_artifacts=list(self.proof_artifacts),
            attempt_id=self.id,
        )
