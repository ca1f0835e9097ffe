from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from models.evidence import EvidenceArtifact, EvidenceResult
from models.policy import PolicyDiscoveryResult
from models.verification import (
    AttemptStatus,
    NextStep,
    Outcome,
    Stage,
    VerificationAttempt,
    VerificationResult,
)
from services.errors import InputValidationError, OrchestrationError
from services.policy_discovery import PolicyDiscoverer


logger = logging.getLogger(__name__)

# Fixed per-branch confidence values; downstream attestation logic keys off them
NETWORK_CONFIDENCE = 0.95
VERIFIED_THRESHOLD = 0.85
CORROBORATING_THRESHOLD = 0.6
POLICY_CONFIDENCE = 0.7
CONTACT_CONFIDENCE = 0.3
DEAD_END_CONFIDENCE = 0.1

METHOD_NETWORK = "network"
METHOD_PUBLIC_EVIDENCE = "public_evidence"
METHOD_POLICY = "policy_discovery"
METHOD_CONTACT = "contact_enrichment"

POLICY_NEXT_STEPS = (
    NextStep(action="send_email_request", label="Send verification request email", enabled=False, priority=1),
    NextStep(action="start_ai_policy_call", label="Start AI call for detailed policy", enabled=False, priority=2),
)
CONTACT_NEXT_STEPS = (
    NextStep(action="start_ai_policy_call", label="Run AI call for policy discovery", enabled=False, priority=1),
    NextStep(action="mark_unable_to_verify", label="Mark as unable to verify", enabled=True, priority=3),
)


@dataclass
class VerificationRequest:
    candidate_name: str
    employer_name: str
    employer_phone: Optional[str] = None
    job_title: Optional[str] = None
    # Batch-computed once per candidate; None when no lookup ran for this employer
    public_evidence: Optional[EvidenceResult] = None
    candidate_id: Optional[str] = None


Checkpoint = Callable[[VerificationAttempt], None]


def _network_steps(vendor: Optional[str]) -> List[NextStep]:
    return [
        NextStep(
            action="start_network_verification",
            label=f"Verify via {vendor or 'verification network'}",
            enabled=False,
            priority=1,
        )
    ]


class VerificationOrchestrator:
    """Per-employer decision engine.

    contact_enrichment -> policy_discovery -> public_evidence_verification
    -> completion, with a direct policy_discovery -> completion hard stop
    for network-only employers. Every stage entered is checkpointed so a
    failure leaves the last completed stage and its evidence readable.
    """

    def __init__(self, policy_discoverer: PolicyDiscoverer, checkpoint: Optional[Checkpoint] = None):
        self.policy_discoverer = policy_discoverer
        self.checkpoint = checkpoint

    def run(self, request: VerificationRequest) -> VerificationResult:
        if not (request.employer_name or "").strip():
            raise InputValidationError("Employer name is required")

        attempt = VerificationAttempt(
            candidate_id=request.candidate_id,
            candidate_name=request.candidate_name or "",
            employer_name=request.employer_name.strip(),
        )
        log_extra = {"employer": attempt.employer_name}
        try:
            self._contact_enrichment(attempt, request.employer_phone)
            self._save(attempt)

            attempt.enter_stage(Stage.POLICY_DISCOVERY)
            discovery = self.policy_discoverer.discover(attempt.employer_name)
            for artifact in discovery.artifacts:
                attempt.attach(artifact)
            self._save(attempt)

            if discovery.policy is not None and discovery.policy.is_network:
                attempt.enter_stage(Stage.COMPLETION)
                attempt.conclude(
                    outcome=Outcome.NETWORK_REQUIRED,
                    status=AttemptStatus.COMPLETED,
                    method=METHOD_NETWORK,
                    confidence=NETWORK_CONFIDENCE,
                    next_steps=_network_steps(discovery.policy.verification_vendor),
                )
                return self._finish(attempt, log_extra)

            if request.public_evidence is not None and self._weigh_evidence(attempt, request.public_evidence, discovery):
                return self._finish(attempt, log_extra)

            self._fallback(attempt, discovery, request.employer_phone)
            return self._finish(attempt, log_extra)
        except Exception as e:
            stage = attempt.stage.value
            logger.exception(
                "Orchestrator run failed", extra={**log_extra, "stage": stage, "error": str(e)}
            )
            if attempt.status != AttemptStatus.COMPLETED:
                attempt.fail(str(e))
                try:
                    self._save(attempt)
                except Exception:
                    logger.exception("Could not persist failed attempt", extra={**log_extra, "stage": stage})
            raise OrchestrationError(
                f"Verification failed at {stage}: {e}",
                attempt_id=attempt.id,
                stage=stage,
                cause=e,
            ) from e

    def _contact_enrichment(self, attempt: VerificationAttempt, phone: Optional[str]) -> None:
        attempt.enter_stage(Stage.CONTACT_ENRICHMENT)
        if phone:
            attempt.attach(EvidenceArtifact(type="contact_info", value=phone, label="Contact information found (phone number)"))
        else:
            attempt.attach(EvidenceArtifact(type="contact_info", value="none", label="No phone number available"))

    def _weigh_evidence(self, attempt: VerificationAttempt, evidence: EvidenceResult, discovery: PolicyDiscoveryResult) -> bool:
        """Apply pre-computed public evidence; True when it decided the outcome."""
        attempt.enter_stage(Stage.PUBLIC_EVIDENCE_VERIFICATION)
        for artifact in evidence.artifacts:
            attempt.attach(artifact)
        self._save(attempt)

        if evidence.found and evidence.confidence >= VERIFIED_THRESHOLD:
            attempt.enter_stage(Stage.COMPLETION)
            attempt.conclude(
                outcome=Outcome.VERIFIED_PUBLIC_EVIDENCE,
                status=AttemptStatus.COMPLETED,
                method=METHOD_PUBLIC_EVIDENCE,
                confidence=evidence.confidence,
                is_verified=True,
            )
            return True

        if evidence.confidence >= CORROBORATING_THRESHOLD and discovery.policy is not None:
            attempt.conclude(
                outcome=Outcome.POLICY_IDENTIFIED,
                status=AttemptStatus.ACTION_REQUIRED,
                method=METHOD_POLICY,
                confidence=max(POLICY_CONFIDENCE, evidence.confidence),
                next_steps=list(POLICY_NEXT_STEPS),
            )
            return True
        return False

    def _fallback(self, attempt: VerificationAttempt, discovery: PolicyDiscoveryResult, phone: Optional[str]) -> None:
        if discovery.policy is not None:
            attempt.conclude(
                outcome=Outcome.POLICY_IDENTIFIED,
                status=AttemptStatus.ACTION_REQUIRED,
                method=METHOD_POLICY,
                confidence=POLICY_CONFIDENCE,
                next_steps=list(POLICY_NEXT_STEPS),
            )
        elif phone:
            attempt.conclude(
                outcome=Outcome.CONTACT_IDENTIFIED,
                status=AttemptStatus.ACTION_REQUIRED,
                method=METHOD_CONTACT,
                confidence=CONTACT_CONFIDENCE,
                next_steps=list(CONTACT_NEXT_STEPS),
            )
        else:
            attempt.enter_stage(Stage.COMPLETION)
            attempt.conclude(
                outcome=Outcome.UNABLE_TO_VERIFY,
                status=AttemptStatus.COMPLETED,
                method=METHOD_CONTACT,
                confidence=DEAD_END_CONFIDENCE,
            )

    def _finish(self, attempt: VerificationAttempt, log_extra: dict) -> VerificationResult:
        self._save(attempt)
        logger.info(
            "Verification %s for %s", attempt.outcome.value, attempt.employer_name,
            extra={**log_extra, "stage": attempt.stage.value, "outcome": attempt.outcome.value},
        )
        return attempt.to_result()

    def _save(self, attempt: VerificationAttempt) -> None:
        if self.checkpoint is not None:
            self.checkpoint(attempt)
