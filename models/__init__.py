from .candidate import CanonicalCandidate, CandidateInput, Channel, ChannelStatus, EmployerRecord
from .evidence import EvidenceArtifact, EvidenceBatch, EvidenceResult
from .verification import (
    AttemptStatus,
    NextStep,
    Outcome,
    Stage,
    StageEntry,
    VerificationAttempt,
    VerificationResult,
)
from .policy import EmployerPolicy, PolicyDiscoveryResult
from .contact import ContactConfidence, ContactDiscoveryResult, ContactResult, PhoneCandidate, PhoneLookupResult
from .workflow import (
    CallOutcome,
    CallResult,
    CallStatusReport,
    ConsentStatus,
    FinalReason,
    FinalResult,
    ProgressEntry,
    StepStatus,
    Verification,
    WorkflowStatus,
)
from .attestation import Attestation, AttestationReceipt

__all__ = [
    "CanonicalCandidate",
    "CandidateInput",
    "Channel",
    "ChannelStatus",
    "EmployerRecord",
    "EvidenceArtifact",
    "EvidenceBatch",
    "EvidenceResult",
    "AttemptStatus",
    "NextStep",
    "Outcome",
    "Stage",
    "StageEntry",
    "VerificationAttempt",
    "VerificationResult",
    "EmployerPolicy",
    "PolicyDiscoveryResult",
    "ContactConfidence",
    "ContactDiscoveryResult",
    "ContactResult",
    "PhoneCandidate",
    "PhoneLookupResult",
    "CallOutcome",
    "CallResult",
    "CallStatusReport",
    "ConsentStatus",
    "FinalReason",
    "FinalResult",
    "ProgressEntry",
    "StepStatus",
    "Verification",
    "WorkflowStatus",
    "Attestation",
    "AttestationReceipt",
]
