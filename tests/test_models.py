from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.candidate import Channel, ChannelStatus, EmployerRecord
from models.evidence import EvidenceArtifact, EvidenceBatch, EvidenceResult
from models.verification import AttemptStatus, Outcome, Stage, VerificationAttempt
from services.errors import InvalidTransitionError


def test_channel_status_moves_forward_only():
    record = EmployerRecord(employer_name="Acme")
    assert record.advance(Channel.EMAIL, ChannelStatus.PENDING)
    assert record.advance(Channel.EMAIL, ChannelStatus.YES)
    # Re-applying the same status is a no-op
    assert record.advance(Channel.EMAIL, ChannelStatus.YES) is False
    with pytest.raises(InvalidTransitionError):
        record.advance(Channel.EMAIL, ChannelStatus.NO)
    assert record.advance(Channel.CALL, ChannelStatus.NOT_STARTED) is False
    record.advance(Channel.CALL, ChannelStatus.PENDING)
    with pytest.raises(InvalidTransitionError):
        record.advance(Channel.CALL, ChannelStatus.NOT_STARTED)
    assert record.status_for(Channel.CALL) == ChannelStatus.PENDING


def test_stage_history_is_strictly_increasing():
    attempt = VerificationAttempt(candidate_name="Jane Doe", employer_name="Acme")
    at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    attempt.enter_stage(Stage.CONTACT_ENRICHMENT, at=at)
    attempt.enter_stage(Stage.POLICY_DISCOVERY, at=at)
    attempt.enter_stage(Stage.POLICY_DISCOVERY, at=at)
    attempt.enter_stage(Stage.COMPLETION, at=at)

    stamps = [e.timestamp for e in attempt.stage_history]
    assert [e.stage for e in attempt.stage_history] == [
        Stage.CONTACT_ENRICHMENT, Stage.POLICY_DISCOVERY, Stage.COMPLETION,
    ]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))
    assert attempt.status == AttemptStatus.IN_PROGRESS


def test_completed_attempt_refuses_mutation():
    attempt = VerificationAttempt(candidate_name="Jane Doe", employer_name="Acme")
    attempt.enter_stage(Stage.COMPLETION)
    attempt.conclude(
        outcome=Outcome.UNABLE_TO_VERIFY, status=AttemptStatus.COMPLETED, method="contact_enrichment", confidence=0.1,
    )
    with pytest.raises(InvalidTransitionError):
        attempt.attach(EvidenceArtifact(type="note", label="late"))
    with pytest.raises(InvalidTransitionError):
        attempt.enter_stage(Stage.POLICY_DISCOVERY)
    with pytest.raises(InvalidTransitionError):
        attempt.fail("boom")


def test_failed_attempt_keeps_stage_and_artifacts():
    attempt = VerificationAttempt(candidate_name="Jane Doe", employer_name="Acme")
    attempt.enter_stage(Stage.POLICY_DISCOVERY)
    attempt.attach(EvidenceArtifact(type="policy_discovery", value="none", label="nothing"))
    attempt.fail("provider down")
    assert attempt.status == AttemptStatus.FAILED
    assert attempt.stage == Stage.POLICY_DISCOVERY
    assert len(attempt.proof_artifacts) == 1


def test_result_payload_uses_camel_case_keys():
    attempt = VerificationAttempt(candidate_name="Jane Doe", employer_name="Acme")
    attempt.enter_stage(Stage.COMPLETION)
    attempt.conclude(
        outcome=Outcome.VERIFIED_PUBLIC_EVIDENCE,
        status=AttemptStatus.COMPLETED,
        method="public_evidence",
        confidence=0.9,
        is_verified=True,
    )
    payload = attempt.to_result().to_payload()
    assert payload["isVerified"] is True
    assert payload["outcome"] == "verified_public_evidence"
    assert {"stageHistory", "nextSteps", "proofArtifacts"} <= set(payload)


def test_evidence_batch_hands_out_copies():
    shared = EvidenceResult(
        found=True,
        confidence=0.9,
        artifacts=(EvidenceArtifact(type="company_site", value="https://acme.com/team", label="Team"),),
    )
    batch = EvidenceBatch("Jane Doe", {"Acme": shared})

    first = batch.for_employer("Acme Inc")
    second = batch.for_employer("Acme")
    assert first == second
    assert first is not second
    assert first.artifacts[0] is not second.artifacts[0]
    assert batch.for_employer("Globex") is None
