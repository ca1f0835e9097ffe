from __future__ import annotations

import pytest

from db.repos.attempts_repo import AttemptsRepo
from db.repos.attestations_repo import AttestationsRepo, SqliteLedger
from db.repos.candidates_repo import CandidatesRepo
from models.candidate import CandidateInput, ChannelStatus
from models.evidence import EvidenceArtifact, EvidenceResult
from models.verification import AttemptStatus, Outcome
from pipelines.runner import Pipeline, RunContext
from pipelines.steps import (
    GatherPublicEvidence,
    RecordAttestations,
    ResolveCandidate,
    ValidateCandidateInput,
    VerifyEmployers,
)
from pipelines.steps.validate_candidate import dedupe_employers
from services.attestation import AttestationRecorder, candidate_hash
from services.errors import InputValidationError
from services.evidence_gathering import EvidenceGatherer
from services.reporting import candidate_report


ACME_EVIDENCE = EvidenceResult(
    found=True,
    confidence=0.92,
    artifacts=(EvidenceArtifact(type="company_site", value="https://acme.com/team", label="Team page"),),
    source_type="company_site",
)


def _pipeline(conn, source, policy_discoverer=None) -> Pipeline:
    return Pipeline([
        ValidateCandidateInput(),
        ResolveCandidate(CandidatesRepo(conn)),
        GatherPublicEvidence(EvidenceGatherer([source], AttemptsRepo(conn))),
        VerifyEmployers(conn, policy_discoverer=policy_discoverer),
        RecordAttestations(conn, AttestationRecorder(AttestationsRepo(conn), SqliteLedger(conn))),
    ])


def _ctx(employers, phones=None) -> RunContext:
    ctx = RunContext(candidate_input=CandidateInput(name="Jane Doe", email="jane@example.com"), employers=list(employers))
    ctx.meta["employer_phones"] = phones or {}
    return ctx


def test_validate_rejects_missing_inputs():
    step = ValidateCandidateInput()
    with pytest.raises(InputValidationError):
        step.run(RunContext(candidate_input=CandidateInput(name=" "), employers=["Acme"]))
    with pytest.raises(InputValidationError):
        step.run(RunContext(candidate_input=CandidateInput(name="Jane Doe"), employers=["", "  "]))
    assert dedupe_employers(["Acme", " acme inc ", "Globex"]) == ["Acme", "Globex"]


def test_full_batch_verifies_and_attests(conn, static_source):
    source = static_source("public_web", {"Acme": ACME_EVIDENCE})
    ctx = _pipeline(conn, source).run(_ctx(["Acme", "Walmart", "Globex"], {"Globex": "+14155550132"}))

    assert ctx.errors == []
    outcomes = {employer: r.outcome for employer, r in ctx.results}
    assert outcomes == {
        "Acme": Outcome.VERIFIED_PUBLIC_EVIDENCE,
        "Walmart": Outcome.NETWORK_REQUIRED,
        "Globex": Outcome.CONTACT_IDENTIFIED,
    }
    assert ctx.meta["match_type"] == "new"
    assert list(ctx.meta["attestations"]) == ["Acme"]

    stored = {e.employer_name: e for e in CandidatesRepo(conn).require(ctx.candidate.id).employers}
    assert stored["Acme"].web_status == ChannelStatus.YES
    assert stored["Acme"].evidence_count >= 1
    assert stored["Acme"].ledger_refs["web"] == ctx.meta["attestations"]["Acme"]
    assert stored["Walmart"].web_status == ChannelStatus.INCONCLUSIVE
    assert stored["Globex"].web_status == ChannelStatus.PENDING
    assert SqliteLedger(conn).verify_chain()

    report = candidate_report(conn, ctx.candidate.id)
    latest = {e["employer_name"]: e["latest_attempt"] for e in report["employers"]}
    assert latest["Acme"]["isVerified"] is True
    assert latest["Walmart"]["outcome"] == "network_required"
    assert len(report["attestations"]) == 1


def test_second_run_reuses_candidate_and_evidence(conn, static_source):
    first_source = static_source("public_web", {"Acme": ACME_EVIDENCE})
    first = _pipeline(conn, first_source).run(_ctx(["Acme", "Globex"]))

    second_source = static_source("public_web", {})
    second = _pipeline(conn, second_source).run(_ctx(["Acme", "Globex"]))

    assert second.candidate.id == first.candidate.id
    assert second.meta["match_type"] == "email"
    assert second_source.calls == [["Globex"]]
    results = dict(second.results)
    assert results["Acme"].is_verified
    assert second.meta["attestations"]["Acme"] == first.meta["attestations"]["Acme"]
    assert len(AttestationsRepo(conn).list_for_candidate(candidate_hash(first.candidate.id))) == 1


class _BrokenDiscoverer:
    def discover(self, employer_name):
        raise RuntimeError("policy store offline")


def test_orchestration_failures_are_collected(conn, static_source):
    ctx = _pipeline(conn, static_source("public_web", {}), policy_discoverer=_BrokenDiscoverer()).run(_ctx(["Acme", "Globex"]))

    assert ctx.results == []
    assert [e["employer"] for e in ctx.errors] == ["Acme", "Globex"]
    assert all(e["stage"] == "policy_discovery" for e in ctx.errors)
    attempts = AttemptsRepo(conn).list_for_candidate(ctx.candidate.id)
    assert {a.status for a in attempts} == {AttemptStatus.FAILED}
    assert all(a.error == "policy store offline" for a in attempts)
