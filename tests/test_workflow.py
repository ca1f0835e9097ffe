from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from config.settings import get_settings
from db.repos.attestations_repo import AttestationsRepo
from db.repos.candidates_repo import CandidatesRepo
from db.repos.verifications_repo import VerificationsRepo
from models.attestation import OUTCOME_NO, OUTCOME_REFUSE_TO_DISCLOSE
from models.candidate import CanonicalCandidate, ChannelStatus, EmployerRecord
from models.evidence import EvidenceArtifact, EvidenceResult
from models.llm_schemas import EmailLookupResponse, PhoneLookupResponse
from models.workflow import (
    CallStatusReport,
    ConsentStatus,
    FinalReason,
    FinalResult,
    StepStatus,
    WorkflowStatus,
)
from services.attestation import AttestationRecorder, candidate_hash
from services.contact_discovery import ContactDiscoverer
from services.errors import InputValidationError, InvalidTransitionError
from services.outreach.phone import PhoneVerifier
from services.reply_classifier import KeywordReplyClassifier
from services.workflow import VerificationWorkflow


HR_PHONE = PhoneLookupResponse(phone="+1 415 555 0132", source_url="https://acme.com/contact", confidence="HIGH")
HR_EMAIL = EmailLookupResponse(email="hr@acme.com", source_url="https://acme.com/careers", confidence="HIGH")


def _web(confidence: float, found: bool = True) -> EvidenceResult:
    return EvidenceResult(
        found=found,
        confidence=confidence,
        artifacts=(EvidenceArtifact(type="company_site", value="https://acme.com/team", label="Team page"),),
        source_type="company_site",
    )


class _Env:
    """A workflow wired to fakes plus a seeded canonical candidate."""

    def __init__(self, conn, static_source, fake_search, fake_phone_caller, fake_emailer, fake_ledger,
                 web=None, contacts=None, reports=None, settings=None):
        self.candidates = CandidatesRepo(conn)
        self.candidate = self.candidates.create(
            CanonicalCandidate(name="Jane Doe", employers=[EmployerRecord(employer_name="Acme")])
        )
        self.web = static_source("public_web", {"Acme": web} if web is not None else {})
        self.search = fake_search(contacts or {})
        self.caller = fake_phone_caller(reports=reports)
        self.emailer = fake_emailer
        self.ledger = fake_ledger
        self.attestations = AttestationsRepo(conn)
        classifier = KeywordReplyClassifier()
        self.workflow = VerificationWorkflow(
            verifications=VerificationsRepo(conn),
            web_source=self.web,
            contacts=ContactDiscoverer(self.search),
            phone=PhoneVerifier(self.caller, classifier, poll_interval=0, max_attempts=3, sleep=lambda s: None),
            emailer=fake_emailer,
            classifier=classifier,
            candidates=self.candidates,
            attestations=AttestationRecorder(self.attestations, fake_ledger),
            settings=settings or get_settings(),
        )

    def start(self):
        v = self.workflow.create("Jane Doe", "Acme", "acme.com", "Engineer", candidate_id=self.candidate.id)
        self.workflow.handle_consent(v.id, approved=True)
        return v

    def employer(self) -> EmployerRecord:
        return self.candidates.require(self.candidate.id).employers[0]

    def attested(self):
        return self.attestations.list_for_candidate(candidate_hash(self.candidate.id))


@pytest.fixture
def env(conn, static_source, fake_search, fake_phone_caller, fake_emailer, fake_ledger):
    def _make(**kwargs):
        return _Env(conn, static_source, fake_search, fake_phone_caller, fake_emailer, fake_ledger, **kwargs)
    return _make


def _reply_payload(token: str, text: str, sender: str = "hr@acme.com") -> dict:
    return {
        "ToFull": [{"Email": f"verify+{token}@inbound.example.com", "Name": ""}],
        "FromFull": {"Email": sender},
        "Subject": "Re: Employment verification request",
        "TextBody": text,
    }


def test_create_validates_and_keeps_missing_domain_unset(env):
    e = env()
    with pytest.raises(InputValidationError):
        e.workflow.create("", "Acme")
    v = e.workflow.create("Jane Doe", "Acme Widgets", "  ACME.com ")
    assert v.status == WorkflowStatus.PENDING_CONSENT
    assert v.company_domain == "acme.com"
    assert e.workflow.create("Jane Doe", "Acme Consulting LLC").company_domain is None


def test_missing_domain_accepts_phone_from_any_site(env):
    e = env(
        contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL},
        reports=[CallStatusReport(status="ended", structured_outcome="YES")],
    )
    v = e.workflow.create("Jane Doe", "Acme Consulting LLC", candidate_id=e.candidate.id)
    e.workflow.handle_consent(v.id, approved=True)
    v = e.workflow.run(v.id)

    assert v.company_domain is None
    assert v.contact_data.phone.is_high
    # Email discovery needs a real domain, so it is never asked
    assert not v.contact_data.email.is_high
    assert e.caller.placed[0]["number"] == "+1 415 555 0132"
    assert (v.final_result, v.final_reason) == (FinalResult.YES, FinalReason.PHONE_YES)


def test_consent_denied_completes_without_outreach(env):
    e = env(web=_web(0.99))
    v = e.workflow.create("Jane Doe", "Acme", candidate_id=e.candidate.id)
    v = e.workflow.handle_consent(v.id, approved=False)

    assert v.status == WorkflowStatus.COMPLETED
    assert v.consent_status == ConsentStatus.DENIED
    assert (v.final_result, v.final_reason) == (FinalResult.INCONCLUSIVE, FinalReason.CONSENT_DENIED)
    with pytest.raises(InvalidTransitionError):
        e.workflow.run(v.id)
    with pytest.raises(InvalidTransitionError):
        e.workflow.handle_consent(v.id, approved=True)
    assert e.web.calls == []
    assert e.attested() == []


def test_run_requires_consent(env):
    e = env()
    v = e.workflow.create("Jane Doe", "Acme")
    with pytest.raises(InvalidTransitionError):
        e.workflow.run(v.id)


def test_conclusive_web_evidence_finishes_early(env):
    e = env(web=_web(0.9), contacts={PhoneLookupResponse: HR_PHONE})
    v = e.workflow.run(e.start().id)

    assert (v.final_result, v.final_reason) == (FinalResult.YES, FinalReason.WEB_YES)
    assert v.progress["web_scan"].status == StepStatus.SUCCESS
    assert "contact_discovery" not in v.progress
    assert e.search.calls == []
    assert v.web_evidence[0]["value"] == "https://acme.com/team"

    record = e.employer()
    assert record.web_status == ChannelStatus.YES
    assert record.ledger_refs["web"] == "ref-1"
    assert [a.channel for a in e.attested()] == ["web"]


def test_phone_confirms_employment(env):
    e = env(
        web=_web(0.5),
        contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL},
        reports=[CallStatusReport(status="ended", transcript="Yes, she worked here.")],
    )
    v = e.workflow.run(e.start().id)

    assert (v.final_result, v.final_reason) == (FinalResult.YES, FinalReason.PHONE_YES)
    assert v.phone_call.call_id == "call-1"
    assert e.caller.placed[0]["number"] == "+1 415 555 0132"
    assert e.emailer.sent == []
    record = e.employer()
    assert record.web_status == ChannelStatus.INCONCLUSIVE
    assert record.call_status == ChannelStatus.YES
    assert record.ledger_refs["phone"]


def test_phone_denial_is_attested_as_no(env):
    e = env(
        contacts={PhoneLookupResponse: HR_PHONE},
        reports=[CallStatusReport(status="ended", structured_outcome="NO")],
    )
    v = e.workflow.run(e.start().id)

    assert (v.final_result, v.final_reason) == (FinalResult.NO, FinalReason.PHONE_NO)
    assert e.employer().call_status == ChannelStatus.NO
    assert [(a.channel, a.outcome_code) for a in e.attested()] == [("phone", OUTCOME_NO)]


def test_no_answer_and_no_email_is_inconclusive(env):
    e = env(contacts={PhoneLookupResponse: HR_PHONE})
    v = e.workflow.run(e.start().id)

    assert (v.final_result, v.final_reason) == (FinalResult.INCONCLUSIVE, FinalReason.NO_PHONE_NO_EMAIL)
    assert "NO_ANSWER" in v.progress["phone_call"].message
    assert v.progress["email_outreach"].status == StepStatus.SKIPPED
    assert e.employer().call_status == ChannelStatus.INCONCLUSIVE
    assert e.attested() == []


def test_failed_web_source_still_escalates(env):
    e = env()
    e.web.error = RuntimeError("search provider down")
    v = e.workflow.run(e.start().id)

    assert v.progress["web_scan"].status == StepStatus.FAILED
    assert v.progress["phone_call"].status == StepStatus.SKIPPED
    assert v.final_reason == FinalReason.NO_PHONE_NO_EMAIL


def test_email_round_trip_is_idempotent(env):
    e = env(contacts={EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)

    assert v.status == WorkflowStatus.EMAIL_SENT
    assert v.email_sent_to == "hr@acme.com"
    assert v.final_result is None
    token = e.emailer.sent[0]["token"]
    record = e.employer()
    assert record.email_status == ChannelStatus.PENDING
    assert record.email_sent_to == "hr@acme.com"

    payload = _reply_payload(token, "Yes, Jane was employed here as an engineer.")
    done = e.workflow.handle_inbound_payload(payload)
    assert (done.final_result, done.final_reason) == (FinalResult.YES, FinalReason.EMAIL_YES)
    assert done.email_response_from == "hr@acme.com"
    assert done.email_response_preview.startswith("Yes, Jane")
    record = e.employer()
    assert record.email_status == ChannelStatus.YES
    assert record.email_response_from == "hr@acme.com"
    ledger_writes = len(e.ledger.entries)

    # A second delivery of the same reply changes nothing
    again = e.workflow.handle_inbound_payload(_reply_payload(token, "No record of this person."))
    assert again.final_reason == FinalReason.EMAIL_YES
    assert len(e.ledger.entries) == ledger_writes
    assert [a.channel for a in e.attested()] == ["email"]


@pytest.mark.parametrize("quote_style", ["prefixed", "unquoted_tail", "stripped_field"])
def test_affirmative_reply_quoting_the_request_is_yes(env, quote_style):
    e = env(contacts={EmailLookupResponse: HR_EMAIL})
    e.workflow.run(e.start().id)
    sent = e.emailer.sent[0]
    request = sent["body"]
    answer = "Yes, Jane was employed here."
    attribution = "On Mon, Oct 5, 2026 at 9:00 AM Verification Desk <verify@example.com> wrote:"
    if quote_style == "prefixed":
        text = answer + "\n\n" + attribution + "\n" + "\n".join(f"> {line}" for line in request.splitlines())
    else:
        text = f"{answer}\n\n{attribution}\n{request}"
    payload = _reply_payload(sent["token"], text)
    if quote_style == "stripped_field":
        payload["StrippedTextReply"] = answer

    done = e.workflow.handle_inbound_payload(payload)
    assert (done.final_result, done.final_reason) == (FinalResult.YES, FinalReason.EMAIL_YES)
    assert done.email_response_preview == answer
    assert e.employer().email_status == ChannelStatus.YES


def test_refusal_reply(env):
    e = env(contacts={EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)
    token = e.emailer.sent[0]["token"]

    done = e.workflow.resume_from_email_reply(token, "Company policy: we cannot disclose that.", "hr@acme.com")
    assert done.id == v.id
    assert (done.final_result, done.final_reason) == (FinalResult.REFUSE_TO_DISCLOSE, FinalReason.EMAIL_REFUSED)
    assert e.employer().email_status == ChannelStatus.REFUSED
    assert [a.outcome_code for a in e.attested()] == [OUTCOME_REFUSE_TO_DISCLOSE]


def test_email_send_failure_finishes_run(conn, env, fake_emailer):
    fake_emailer.message_id = None
    e = env(contacts={EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)

    assert (v.final_result, v.final_reason) == (FinalResult.INCONCLUSIVE, FinalReason.EMAIL_SEND_FAILED)
    token = e.emailer.sent[0]["token"]
    assert VerificationsRepo(conn).find_token(token)[1] is not None
    assert e.workflow.resume_from_email_reply(token, "Yes").final_reason == FinalReason.EMAIL_SEND_FAILED


def test_unanswered_email_times_out(env):
    e = env(contacts={EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)
    token = e.emailer.sent[0]["token"]
    now = datetime.now(timezone.utc)

    assert e.workflow.expire_email_waits(now=now + timedelta(days=1)) == []
    expired = e.workflow.expire_email_waits(now=now + timedelta(days=8))
    assert [x.id for x in expired] == [v.id]
    assert expired[0].final_reason == FinalReason.EMAIL_TIMEOUT
    assert e.employer().email_status == ChannelStatus.INCONCLUSIVE

    late = e.workflow.resume_from_email_reply(token, "Yes, she worked here.")
    assert late.final_reason == FinalReason.EMAIL_TIMEOUT
    assert e.attested() == []


def test_inbound_payload_guards(env):
    settings = replace(get_settings(), postmark_webhook_secret="s3cret")
    e = env(contacts={EmailLookupResponse: HR_EMAIL}, settings=settings)
    e.workflow.run(e.start().id)
    token = e.emailer.sent[0]["token"]
    payload = _reply_payload(token, "Yes, confirmed.")

    with pytest.raises(InputValidationError):
        e.workflow.handle_inbound_payload(payload, secret="wrong")
    assert e.workflow.handle_inbound_payload({"To": "hr@example.com", "TextBody": "hi"}, secret="s3cret") is None
    assert e.workflow.handle_inbound_payload(_reply_payload("unknown", "Yes"), secret="s3cret") is None

    done = e.workflow.handle_inbound_payload(payload, secret="s3cret")
    assert done.final_reason == FinalReason.EMAIL_YES


def _webhook_env(env, **kwargs):
    settings = replace(get_settings(), call_result_mode="webhook", vapi_webhook_secret="call-secret")
    return env(settings=settings, **kwargs)


def _end_of_call(call_id: str = "call-1", **fields) -> dict:
    return {"message": {"type": "end-of-call-report", "call": {"id": call_id}, **fields}}


def test_webhook_mode_waits_for_call_result(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)

    assert v.status == WorkflowStatus.PHONE_RUNNING
    assert v.phone_call.call_id == "call-1"
    assert v.progress["phone_call"].status == StepStatus.RUNNING
    assert e.caller.polls == 0
    assert e.emailer.sent == []

    payload = _end_of_call(transcript="Yes, she worked here.", analysis={"structuredData": {"outcome": "YES"}})
    done = e.workflow.handle_call_webhook(payload, secret="call-secret")
    assert done.id == v.id
    assert (done.final_result, done.final_reason) == (FinalResult.YES, FinalReason.PHONE_YES)
    assert done.phone_call.transcript == "Yes, she worked here."
    assert e.employer().call_status == ChannelStatus.YES
    assert [a.channel for a in e.attested()] == ["phone"]

    # A repeat delivery changes nothing
    again = e.workflow.handle_call_webhook(_end_of_call(verificationResult="NO"), secret="call-secret")
    assert again.final_reason == FinalReason.PHONE_YES
    assert len(e.ledger.entries) == 1


def test_call_webhook_transcript_denial_and_flat_payload(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE})
    v = e.workflow.run(e.start().id)

    flat = {"callId": "call-1", "verification_result": "INCONCLUSIVE", "transcript": "We have no record of her."}
    done = e.workflow.handle_call_webhook(flat, secret="call-secret")
    assert done.id == v.id
    assert (done.final_result, done.final_reason) == (FinalResult.NO, FinalReason.PHONE_NO)
    assert [(a.channel, a.outcome_code) for a in e.attested()] == [("phone", OUTCOME_NO)]


def test_inconclusive_call_webhook_escalates_to_email(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL})
    e.workflow.run(e.start().id)

    status_update = {"message": {"type": "status-update", "status": "in-progress", "call": {"id": "call-1"}}}
    assert e.workflow.handle_call_webhook(status_update, secret="call-secret").status == WorkflowStatus.PHONE_RUNNING

    done = e.workflow.handle_call_webhook(_end_of_call(transcript="Please hold."), secret="call-secret")
    assert done.status == WorkflowStatus.EMAIL_SENT
    assert done.email_sent_to == "hr@acme.com"
    assert e.employer().call_status == ChannelStatus.INCONCLUSIVE
    assert len(e.emailer.sent) == 1


def test_call_webhook_guards(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE})
    e.workflow.run(e.start().id)

    with pytest.raises(InputValidationError):
        e.workflow.handle_call_webhook(_end_of_call(), secret="wrong")
    assert e.workflow.handle_call_webhook({"transcript": "Yes"}, secret="call-secret") is None
    assert e.workflow.handle_call_webhook(_end_of_call("call-404"), secret="call-secret") is None


def test_call_placement_failure_in_webhook_mode_moves_on(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL})
    e.caller.place_error = RuntimeError("no credit")
    v = e.workflow.run(e.start().id)

    assert v.progress["phone_call"].status == StepStatus.FAILED
    assert v.status == WorkflowStatus.EMAIL_SENT


def test_unreported_call_times_out_to_email(env):
    e = _webhook_env(env, contacts={PhoneLookupResponse: HR_PHONE, EmailLookupResponse: HR_EMAIL})
    v = e.workflow.run(e.start().id)
    now = datetime.now(timezone.utc)

    assert e.workflow.expire_call_waits(now=now + timedelta(seconds=30)) == []
    expired = e.workflow.expire_call_waits(now=now + timedelta(hours=1))
    assert [x.id for x in expired] == [v.id]
    assert expired[0].status == WorkflowStatus.EMAIL_SENT
    assert expired[0].phone_call.outcome.value == "NO_ANSWER"

    late = e.workflow.handle_call_webhook(_end_of_call(verificationResult="YES"), secret="call-secret")
    assert late.status == WorkflowStatus.EMAIL_SENT
    assert e.attested() == []
