from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from config.settings import Settings, get_settings
from db.repos.verifications_repo import VerificationsRepo
from models.candidate import Channel, ChannelStatus, EmployerRecord
from models.contact import ContactDiscoveryResult
from models.evidence import utc_now_iso
from models.workflow import (
    CallOutcome,
    CallResult,
    ConsentStatus,
    FinalReason,
    FinalResult,
    ProgressEntry,
    StepStatus,
    Verification,
    WorkflowStatus,
)
from ports.outreach import EmailerPort, ReplyClassifierPort
from ports.repos import CandidateStorePort
from ports.source import EvidenceSourcePort
from services.attestation import (
    CHANNEL_EMAIL,
    CHANNEL_PHONE,
    CHANNEL_WEB,
    AttestationRecorder,
    outcome_code_for,
)
from services.contact_discovery import ContactDiscoverer
from services.domain_utils import guess_company_domain
from services.errors import InputValidationError, InvalidTransitionError
from services.orchestrator import VERIFIED_THRESHOLD
from services.outreach.email import build_request_email, parse_token, strip_quoted_reply
from services.outreach.phone import PhoneVerifier, call_report_from_webhook


logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200

_EMAIL_REASONS = {
    FinalResult.YES: FinalReason.EMAIL_YES,
    FinalResult.NO: FinalReason.EMAIL_NO,
    FinalResult.REFUSE_TO_DISCLOSE: FinalReason.EMAIL_REFUSED,
    FinalResult.INCONCLUSIVE: FinalReason.EMAIL_INCONCLUSIVE,
}
_CHANNEL_STATUS = {
    FinalResult.YES: ChannelStatus.YES,
    FinalResult.NO: ChannelStatus.NO,
    FinalResult.REFUSE_TO_DISCLOSE: ChannelStatus.REFUSED,
    FinalResult.INCONCLUSIVE: ChannelStatus.INCONCLUSIVE,
}


def _attestation_channel(reason: FinalReason) -> Optional[str]:
    if reason == FinalReason.WEB_YES:
        return CHANNEL_WEB
    if reason in (FinalReason.PHONE_YES, FinalReason.PHONE_NO):
        return CHANNEL_PHONE
    if reason in (FinalReason.EMAIL_YES, FinalReason.EMAIL_NO, FinalReason.EMAIL_REFUSED):
        return CHANNEL_EMAIL
    return None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class VerificationWorkflow:
    """Consent-gated escalation for a single (candidate, employer) request.

    web scan -> contact discovery -> phone call -> email. Each channel runs
    only when the previous one was inconclusive. The email channel suspends:
    ``run`` returns in EMAIL_SENT and a later inbound reply (or the timeout
    sweep) completes the record through the persisted correlation token.
    With ``call_result_mode="webhook"`` the phone channel suspends the same
    way: ``run`` returns in PHONE_RUNNING and ``handle_call_webhook`` picks the
    record up again by call id.
    """

    def __init__(
        self,
        verifications: VerificationsRepo,
        web_source: EvidenceSourcePort,
        contacts: ContactDiscoverer,
        phone: PhoneVerifier,
        emailer: EmailerPort,
        classifier: ReplyClassifierPort,
        candidates: Optional[CandidateStorePort] = None,
        attestations: Optional[AttestationRecorder] = None,
        settings: Optional[Settings] = None,
    ):
        self.verifications = verifications
        self.web_source = web_source
        self.contacts = contacts
        self.phone = phone
        self.emailer = emailer
        self.classifier = classifier
        self.candidates = candidates
        self.attestations = attestations
        self.settings = settings or get_settings()

    # --- Lifecycle entry points ---
    def create(
        self,
        candidate_name: str,
        company_name: str,
        company_domain: Optional[str] = None,
        job_title: Optional[str] = None,
        candidate_id: Optional[str] = None,
    ) -> Verification:
        if not (candidate_name or "").strip():
            raise InputValidationError("Candidate name is required")
        if not (company_name or "").strip():
            raise InputValidationError("Company name is required")
        verification = Verification(
            candidate_id=candidate_id,
            candidate_name=candidate_name.strip(),
            company_name=company_name.strip(),
            company_domain=(company_domain or "").strip().lower() or None,
            job_title=job_title,
        )
        self.verifications.save(verification)
        logger.info("Verification %s created", verification.id, extra={"employer": verification.company_name})
        return verification

    def handle_consent(self, verification_id: str, approved: bool) -> Verification:
        verification = self.verifications.require(verification_id)
        if verification.status != WorkflowStatus.PENDING_CONSENT:
            raise InvalidTransitionError(
                f"Verification {verification_id} is {verification.status.value}, not awaiting consent"
            )
        if not approved:
            verification.consent_status = ConsentStatus.DENIED
            return self._finish(verification, FinalResult.INCONCLUSIVE, FinalReason.CONSENT_DENIED)
        verification.consent_status = ConsentStatus.APPROVED
        verification.status = WorkflowStatus.CONSENT_APPROVED
        self.verifications.save(verification)
        logger.info("Consent approved", extra={"employer": verification.company_name, "stage": "consent"})
        return verification

    def run(self, verification_id: str) -> Verification:
        v = self.verifications.require(verification_id)
        if v.consent_status != ConsentStatus.APPROVED or v.status != WorkflowStatus.CONSENT_APPROVED:
            raise InvalidTransitionError(
                f"Verification {verification_id} cannot run from {v.status.value} (consent {v.consent_status.value})"
            )

        if self._web_scan(v):
            return self._finish(v, FinalResult.YES, FinalReason.WEB_YES)

        contacts = self._contact_discovery(v)

        if not contacts.phone.is_high:
            self._progress(v, "phone_call", StepStatus.SKIPPED, "No high-confidence phone number found")
            return self._after_phone(v, None)
        if self.settings.call_result_mode == "webhook":
            if self._place_call(v, contacts.phone.value):
                return v
            return self._after_phone(v, v.phone_call.outcome)
        return self._after_phone(v, self._phone_call(v, contacts.phone.value))

    def resume_from_email_reply(
        self,
        token: str,
        text: str,
        from_address: Optional[str] = None,
        subject: str = "",
    ) -> Optional[Verification]:
        """Complete an EMAIL_SENT verification from its reply, exactly once per token."""
        found = self.verifications.find_token(token)
        if found is None:
            logger.warning("Inbound reply with unknown token", extra={"stage": "email_reply"})
            return None
        verification_id, consumed_at = found
        v = self.verifications.require(verification_id)
        extra = {"stage": "email_reply", "employer": v.company_name}
        if consumed_at is not None or v.status != WorkflowStatus.EMAIL_SENT:
            logger.info("Reply for %s already processed", verification_id, extra=extra)
            return v
        if not self.verifications.consume_token(token):
            logger.info("Reply for %s consumed concurrently", verification_id, extra=extra)
            return self.verifications.require(verification_id)

        reply = strip_quoted_reply(text)
        verdict = self.classifier.classify(f"{reply}\n{subject or ''}")
        preview = reply[:PREVIEW_LENGTH]
        v.email_response_from = from_address
        v.email_response_preview = preview
        self._progress(v, "email_reply", StepStatus.SUCCESS, f"Reply received: {verdict.value}")

        def _apply(record: EmployerRecord) -> None:
            record.email_response_from = from_address
            record.email_response_preview = preview

        self._write_back(v, Channel.EMAIL, _CHANNEL_STATUS[verdict], _apply)
        return self._finish(v, verdict, _EMAIL_REASONS[verdict])

    def handle_inbound_payload(self, payload: Dict[str, Any], secret: Optional[str] = None) -> Optional[Verification]:
        """Entry point for the inbound-email webhook (Postmark JSON shape)."""
        expected = self.settings.postmark_webhook_secret
        if expected and not hmac.compare_digest(expected, secret or ""):
            raise InputValidationError("Inbound webhook secret mismatch")

        to_full = payload.get("ToFull") or []
        to_address = (to_full[0] or {}).get("Email") if to_full else None
        token = parse_token(to_address or payload.get("To"))
        if not token:
            logger.warning("Inbound email without a verification token", extra={"stage": "email_reply"})
            return None
        body = payload.get("StrippedTextReply") or payload.get("TextBody") or ""
        sender = (payload.get("FromFull") or {}).get("Email") or payload.get("From")
        return self.resume_from_email_reply(token, body, from_address=sender, subject=payload.get("Subject") or "")

    def handle_call_webhook(self, payload: Dict[str, Any], secret: Optional[str] = None) -> Optional[Verification]:
        """Entry point for the call-result webhook; completes a PHONE_RUNNING verification once."""
        expected = self.settings.vapi_webhook_secret
        if expected and not hmac.compare_digest(expected, secret or ""):
            raise InputValidationError("Call webhook secret mismatch")

        call_id, report = call_report_from_webhook(payload)
        if not call_id:
            logger.warning("Call webhook without a call id", extra={"stage": "call_webhook"})
            return None
        v = self.verifications.find_by_call_id(call_id)
        if v is None:
            logger.warning("Call webhook for unknown call %s", call_id, extra={"stage": "call_webhook"})
            return None
        extra = {"stage": "call_webhook", "employer": v.company_name}
        if v.status != WorkflowStatus.PHONE_RUNNING:
            logger.info("Call %s already processed", call_id, extra=extra)
            return v
        if not report.ended:
            logger.info("Call %s status update: %s", call_id, report.status, extra=extra)
            return v
        done = self._complete_call(v, self.phone.result_from_report(call_id, report))
        return done if done is not None else self.verifications.require(v.id)

    def expire_call_waits(self, now: Optional[datetime] = None) -> List[Verification]:
        """Treat calls whose result never arrived as unanswered and move on to email."""
        now = now or datetime.now(timezone.utc)
        window = timedelta(seconds=self.settings.call_poll_interval_seconds * self.settings.call_poll_max_attempts)
        expired = []
        for v in self.verifications.list_by_status(WorkflowStatus.PHONE_RUNNING):
            placed_at = _parse_ts(v.updated_at)
            if v.phone_call is None or placed_at is None or now - placed_at < window:
                continue
            result = CallResult(call_id=v.phone_call.call_id, outcome=CallOutcome.NO_ANSWER, error="No call result received")
            done = self._complete_call(v, result)
            if done is not None:
                expired.append(done)
        if expired:
            logger.info("Expired %s call waits", len(expired), extra={"stage": "call_timeout"})
        return expired

    def expire_email_waits(self, now: Optional[datetime] = None) -> List[Verification]:
        now = now or datetime.now(timezone.utc)
        window = timedelta(days=self.settings.email_reply_window_days)
        expired = []
        for v in self.verifications.list_by_status(WorkflowStatus.EMAIL_SENT):
            sent_at = _parse_ts(v.email_sent_at) or _parse_ts(v.updated_at)
            if sent_at is None or now - sent_at < window:
                continue
            self.verifications.consume_tokens_for(v.id)
            self._progress(v, "email_outreach", StepStatus.FAILED, "No reply within the response window")
            self._write_back(v, Channel.EMAIL, ChannelStatus.INCONCLUSIVE)
            expired.append(self._finish(v, FinalResult.INCONCLUSIVE, FinalReason.EMAIL_TIMEOUT))
        if expired:
            logger.info("Expired %s email waits", len(expired), extra={"stage": "email_timeout"})
        return expired

    # --- Channels ---
    def _web_scan(self, v: Verification) -> bool:
        v.status = WorkflowStatus.WEB_RUNNING
        self._progress(v, "web_scan", StepStatus.RUNNING, "Searching public web sources")
        extra = {"stage": "web_scan", "employer": v.company_name}
        try:
            evidence = self.web_source.gather(v.candidate_name, [v.company_name]).get(v.company_name)
        except Exception as e:
            logger.warning("Web scan failed", extra={**extra, "error": str(e)})
            self._progress(v, "web_scan", StepStatus.FAILED, f"Web scan failed: {e}")
            return False

        if evidence is not None:
            v.web_evidence = [a.model_dump(mode="json") for a in evidence.artifacts]
        conclusive = evidence is not None and evidence.found and evidence.confidence >= VERIFIED_THRESHOLD
        if conclusive:
            self._progress(v, "web_scan", StepStatus.SUCCESS, f"Found {len(v.web_evidence)} web sources")
            self._write_back(v, Channel.WEB, ChannelStatus.YES)
        else:
            self._progress(v, "web_scan", StepStatus.SUCCESS, "Web scan complete - no conclusive evidence")
            self._write_back(v, Channel.WEB, ChannelStatus.INCONCLUSIVE)
        return conclusive

    def _contact_discovery(self, v: Verification) -> ContactDiscoveryResult:
        v.status = WorkflowStatus.CONTACT_DISCOVERY_RUNNING
        self._progress(v, "contact_discovery", StepStatus.RUNNING, "Looking up HR phone and email")
        try:
            contacts = self.contacts.discover(v.company_name, v.company_domain)
        except Exception as e:
            logger.warning("Contact discovery failed", extra={"stage": "contact_discovery", "employer": v.company_name, "error": str(e)})
            contacts = ContactDiscoveryResult()
            v.contact_data = contacts
            self._progress(v, "contact_discovery", StepStatus.FAILED, f"Contact discovery failed: {e}")
            return contacts
        v.contact_data = contacts
        self._progress(
            v,
            "contact_discovery",
            StepStatus.SUCCESS,
            f"Phone: {contacts.phone.value or 'NOT_FOUND'}, Email: {contacts.email.value or 'NOT_FOUND'}",
        )
        return contacts

    def _phone_call(self, v: Verification, number: str) -> CallOutcome:
        v.status = WorkflowStatus.PHONE_RUNNING
        self._progress(v, "phone_call", StepStatus.RUNNING, f"Calling {number}")
        return self._record_call(v, self.phone.verify(number, v.candidate_name, v.company_name, v.job_title))

    def _place_call(self, v: Verification, number: str) -> bool:
        """Place the call and leave the record PHONE_RUNNING for the webhook; False if placement failed."""
        v.status = WorkflowStatus.PHONE_RUNNING
        self._progress(v, "phone_call", StepStatus.RUNNING, f"Calling {number}")
        try:
            call_id = self.phone.place(number, v.candidate_name, v.company_name, v.job_title)
        except Exception as e:
            logger.warning("Call placement failed", extra={"stage": "phone_call", "employer": v.company_name, "error": str(e)})
            self._record_call(v, CallResult(outcome=CallOutcome.INCONCLUSIVE, error=str(e)))
            return False
        v.phone_call = CallResult(call_id=call_id)
        self._progress(v, "phone_call", StepStatus.RUNNING, f"Call {call_id} placed - awaiting result")
        return True

    def _complete_call(self, v: Verification, result: CallResult) -> Optional[Verification]:
        """Apply a result to an in-flight call; None when another caller applied one first."""
        if not self.verifications.swap_call_result(v.id, v.phone_call, result):
            logger.info("Call result for %s applied concurrently", v.id, extra={"stage": "call_webhook", "employer": v.company_name})
            return None
        return self._after_phone(v, self._record_call(v, result))

    def _after_phone(self, v: Verification, outcome: Optional[CallOutcome]) -> Verification:
        if outcome == CallOutcome.YES:
            return self._finish(v, FinalResult.YES, FinalReason.PHONE_YES)
        if outcome == CallOutcome.NO:
            return self._finish(v, FinalResult.NO, FinalReason.PHONE_NO)
        email = v.contact_data.email if v.contact_data else None
        if email is None or not email.is_high:
            self._progress(v, "email_outreach", StepStatus.SKIPPED, "No high-confidence email found")
            return self._finish(v, FinalResult.INCONCLUSIVE, FinalReason.NO_PHONE_NO_EMAIL)
        return self._send_email(v, email.value)

    def _record_call(self, v: Verification, result: CallResult) -> CallOutcome:
        v.phone_call = result
        if result.call_id is None and result.error:
            self._progress(v, "phone_call", StepStatus.FAILED, f"Call failed: {result.error}")
        else:
            self._progress(v, "phone_call", StepStatus.SUCCESS, f"Call outcome: {result.outcome.value}")

        if result.outcome == CallOutcome.YES:
            status = ChannelStatus.YES
        elif result.outcome == CallOutcome.NO:
            status = ChannelStatus.NO
        else:
            status = ChannelStatus.INCONCLUSIVE
        self._write_back(v, Channel.CALL, status)
        return result.outcome

    def _send_email(self, v: Verification, to: str) -> Verification:
        self._progress(v, "email_outreach", StepStatus.RUNNING, f"Sending verification request to {to}")
        token = self.verifications.create_token(v.id)
        message = build_request_email(v.candidate_name, v.company_name, v.job_title)
        try:
            message_id = self.emailer.send(to, message["subject"], message["body"], token)
        except Exception as e:
            logger.warning("Email send raised", extra={"stage": "email_outreach", "employer": v.company_name, "error": str(e)})
            message_id = None
        if message_id is None:
            self.verifications.consume_tokens_for(v.id)
            self._progress(v, "email_outreach", StepStatus.FAILED, "Email send failed")
            return self._finish(v, FinalResult.INCONCLUSIVE, FinalReason.EMAIL_SEND_FAILED)

        v.email_sent_to = to
        v.email_sent_at = utc_now_iso()
        v.status = WorkflowStatus.EMAIL_SENT
        self._progress(v, "email_outreach", StepStatus.SUCCESS, "Email sent - pending response")

        def _apply(record: EmployerRecord) -> None:
            record.email_sent_to = to

        self._write_back(v, Channel.EMAIL, ChannelStatus.PENDING, _apply)
        logger.info("Awaiting email reply", extra={"stage": "email_outreach", "employer": v.company_name})
        return v

    # --- Bookkeeping ---
    def _progress(self, v: Verification, step: str, status: StepStatus, message: str) -> None:
        v.progress[step] = ProgressEntry(status=status, message=message, timestamp=utc_now_iso())
        self.verifications.save(v)

    def _finish(self, v: Verification, result: FinalResult, reason: FinalReason) -> Verification:
        v.status = WorkflowStatus.COMPLETED
        v.final_result = result
        v.final_reason = reason
        self._progress(v, "final_outcome", StepStatus.SUCCESS, f"{result.value} ({reason.value})")
        logger.info(
            "Verification %s completed", v.id,
            extra={"stage": "completion", "employer": v.company_name, "outcome": reason.value},
        )
        self._attest(v, result, reason)
        return v

    def _write_back(self, v: Verification, channel: Channel, status: ChannelStatus, apply=None) -> None:
        """Mirror a channel result onto the canonical candidate's employer entry."""
        if self.candidates is None or not v.candidate_id:
            return
        extra = {"stage": "write_back", "employer": v.company_name}

        def _mutate(record: EmployerRecord) -> None:
            try:
                record.advance(channel, status)
            except InvalidTransitionError as e:
                logger.info("Channel status kept: %s", e, extra=extra)
            if apply is not None:
                apply(record)

        try:
            self.candidates.update_employer(v.candidate_id, v.company_name, _mutate)
        except Exception as e:
            logger.warning("Channel write-back failed", extra={**extra, "error": str(e)})

    def _attest(self, v: Verification, result: FinalResult, reason: FinalReason) -> None:
        code = outcome_code_for(_CHANNEL_STATUS[result])
        channel = _attestation_channel(reason)
        if self.attestations is None or not v.candidate_id or code is None or channel is None:
            return
        # Ledger key only; the record keeps an unknown domain unset
        domain = v.company_domain or guess_company_domain(v.company_name)
        try:
            receipt = self.attestations.record(v.candidate_id, domain, channel, code, reason.value)
        except Exception as e:
            logger.warning("Attestation write failed", extra={"stage": "attestation", "employer": v.company_name, "error": str(e)})
            return

        def _ref(record: EmployerRecord) -> None:
            record.ledger_refs[channel] = receipt.reference_id

        if self.candidates is not None:
            try:
                self.candidates.update_employer(v.candidate_id, v.company_name, _ref)
            except Exception as e:
                logger.warning("Ledger reference write-back failed", extra={"stage": "attestation", "employer": v.company_name, "error": str(e)})
