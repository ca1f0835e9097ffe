from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from pydantic import ValidationError

from config.settings import Settings, get_settings
from models.workflow import CallOutcome, CallResult, CallStatusReport, FinalResult
from ports.outreach import PhoneCallerPort, ReplyClassifierPort
from services.errors import ProviderError
from utils.call_trace import trace_call


logger = logging.getLogger(__name__)


def _first_message(candidate_name: str, company_name: str) -> str:
    return (
        f"Hi, I'm calling to verify past employment for {candidate_name} at {company_name}. "
        "Could you confirm whether this person worked at your company?"
    )


def _report_from_payload(data: Dict[str, Any]) -> CallStatusReport:
    structured = data.get("structuredOutcome")
    if structured is None:
        analysis = data.get("analysis") or {}
        structured = (analysis.get("structuredData") or {}).get("outcome")
    duration = data.get("durationSeconds")
    return CallStatusReport.model_validate(
        {
            "status": data.get("status") or "queued",
            "transcript": data.get("transcript") or "",
            "structuredOutcome": structured,
            "duration_seconds": duration,
        }
    )


class VapiPhoneCaller:
    """PhoneCallerPort backed by the VAPI REST API."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.vapi_api_key}",
            "Content-Type": "application/json",
        }

    def place_call(self, number: str, variables: Dict[str, str]) -> str:
        s = self.settings
        if not (s.vapi_api_key and s.vapi_assistant_id and s.vapi_phone_number_id):
            raise ProviderError("VAPI is not configured (VAPI_API_KEY, VAPI_ASSISTANT_ID, VAPI_PHONE_NUMBER_ID)")
        body = {
            "assistantId": s.vapi_assistant_id,
            "phoneNumberId": s.vapi_phone_number_id,
            "customer": {"number": number},
            "assistantOverrides": {
                "variableValues": variables,
                "firstMessage": _first_message(variables.get("candidateName", ""), variables.get("companyName", "")),
            },
        }
        url = f"{s.vapi_base_url.rstrip('/')}/call/phone"
        t0 = time.time()
        try:
            response = self.session.post(url, json=body, headers=self._headers(), timeout=s.http_timeout_seconds)
            response.raise_for_status()
            call_id = response.json().get("id")
        except (requests.exceptions.RequestException, ValueError) as e:
            trace_call(caller="phone.place_call", provider="vapi", operation="place_call", target=number, status="error", error=str(e))
            raise ProviderError(f"Call placement failed: {e}") from e
        trace_call(
            caller="phone.place_call",
            provider="vapi",
            operation="place_call",
            target=number,
            duration_ms=int((time.time() - t0) * 1000),
            extras={"call_id": call_id},
        )
        if not call_id:
            raise ProviderError("Call placement returned no call id")
        return call_id

    def get_result(self, call_id: str) -> CallStatusReport:
        url = f"{self.settings.vapi_base_url.rstrip('/')}/call/{call_id}"
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.settings.http_timeout_seconds)
            response.raise_for_status()
            report = _report_from_payload(response.json())
        except (requests.exceptions.RequestException, ValueError, ValidationError) as e:
            trace_call(caller="phone.get_result", provider="vapi", operation="get_call", target=call_id, status="error", error=str(e))
            raise ProviderError(f"Call status lookup failed: {e}") from e
        trace_call(caller="phone.get_result", provider="vapi", operation="get_call", target=call_id, extras={"status": report.status})
        return report


def outcome_from_structured(value: Optional[str]) -> Optional[CallOutcome]:
    key = (value or "").strip().upper()
    if key in ("YES", "CONFIRMED", "VERIFIED"):
        return CallOutcome.YES
    if key in ("NO", "NOT_EMPLOYED", "DENIED"):
        return CallOutcome.NO
    if key:
        return CallOutcome.INCONCLUSIVE
    return None


def call_report_from_webhook(payload: Dict[str, Any]) -> Tuple[Optional[str], CallStatusReport]:
    """Normalize a call-result webhook into (call id, report).

    Accepts VAPI server messages (``{"message": {"type": "end-of-call-report",
    "call": {"id": ...}, ...}}``) as well as flat relays that use either
    snake_case or camelCase keys. A flat payload without a status is a final
    report.
    """
    message = payload.get("message")
    data = message if isinstance(message, dict) else payload
    call = data.get("call") or {}
    call_id = data.get("call_id") or data.get("callId") or call.get("id")

    structured = data.get("verification_result") or data.get("verificationResult") or data.get("structuredOutcome")
    if structured is None:
        analysis = data.get("analysis") or {}
        structured = (analysis.get("structuredData") or {}).get("outcome")

    kind = data.get("type")
    status = data.get("status") or ""
    if kind == "end-of-call-report" or (not kind and not status):
        status = "ended"
    transcript = data.get("transcript") or (data.get("artifact") or {}).get("transcript") or ""
    duration = data.get("durationSeconds") or data.get("duration")
    report = CallStatusReport.model_validate(
        {
            "status": status,
            "transcript": transcript,
            "structuredOutcome": structured,
            "duration_seconds": duration,
        }
    )
    return call_id, report


class PhoneVerifier:
    """Place one verification call and poll it to an outcome.

    Polling is bounded by ``max_attempts``; running out yields NO_ANSWER.
    Placement failures yield INCONCLUSIVE, never an exception. ``place`` and
    ``result_from_report`` serve callers that receive the result by webhook.
    """

    def __init__(
        self,
        caller: PhoneCallerPort,
        classifier: ReplyClassifierPort,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.caller = caller
        self.classifier = classifier
        self.poll_interval = settings.call_poll_interval_seconds if poll_interval is None else poll_interval
        self.max_attempts = settings.call_poll_max_attempts if max_attempts is None else max_attempts
        self.sleep = sleep

    def place(self, number: str, candidate_name: str, company_name: str, job_title: Optional[str] = None) -> str:
        """Place the call and return its id; provider errors propagate."""
        variables = {
            "candidateName": candidate_name,
            "companyName": company_name,
            "jobTitle": job_title or "employee",
        }
        call_id = self.caller.place_call(number, variables)
        logger.info("Call %s placed to %s", call_id, number, extra={"stage": "phone_call", "employer": company_name, "provider": "vapi"})
        return call_id

    def verify(self, number: str, candidate_name: str, company_name: str, job_title: Optional[str] = None) -> CallResult:
        extra = {"stage": "phone_call", "employer": company_name, "provider": "vapi"}
        try:
            call_id = self.place(number, candidate_name, company_name, job_title)
        except Exception as e:
            logger.warning("Call placement failed", extra={**extra, "error": str(e)})
            return CallResult(outcome=CallOutcome.INCONCLUSIVE, error=str(e))

        for attempt in range(1, self.max_attempts + 1):
            self.sleep(self.poll_interval)
            try:
                report = self.caller.get_result(call_id)
            except Exception as e:
                logger.warning("Call poll %s failed", attempt, extra={**extra, "error": str(e)})
                continue
            if report.ended:
                result = self.result_from_report(call_id, report)
                logger.info("Call %s ended: %s", call_id, result.outcome.value, extra={**extra, "outcome": result.outcome.value})
                return result

        logger.info("Call %s did not finish after %s polls", call_id, self.max_attempts, extra={**extra, "outcome": "NO_ANSWER"})
        return CallResult(call_id=call_id, outcome=CallOutcome.NO_ANSWER, error="Call polling timed out")

    def result_from_report(self, call_id: Optional[str], report: CallStatusReport) -> CallResult:
        return CallResult(
            call_id=call_id,
            outcome=self.classify(report),
            transcript=report.transcript,
            duration_seconds=report.duration_seconds,
        )

    def classify(self, report: CallStatusReport) -> CallOutcome:
        # A conclusive structured answer wins; anything else defers to the transcript
        structured = outcome_from_structured(report.structured_outcome)
        if structured in (CallOutcome.YES, CallOutcome.NO):
            return structured
        if not report.transcript:
            return CallOutcome.INCONCLUSIVE
        verdict = self.classifier.classify(report.transcript)
        if verdict == FinalResult.YES:
            return CallOutcome.YES
        if verdict == FinalResult.NO:
            return CallOutcome.NO
        return CallOutcome.INCONCLUSIVE
