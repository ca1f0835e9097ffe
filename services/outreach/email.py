from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from config.settings import Settings, get_settings
from utils.call_trace import trace_call


logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"verify\+([^@\s>]+)@", re.IGNORECASE)


def reply_address(token: str, domain: Optional[str] = None) -> str:
    return f"verify+{token}@{domain or get_settings().inbound_email_domain}"


def parse_token(address: Optional[str]) -> Optional[str]:
    """Correlation token from a ``verify+<token>@domain`` address."""
    m = _TOKEN_RE.search(address or "")
    return m.group(1) if m else None


_ATTRIBUTION_RE = re.compile(r"^\s*(on\b.*)?\bwrote:\s*$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"^\s*(-{2,}\s*original message\s*-{2,}|_{10,})\s*$", re.IGNORECASE)


def strip_quoted_reply(text: Optional[str]) -> str:
    """The sender's own words from a reply: drops ``>`` lines and the quoted tail.

    An "On ... wrote:" line followed by ``>`` lines is dropped on its own, so
    bottom-posted answers survive. Followed by unquoted text, or at an
    Outlook-style separator, everything from there on is our quoted request.
    """
    lines = (text or "").splitlines()
    kept = []
    for i, line in enumerate(lines):
        if _SEPARATOR_RE.match(line):
            break
        if _ATTRIBUTION_RE.match(line):
            rest = [ln for ln in lines[i + 1:] if ln.strip()]
            if rest and rest[0].lstrip().startswith(">"):
                continue
            break
        if line.lstrip().startswith(">"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def build_request_email(candidate_name: str, company_name: str, job_title: Optional[str] = None) -> Dict[str, str]:
    role = f" as {job_title}" if job_title else ""
    subject = f"Employment verification request: {candidate_name}"
    body = (
        "Hello,\n\n"
        f"We are verifying the employment history of {candidate_name}, who reports having worked "
        f"at {company_name}{role}. The candidate has consented to this verification.\n\n"
        "Could you reply to this email confirming whether this person was employed at your company? "
        "A simple yes or no is sufficient. If your policy does not allow disclosure, please let us know.\n\n"
        "Thank you."
    )
    return {"subject": subject, "body": body}


class PostmarkEmailer:
    """EmailerPort over the Postmark send API. Returns the MessageID, or None on failure."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()

    def send(self, to: str, subject: str, body: str, reply_to_token: str) -> Optional[str]:
        s = self.settings
        extra: Dict[str, Any] = {"stage": "email_outreach", "provider": "postmark"}
        if not (s.postmark_server_token and s.postmark_from):
            logger.warning("Postmark not configured; email not sent", extra=extra)
            return None
        payload = {
            "From": s.postmark_from,
            "To": to,
            "Subject": subject,
            "TextBody": body,
            "ReplyTo": reply_address(reply_to_token, s.inbound_email_domain),
            "MessageStream": "outbound",
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": s.postmark_server_token,
        }
        t0 = time.time()
        try:
            response = self.session.post(s.postmark_api_url, json=payload, headers=headers, timeout=s.http_timeout_seconds)
            response.raise_for_status()
            message_id = response.json().get("MessageID")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Email send failed", extra={**extra, "error": str(e)})
            trace_call(caller="email.send", provider="postmark", operation="send", target=to, status="error", error=str(e))
            return None
        dt = int((time.time() - t0) * 1000)
        trace_call(caller="email.send", provider="postmark", operation="send", target=to, duration_ms=dt, extras={"message_id": message_id})
        logger.info("Verification email sent to %s", to, extra={**extra, "duration_ms": dt})
        return message_id or ""
