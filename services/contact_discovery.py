from __future__ import annotations

import logging
import re
from typing import Optional

from models.contact import ContactConfidence, ContactDiscoveryResult, ContactResult
from models.llm_schemas import EmailLookupResponse, PhoneLookupResponse
from ports.llm import WebSearchPort
from services.domain_utils import email_domain, extract_apex_domain


logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_phone(phone: Optional[str]) -> bool:
    digits = re.sub(r"\D", "", phone or "")
    return 10 <= len(digits) <= 15


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email))


def phone_gate(phone: Optional[str], source_url: Optional[str], company_domain: Optional[str]) -> bool:
    """Digit count 10-15, and the source page sits on the company domain when one is known."""
    if not is_valid_phone(phone):
        return False
    if company_domain:
        apex = extract_apex_domain(company_domain)
        return apex is not None and extract_apex_domain(source_url) == apex
    return True


def email_gate(email: Optional[str], company_domain: Optional[str]) -> bool:
    """Basic local@domain shape on the company's registrable domain (subdomains allowed)."""
    if not company_domain or not is_valid_email(email):
        return False
    apex = extract_apex_domain(company_domain)
    return apex is not None and extract_apex_domain(email_domain(email)) == apex


def _phone_prompt(company_name: str, company_domain: Optional[str]) -> str:
    where = company_domain or "the company's official website"
    return (
        f"Find the official HR or main contact phone number for {company_name} (domain: {where}).\n\n"
        "STRICT RULES:\n"
        f"- Only return phone numbers from the official company website ({where})\n"
        "- Must be from contact, careers, about, or HR pages\n"
        "- Must be a main/general company number, not personal\n"
        "- Return the EXACT URL where you found it as sourceUrl\n\n"
        "If you cannot find a high-confidence match, set confidence to NOT_FOUND, otherwise HIGH."
    )


def _email_prompt(company_name: str, company_domain: str) -> str:
    return (
        f"Find the official HR or recruiting email for {company_name} (domain: {company_domain}).\n\n"
        "STRICT RULES:\n"
        f"- Only return emails from the official company website ({company_domain})\n"
        "- Must be from contact, careers, or HR pages\n"
        "- Prefer: hr@, recruiting@, talent@, careers@, people@, humanresources@\n"
        "- Do NOT return personal emails (first.last@)\n"
        "- Return the EXACT URL where you found it as sourceUrl\n\n"
        "If you cannot find a high-confidence match, set confidence to NOT_FOUND, otherwise HIGH."
    )


class ContactDiscoverer:
    """High-precision HR phone/email discovery: HIGH or NOT_FOUND, never a guess."""

    def __init__(self, search: WebSearchPort):
        self.search = search

    def discover(self, company_name: str, company_domain: Optional[str] = None) -> ContactDiscoveryResult:
        phone = self.discover_phone(company_name, company_domain)
        email = self.discover_email(company_name, company_domain)
        notes = []
        if not phone.is_high:
            notes.append("No high-confidence phone found")
        if not email.is_high:
            notes.append("No high-confidence email found")
        return ContactDiscoveryResult(phone=phone, email=email, notes="; ".join(notes))

    def discover_phone(self, company_name: str, company_domain: Optional[str]) -> ContactResult:
        extra = {"stage": "contact_discovery", "employer": company_name}
        try:
            found = self.search.structured_search(
                use_case="contact_discovery",
                query=_phone_prompt(company_name, company_domain),
                schema=PhoneLookupResponse,
            )
        except Exception as e:
            logger.warning("Phone discovery failed", extra={**extra, "error": str(e)})
            return ContactResult.not_found()

        if (found.confidence or "").upper() != "HIGH" or not found.phone:
            logger.info("No high-confidence phone", extra=extra)
            return ContactResult.not_found()
        if not phone_gate(found.phone, found.source_url, company_domain):
            logger.info("Phone rejected by validation gate: %s from %s", found.phone, found.source_url, extra=extra)
            return ContactResult.not_found()
        return ContactResult(value=found.phone, source_url=found.source_url, confidence=ContactConfidence.HIGH)

    def discover_email(self, company_name: str, company_domain: Optional[str]) -> ContactResult:
        extra = {"stage": "contact_discovery", "employer": company_name}
        if not company_domain:
            return ContactResult.not_found()
        try:
            found = self.search.structured_search(
                use_case="contact_discovery",
                query=_email_prompt(company_name, company_domain),
                schema=EmailLookupResponse,
            )
        except Exception as e:
            logger.warning("Email discovery failed", extra={**extra, "error": str(e)})
            return ContactResult.not_found()

        if (found.confidence or "").upper() != "HIGH" or not found.email:
            logger.info("No high-confidence email", extra=extra)
            return ContactResult.not_found()
        if not email_gate(found.email, company_domain):
            logger.info("Email rejected by validation gate: %s", found.email, extra=extra)
            return ContactResult.not_found()
        return ContactResult(value=found.email, source_url=found.source_url, confidence=ContactConfidence.HIGH)
