from __future__ import annotations

import re
from typing import Optional

import tldextract


# Bundled public-suffix snapshot only; no network fetch at lookup time
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def extract_apex_domain(url_or_domain: Optional[str]) -> Optional[str]:
    """Registrable domain of a URL or host ("https://careers.acme.co.uk/x" -> "acme.co.uk")."""
    if not url_or_domain:
        return None
    text = str(url_or_domain).strip().lower()
    if not text:
        return None
    if not text.startswith('http://') and not text.startswith('https://'):
        text = f"http://{text}"
    ext = _EXTRACT(text)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return None


def normalize_employer_domain(employer: Optional[str]) -> str:
    """Policy-cache key: lowercase, alphanumerics only ("Home Depot" -> "homedepot")."""
    return re.sub(r"[^a-z0-9]", "", (employer or "").lower())


def guess_company_domain(employer: Optional[str]) -> str:
    """Best-effort domain for ledger claims when no real domain is known."""
    key = normalize_employer_domain(employer)
    return f"{key}.com" if key else ""


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    value = email.strip().lower()
    return value or None


def email_domain(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def is_personal_social_url(url: Optional[str]) -> bool:
    low = (url or "").lower()
    return any(
        marker in low
        for marker in ("linkedin.com/in/", "twitter.com/", "facebook.com/", "instagram.com/")
    )
