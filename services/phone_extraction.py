from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

from config.settings import Settings, get_settings
from models.contact import PhoneCandidate, PhoneLabel, PhoneLookupResult
from models.llm_schemas import PhoneSearchResponse, UrlListResponse
from ports.llm import WebSearchPort
from ports.web import PageFetchPort


logger = logging.getLogger(__name__)

FALLBACK_SCORE = 0.65

# Checked in this order; the first category with a hit labels the number
_CATEGORIES: Tuple[Tuple[PhoneLabel, float, Tuple[str, ...]], ...] = (
    (PhoneLabel.HR, 0.9, (
        "hr", "human resources", "talent", "recruiting", "recruitment", "people",
        "people operations", "personnel", "employment", "careers",
    )),
    (PhoneLabel.SUPPORT, 0.35, (
        "support", "customer service", "customer care", "helpdesk", "help desk",
        "technical support", "tier 1", "tier 2",
    )),
    (PhoneLabel.MAIN, 0.8, (
        "main", "headquarters", "hq", "switchboard", "general", "corporate",
        "central", "reception",
    )),
    (PhoneLabel.CONTACT, 0.65, ("contact", "phone", "call", "telephone", "tel", "office")),
)
_NO_SIGNAL_SCORE = 0.5

_US_PHONE = re.compile(r"(?<![\w/])(?:\+?\d{1,3}[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")
_INTL_PHONE = re.compile(r"(?<![\w/])\+\d{1,3}(?:[\s.-]?\(?\d{1,4}\)?){2,5}(?!\d)")
_SCRIPT_CONTEXT = re.compile(r"\b(phone|telephone|tel|call|contact|fax)\b", re.IGNORECASE)
_SEPARATED_DATE = re.compile(r"\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{4}")
_COMPACT_DATE = re.compile(r"^(19|20)\d{2}(0[1-9]|1[0-2])(0[1-9]|[12]\d|3[01])")
_KEYWORD_PATTERNS = [
    (label, score, [re.compile(rf"\b{re.escape(k)}\b") for k in keywords])
    for label, score, keywords in _CATEGORIES
]


def digits_of(raw: str) -> str:
    return re.sub(r"\D", "", raw or "")


def is_plausible_phone(raw: str) -> bool:
    """Reject wrong lengths, date-shaped strings and repeating/sequential runs."""
    digits = digits_of(raw)
    if not 10 <= len(digits) <= 15:
        return False
    if _SEPARATED_DATE.search(raw):
        return False
    if len(digits) >= 12 and raw.strip().isdigit() and _COMPACT_DATE.match(digits):
        # Unseparated timestamps such as 20240131120000
        return False
    if re.search(r"(\d)\1{6,}", digits):
        return False
    if digits in "01234567890123456789" or digits in "98765432109876543210":
        return False
    return True


def score_context(context: str) -> Tuple[PhoneLabel, float]:
    lower = (context or "").lower()
    for label, score, patterns in _KEYWORD_PATTERNS:
        if any(p.search(lower) for p in patterns):
            return label, score
    return PhoneLabel.UNKNOWN, _NO_SIGNAL_SCORE


def _find_numbers(text: str) -> Iterable[re.Match]:
    seen_spans = []
    for pattern in (_US_PHONE, _INTL_PHONE):
        for m in pattern.finditer(text):
            if any(m.start() < end and start < m.end() for start, end in seen_spans):
                continue
            seen_spans.append((m.start(), m.end()))
            yield m


def _walk_json_ld(node: Any, context: str = "") -> Iterable[Tuple[str, str]]:
    if isinstance(node, dict):
        local = " ".join(str(node.get(k) or "") for k in ("contactType", "name", "description")).strip()
        ctx = local or context
        phone = node.get("telephone")
        if isinstance(phone, str):
            yield phone, ctx
        elif isinstance(phone, list):
            for p in phone:
                if isinstance(p, str):
                    yield p, ctx
        for value in node.values():
            if isinstance(value, (dict, list)):
                yield from _walk_json_ld(value, ctx)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_json_ld(item, context)


def extract_candidates(html: str, source_url: Optional[str] = None) -> List[PhoneCandidate]:
    """Phone candidates from tel: links, visible text, JSON-LD and inline scripts.

    Deduplicated by digit string (first occurrence wins) and filtered for
    plausibility; not scored.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    found: List[PhoneCandidate] = []

    def _add(raw: str, origin: str, context: str) -> None:
        raw = (raw or "").strip()
        if not is_plausible_phone(raw):
            return
        found.append(
            PhoneCandidate(
                raw=raw,
                digits=digits_of(raw),
                source_url=source_url,
                origin=origin,
                context=re.sub(r"\s+", " ", context).strip()[:200],
            )
        )

    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        if not href.lower().startswith("tel:"):
            continue
        parent = link.parent.get_text(" ", strip=True) if link.parent is not None else ""
        _add(href[4:], "tel", f"{link.get_text(' ', strip=True)} {parent}")

    json_ld_scripts = []
    inline_scripts = []
    for script in soup.find_all("script"):
        body = script.string or script.get_text() or ""
        if (script.get("type") or "").lower() == "application/ld+json":
            json_ld_scripts.append(body)
        else:
            inline_scripts.append(body)

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = re.sub(r"\s+", " ", soup.get_text(" "))
    for m in _find_numbers(text):
        context = text[max(0, m.start() - 80): m.end() + 40]
        _add(m.group(0), "text", context)

    for body in json_ld_scripts:
        try:
            data = json.loads(body)
        except ValueError:
            # Malformed JSON-LD is common; fall back to the raw key pattern
            for m in re.finditer(r'"telephone"\s*:\s*"([^"]+)"', body):
                _add(m.group(1), "json_ld", "")
            continue
        for phone, ctx in _walk_json_ld(data):
            _add(phone, "json_ld", ctx)

    for body in inline_scripts:
        for m in _find_numbers(body):
            window = body[max(0, m.start() - 60): m.end() + 60]
            if not _SCRIPT_CONTEXT.search(window):
                continue
            _add(m.group(0), "script", window)

    return dedupe_candidates(found)


def dedupe_candidates(candidates: Iterable[PhoneCandidate]) -> List[PhoneCandidate]:
    unique: List[PhoneCandidate] = []
    seen = set()
    for c in candidates:
        if c.digits in seen:
            continue
        seen.add(c.digits)
        unique.append(c)
    return unique


def score_candidates(candidates: Iterable[PhoneCandidate]) -> List[PhoneCandidate]:
    scored = []
    for c in candidates:
        label, score = score_context(c.context)
        scored.append(c.model_copy(update={"label": label, "score": score}))
    return scored


def select_best(candidates: List[PhoneCandidate], threshold: float) -> Optional[PhoneCandidate]:
    """Highest score at or above ``threshold``; earlier candidates win ties."""
    best: Optional[PhoneCandidate] = None
    for c in candidates:
        if c.score < threshold:
            continue
        if best is None or c.score > best.score:
            best = c
    return best


class PhoneNumberFinder:
    """Find a company's HR or main line by crawling its own contact pages."""

    def __init__(self, search: WebSearchPort, fetcher: PageFetchPort, settings: Optional[Settings] = None):
        self.search = search
        self.fetcher = fetcher
        self.settings = settings or get_settings()

    def find(self, company_name: str) -> PhoneLookupResult:
        extra = {"stage": "phone_discovery", "employer": company_name}
        threshold = self.settings.phone_acceptance_threshold
        urls = self._candidate_urls(company_name)

        collected: List[PhoneCandidate] = []
        for url in urls:
            page = self.fetcher.fetch(url, timeout=self.settings.fetch_timeout_seconds)
            if page is None or not page.ok:
                continue
            collected.extend(extract_candidates(page.body, url))
        scored = score_candidates(dedupe_candidates(collected))

        best = select_best(scored, threshold)
        if best is not None:
            decision = f"Selected {best.label.value} number (confidence {best.score:.2f}) from {best.source_url}"
            logger.info(decision, extra=extra)
            return PhoneLookupResult(company=company_name, phone=best, checked_urls=urls, candidates=scored, decision=decision)

        fallback = self._search_fallback(company_name, threshold)
        if fallback is not None:
            decision = f"Selected search result (confidence {fallback.score:.2f}) from {fallback.source_url or 'web search'}"
            logger.info(decision, extra=extra)
            return PhoneLookupResult(
                company=company_name,
                phone=fallback,
                checked_urls=urls,
                candidates=scored + [fallback],
                used_fallback=True,
                decision=decision,
            )

        if not scored:
            decision = "No phone numbers found in any checked URLs"
        else:
            decision = f"{len(scored)} candidates found but all scored below {threshold:.2f}"
        logger.info(decision, extra=extra)
        return PhoneLookupResult(company=company_name, checked_urls=urls, candidates=scored, used_fallback=True, decision=decision)

    def _candidate_urls(self, company_name: str) -> List[str]:
        query = (
            f"Search the web for company contact information for {company_name}: "
            f"{company_name} human resources phone number contact | {company_name} talent acquisition phone | "
            f"{company_name} headquarters phone | {company_name} contact phone number. "
            "Return the top 5-8 URLs that look official (from the company's own domain, e.g. "
            "/contact, /careers, /about, /locations)."
        )
        try:
            response = self.search.structured_search(use_case="phone_discovery", query=query, schema=UrlListResponse)
        except Exception as e:
            logger.warning("Contact page search failed", extra={"stage": "phone_discovery", "employer": company_name, "error": str(e)})
            return []
        urls: List[str] = []
        for url in response.urls:
            if isinstance(url, str) and url.startswith("http") and url not in urls:
                urls.append(url)
        return urls[: self.settings.max_contact_urls]

    def _search_fallback(self, company_name: str, threshold: float) -> Optional[PhoneCandidate]:
        if FALLBACK_SCORE < threshold:
            return None
        query = (
            f"Find the official HR or main phone number for {company_name}. "
            "Return each number with the URL of the official page it appears on and a short context."
        )
        try:
            response = self.search.structured_search(use_case="phone_discovery", query=query, schema=PhoneSearchResponse)
        except Exception as e:
            logger.warning("Phone search fallback failed", extra={"stage": "phone_discovery", "employer": company_name, "error": str(e)})
            return None
        for item in response.phones:
            if not is_plausible_phone(item.phone):
                continue
            label, _ = score_context(item.context or "")
            return PhoneCandidate(
                raw=item.phone.strip(),
                digits=digits_of(item.phone),
                source_url=item.source_url,
                origin="search",
                context=item.context or "",
                label=label,
                score=FALLBACK_SCORE,
            )
        return None
