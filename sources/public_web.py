from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models.evidence import EvidenceArtifact, EvidenceResult
from models.llm_schemas import CompanyEvidence, PublicEvidenceResponse, UrlListResponse
from ports.llm import WebSearchPort
from services.domain_utils import is_personal_social_url
from sources.base import EvidenceSource, not_found_for_all
from sources.registry import register


logger = logging.getLogger(__name__)

MAX_URLS = 30
ABSENT_CONFIDENCE = 0.1


def _profile_prompt(name: str, employers: List[str]) -> str:
    return (
        f'Find the RocketReach profile page (rocketreach.co) for "{name}", who worked at: {", ".join(employers)}.\n'
        "Find the RocketReach profile page for this person that shows their career history.\n"
        "Return ONLY the RocketReach profile URL (must contain rocketreach.co)."
    )


def _direct_prompt(name: str, employer: str) -> str:
    return (
        f'Search for "{name}" "{employer}"\n\n'
        "Find ANY web pages mentioning both the person and company: company team/about/staff pages, "
        "news articles, press releases, professional bios, conference materials.\n\n"
        "Return ALL URLs found."
    )


def _career_prompt(name: str, employer: str) -> str:
    return (
        f'Find articles about "{name}" career history that mention past work at "{employer}"\n\n'
        'Include career bios, news about job changes ("previously at", "formerly with"), alumni pages '
        "and professional history summaries.\n\nReturn ALL URLs."
    )


def _broad_prompt(name: str, employers: List[str]) -> str:
    return (
        f'Find any web pages about "{name}" career, work history, or professional background.\n\n'
        f"Companies of interest: {', '.join(employers)}\n\n"
        "Search for biography pages, company team pages, press releases about hiring or promotions, "
        "industry publication profiles, conference speaker bios and award announcements.\n\n"
        "Return all relevant URLs."
    )


def _team_prompt(name: str, employer: str) -> str:
    return (
        f'Find the "{employer}" team, about us, leadership or staff pages that list "{name}".\n\n'
        "Return all URLs from the company's own website."
    )


def _validation_prompt(name: str, employers: List[str], urls: List[str]) -> str:
    listed = "\n".join(f"- {u}" for u in urls) or "- (no URLs collected; search yourself)"
    return (
        f'Verify whether "{name}" worked at each of these companies: {", ".join(employers)}.\n\n'
        f"Candidate URLs:\n{listed}\n\n"
        "Credible sources, strongest first:\n"
        "1. ROCKETREACH (rocketreach.co) - current/past positions and career history\n"
        "2. Company website team/about pages\n"
        "3. Press releases and news articles\n\n"
        "Do NOT use personal social profiles (linkedin.com/in, twitter, facebook, instagram).\n\n"
        "For each company return: company_name, found (true/false), confidence (0.0 to 1.0), "
        'source_type ("rocketreach" | "company_site" | "press" | "other"), role_mentioned, '
        "time_period, sources (url, description, snippet) and reasoning."
    )


def _match_company(companies: List[CompanyEvidence], employer: str) -> Optional[CompanyEvidence]:
    target = employer.lower()
    for company in companies:
        name = (company.company_name or "").lower()
        if name and (target in name or name in target):
            return company
    return None


class PublicWebEvidenceSource(EvidenceSource):
    """Multi-round web search for a candidate's employers plus one validation pass.

    The URL rounds only collect candidates; the validation call decides what
    each URL proves. Each round failing on its own is logged and skipped.
    """

    source_name = "public_web"

    def __init__(self, search: Optional[WebSearchPort] = None):
        # Lazy default so importing the registry never requires provider keys
        self._search = search

    @property
    def search(self) -> WebSearchPort:
        if self._search is None:
            from services.llm_client import LLMClient
            self._search = LLMClient()
        return self._search

    def gather(self, candidate_name: str, employers: List[str]) -> Dict[str, EvidenceResult]:
        if not employers:
            return {}
        urls = self.collect_urls(candidate_name, employers)
        extra = {"stage": "public_evidence", "provider": self.source_name}
        if not urls:
            logger.warning("No URLs found after all search rounds for %s", candidate_name, extra=extra)

        try:
            response = self.search.structured_search(
                use_case="public_evidence",
                query=_validation_prompt(candidate_name, employers, urls),
                schema=PublicEvidenceResponse,
            )
        except Exception as e:
            logger.warning("Evidence validation failed", extra={**extra, "error": str(e)})
            return not_found_for_all(employers, f"Error during search: {e}", 0.0)

        results: Dict[str, EvidenceResult] = {}
        for employer in employers:
            results[employer] = self._result_for(candidate_name, employer, _match_company(response.companies, employer))
            logger.info(
                "Public evidence for %s: found=%s confidence=%.2f",
                employer, results[employer].found, results[employer].confidence,
                extra={**extra, "employer": employer},
            )
        return results

    def collect_urls(self, candidate_name: str, employers: List[str]) -> List[str]:
        urls: List[str] = []

        profile = self._urls(_profile_prompt(candidate_name, employers), "rocketreach")
        urls.extend(u for u in profile if "rocketreach.co" in u.lower())

        for employer in employers:
            urls.extend(self._urls(_direct_prompt(candidate_name, employer), "direct"))
            urls.extend(self._urls(_career_prompt(candidate_name, employer), "career_history"))

        urls.extend(self._urls(_broad_prompt(candidate_name, employers), "broad"))

        for employer in employers:
            urls.extend(self._urls(_team_prompt(candidate_name, employer), "team_pages"))

        unique: List[str] = []
        for url in urls:
            if not url.startswith("http") or is_personal_social_url(url) or url in unique:
                continue
            unique.append(url)
        return unique[:MAX_URLS]

    def _urls(self, query: str, round_name: str) -> List[str]:
        try:
            response = self.search.structured_search(use_case="public_evidence", query=query, schema=UrlListResponse)
        except Exception as e:
            logger.info("Search round %s failed", round_name, extra={"stage": "public_evidence", "error": str(e)})
            return []
        return [u.strip() for u in response.urls if isinstance(u, str) and u.strip()]

    def _result_for(self, candidate_name: str, employer: str, match: Optional[CompanyEvidence]) -> EvidenceResult:
        if match is None or not (match.found or match.sources):
            reasoning = (match.reasoning if match else None) or f"No credible sources found for {candidate_name} at {employer}"
            return EvidenceResult(found=False, confidence=ABSENT_CONFIDENCE, reasoning=reasoning, source_type="none")

        valid = [s for s in match.sources if s.url and not is_personal_social_url(s.url)]
        confidence = match.confidence if match.confidence else (0.5 if valid else 0.3)
        source_type = match.source_type or "other"
        artifacts = tuple(
            EvidenceArtifact(
                type=source_type if source_type != "other" else "public_evidence",
                value=s.url,
                label=s.description or s.snippet or "Source found",
                snippet=s.snippet or "",
            )
            for s in valid
        )
        return EvidenceResult(
            found=bool(valid),
            confidence=min(1.0, max(0.0, confidence)),
            artifacts=artifacts,
            reasoning=match.reasoning or "Employment evidence found",
            source_type=source_type,
        )


def _register():
    register(PublicWebEvidenceSource.source_name, PublicWebEvidenceSource)


_register()
