from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

import requests

from config.settings import Settings, get_settings
from models.evidence import EvidenceArtifact, EvidenceResult
from services.matching import employers_match, normalize_employer
from sources.base import EvidenceSource, WorkHistoryEntry, not_found_for_all
from sources.registry import register
from utils.call_trace import trace_call


logger = logging.getLogger(__name__)

MATCH_CONFIDENCE = 0.9
NO_MATCH_CONFIDENCE = 0.1


def split_name(full_name: str) -> tuple:
    parts = (full_name or "").strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def parse_work_history(profile: Dict[str, Any]) -> List[WorkHistoryEntry]:
    entries = []
    for raw in profile.get("work_history") or []:
        if not isinstance(raw, dict) or not raw.get("company"):
            continue
        entries.append(WorkHistoryEntry(company=raw["company"], title=raw.get("title"), date_range=raw.get("date_range")))
    return entries


def match_summary(summary: str, employer: str) -> Optional[str]:
    """The bio sentence that names ``employer``, if any."""
    key = normalize_employer(employer)
    if not key or key not in normalize_employer(summary):
        return None
    for sentence in re.split(r"[.!?]+", summary):
        if key in normalize_employer(sentence):
            return sentence.strip()
    return None


class PeopleSearchEvidenceSource(EvidenceSource):
    """RocketReach person search + profile, matched against claimed employers."""

    source_name = "people_search"

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()

    def gather(self, candidate_name: str, employers: List[str]) -> Dict[str, EvidenceResult]:
        if not employers:
            return {}
        extra = {"stage": "public_evidence", "provider": self.source_name}
        if not self.settings.rocketreach_api_key:
            logger.info("ROCKETREACH_API_KEY not set; people search skipped", extra=extra)
            return {}
        first, last = split_name(candidate_name)
        if not first or not last:
            return not_found_for_all(employers, "Invalid candidate name format", NO_MATCH_CONFIDENCE)

        try:
            profile = self._fetch_profile(first, last)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("People search failed", extra={**extra, "error": str(e)})
            return {}
        if profile is None:
            return not_found_for_all(employers, "No people-search profile found", NO_MATCH_CONFIDENCE)

        history = parse_work_history(profile)
        summary = profile.get("bio") or ""
        profile_url = profile.get("profile_url") or f"https://rocketreach.co/profile/{profile.get('id', '')}"
        return {e: self._match(e, history, summary, profile_url) for e in employers}

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.rocketreach_api_key}",
            "Content-Type": "application/json",
        }

    def _fetch_profile(self, first: str, last: str) -> Optional[Dict[str, Any]]:
        base = self.settings.rocketreach_base_url.rstrip("/")
        timeout = self.settings.http_timeout_seconds

        t0 = time.time()
        resp = self.session.post(
            f"{base}/person/search",
            json={"first_name": first, "last_name": last, "limit": 1},
            headers=self._headers(),
            timeout=timeout,
        )
        trace_call(
            caller="people_search.search",
            provider="rocketreach",
            operation="person_search",
            duration_ms=int((time.time() - t0) * 1000),
            status="ok" if resp.ok else "error",
            extras={"status_code": resp.status_code},
        )
        resp.raise_for_status()
        body = resp.json()
        hits = body.get("data") or body.get("profiles") or []
        if not hits:
            return None
        person_id = hits[0].get("id")
        if person_id is None:
            return None

        t0 = time.time()
        resp = self.session.get(f"{base}/person/{person_id}", headers=self._headers(), timeout=timeout)
        trace_call(
            caller="people_search.profile",
            provider="rocketreach",
            operation="person_lookup",
            target=str(person_id),
            duration_ms=int((time.time() - t0) * 1000),
            status="ok" if resp.ok else "error",
            extras={"status_code": resp.status_code},
        )
        resp.raise_for_status()
        body = resp.json()
        profile = body.get("data", body) if isinstance(body, dict) else None
        if not profile:
            return None
        profile.setdefault("id", person_id)
        return profile

    def _match(self, employer: str, history: List[WorkHistoryEntry], summary: str, profile_url: str) -> EvidenceResult:
        for entry in history:
            if employers_match(employer, entry.company):
                artifact = EvidenceArtifact(
                    type="people_search",
                    value=profile_url,
                    label=f"RocketReach Work: {entry.company}" + (f" - {entry.title}" if entry.title else ""),
                    snippet=entry.describe(),
                )
                return EvidenceResult(
                    found=True,
                    confidence=MATCH_CONFIDENCE,
                    artifacts=(artifact,),
                    reasoning=f"Work history lists {entry.describe()}",
                    source_type="rocketreach",
                )

        sentence = match_summary(summary, employer) if summary else None
        if sentence:
            artifact = EvidenceArtifact(
                type="people_search",
                value=profile_url,
                label=f"RocketReach Summary: {employer}",
                snippet=sentence,
            )
            return EvidenceResult(
                found=True,
                confidence=MATCH_CONFIDENCE,
                artifacts=(artifact,),
                reasoning="Profile summary mentions the employer",
                source_type="rocketreach",
            )
        return EvidenceResult.not_found(f"{employer} not in people-search work history", NO_MATCH_CONFIDENCE)


def _register():
    register(PeopleSearchEvidenceSource.source_name, PeopleSearchEvidenceSource)


_register()
