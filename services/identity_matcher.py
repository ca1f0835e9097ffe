from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from models.candidate import CandidateInput, CanonicalCandidate, EmployerRecord
from ports.repos import CandidateStorePort
from services.domain_utils import normalize_email
from services.errors import InputValidationError
from services.matching import employers_match, find_employer, normalize_name, overlap_ratio, similarity_ratio


logger = logging.getLogger(__name__)

NAME_OVERLAP_THRESHOLD = 0.5
SUGGESTION_LIMIT = 5

_MERGEABLE_FIELDS = ("email", "phone", "linkedin_url", "city", "state")


@dataclass
class ResolveResult:
    candidate: CanonicalCandidate
    is_new: bool
    match_type: str  # email | name_employer | new
    enriched_fields: List[str] = field(default_factory=list)


@dataclass
class MatchSuggestion:
    candidate: CanonicalCandidate
    score: int
    details: List[str]


def _alnum(value: Optional[str]) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").strip().lower())


def _loose_equal(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = _alnum(a), _alnum(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


def score_candidate_match(data: CandidateInput, employers: Sequence[str], existing: CanonicalCandidate) -> Tuple[int, List[str]]:
    """Additive 0-100 likelihood that ``data`` describes ``existing``.

    Advisory only: used for manual-review suggestions, never for merging.
    """
    score = 0
    details: List[str] = []
    if data.email and existing.email and normalize_email(data.email) == normalize_email(existing.email):
        score += 40
        details.append("email_exact_match")
    if _loose_equal(data.phone, existing.phone):
        score += 35
        details.append("phone_exact_match")
    if _loose_equal(data.linkedin_url, existing.linkedin_url):
        score += 40
        details.append("linkedin_match")

    similarity = similarity_ratio(data.name, existing.name)
    if similarity == 1.0:
        score += 25
        details.append("name_exact_match")
    elif similarity >= 0.9:
        score += 20
        details.append("name_high_similarity")
    elif similarity >= 0.8:
        score += 15
        details.append("name_medium_similarity")
    elif similarity >= 0.7:
        score += 8
        details.append("name_low_similarity")

    if data.state and existing.state and _alnum(data.state) == _alnum(existing.state):
        score += 10
        details.append("state_match")
    if data.city and existing.city and _alnum(data.city) == _alnum(existing.city):
        score += 8
        details.append("city_match")

    existing_names = [e.employer_name for e in existing.employers]
    overlap = sum(1 for emp in employers if any(employers_match(emp, other) for other in existing_names))
    if overlap:
        score += min(overlap * 15, 30)
        details.append(f"employer_overlap_{overlap}")
    return min(score, 100), details


class IdentityMatcher:
    """Find-or-create the canonical candidate for a scan or attestation.

    First hit wins: normalized email, then normalized name corroborated by
    at least 50% employer overlap, otherwise a new record.
    """

    def __init__(self, store: CandidateStorePort):
        self.store = store

    def resolve(self, data: CandidateInput, claimed_employers: Sequence[str]) -> ResolveResult:
        if not normalize_name(data.name):
            raise InputValidationError("Candidate name is required")
        employers = [e.strip() for e in claimed_employers if e and e.strip()]

        email = normalize_email(data.email)
        if email:
            matches = self.store.filter(email=email)
            if matches:
                return self._merge(matches[0], data, employers, "email")

        for existing in self.store.filter(name=data.name):
            ratio = overlap_ratio([e.employer_name for e in existing.employers], employers)
            if ratio >= NAME_OVERLAP_THRESHOLD:
                return self._merge(existing, data, employers, "name_employer")

        records: List[EmployerRecord] = []
        for name in employers:
            if find_employer([r.employer_name for r in records], name) is None:
                records.append(EmployerRecord(employer_name=name))
        created = self.store.create(
            CanonicalCandidate(
                name=data.name.strip(),
                email=data.email.strip() if data.email else None,
                phone=data.phone,
                linkedin_url=data.linkedin_url,
                city=data.city,
                state=data.state,
                employers=records,
            )
        )
        logger.info("Created canonical candidate %s", created.id, extra={"outcome": "new"})
        return ResolveResult(candidate=created, is_new=True, match_type="new")

    def _merge(self, existing: CanonicalCandidate, data: CandidateInput, employers: List[str], match_type: str) -> ResolveResult:
        fields = {}
        enriched: List[str] = []
        # Name tracks the latest scan; every other field only fills in
        latest_name = data.name.strip()
        if latest_name != existing.name:
            fields["name"] = latest_name
        for key in _MERGEABLE_FIELDS:
            incoming = getattr(data, key)
            if incoming and not getattr(existing, key):
                fields[key] = incoming.strip() if isinstance(incoming, str) else incoming
                enriched.append(key)
        if fields:
            self.store.update(existing.id, fields)

        known = [e.employer_name for e in existing.employers]
        for name in employers:
            if find_employer(known, name) is None:
                # Appends under the store's read-modify-write lock
                self.store.update_employer(existing.id, name, lambda record: None)
                known.append(name)
                enriched.append(f"employer:{name}")

        merged = self.store.get(existing.id) or existing
        logger.info(
            "Matched canonical candidate %s via %s", existing.id, match_type,
            extra={"outcome": match_type},
        )
        return ResolveResult(candidate=merged, is_new=False, match_type=match_type, enriched_fields=enriched)

    def suggest(self, data: CandidateInput, claimed_employers: Sequence[str], limit: int = SUGGESTION_LIMIT, min_score: int = 1) -> List[MatchSuggestion]:
        """Top ``limit`` existing candidates by match score, highest first."""
        employers = [e for e in claimed_employers if e and e.strip()]
        scored: List[MatchSuggestion] = []
        for existing in self.store.filter():
            score, details = score_candidate_match(data, employers, existing)
            if score >= min_score:
                scored.append(MatchSuggestion(candidate=existing, score=score, details=details))
        # Stable sort keeps store order among equal scores
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]
