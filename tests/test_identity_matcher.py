from __future__ import annotations

import pytest

from db.repos.candidates_repo import CandidatesRepo
from models.candidate import CandidateInput, CanonicalCandidate, EmployerRecord
from services.errors import InputValidationError
from services.identity_matcher import IdentityMatcher, score_candidate_match


def _seed(repo: CandidatesRepo, **kwargs) -> CanonicalCandidate:
    employers = kwargs.pop("employers", [])
    return repo.create(
        CanonicalCandidate(employers=[EmployerRecord(employer_name=e) for e in employers], **kwargs)
    )


def test_new_candidate_dedupes_claimed_employers(conn):
    matcher = IdentityMatcher(CandidatesRepo(conn))
    res = matcher.resolve(CandidateInput(name="Jane Doe"), ["Acme", "Acme Inc.", " ", "Globex"])
    assert res.is_new and res.match_type == "new"
    assert [e.employer_name for e in res.candidate.employers] == ["Acme", "Globex"]


def test_email_match_fills_empty_fields_only(conn):
    repo = CandidatesRepo(conn)
    existing = _seed(repo, name="Jane Doe", email="Jane.Doe@Example.com", city="Austin", employers=["Acme"])
    matcher = IdentityMatcher(repo)

    res = matcher.resolve(
        CandidateInput(name="J. Doe", email=" jane.doe@example.com ", phone="+1 415 555 0132", city="Dallas"),
        ["Initech"],
    )
    assert not res.is_new
    assert res.match_type == "email"
    assert res.candidate.id == existing.id
    # Name follows the latest scan, other populated values are kept
    assert res.candidate.name == "J. Doe"
    assert res.candidate.city == "Austin"
    assert res.candidate.phone == "+1 415 555 0132"
    assert [e.employer_name for e in res.candidate.employers] == ["Acme", "Initech"]
    assert "phone" in res.enriched_fields and "employer:Initech" in res.enriched_fields


def test_name_match_requires_employer_overlap(conn):
    repo = CandidatesRepo(conn)
    existing = _seed(repo, name="Jane Doe", employers=["Acme", "Globex"])
    matcher = IdentityMatcher(repo)

    matched = matcher.resolve(CandidateInput(name="jane doe"), ["Acme Corp", "Initech"])
    assert matched.match_type == "name_employer"
    assert matched.candidate.id == existing.id

    other = matcher.resolve(CandidateInput(name="Jane Doe"), ["Umbrella"])
    assert other.is_new
    assert other.candidate.id != existing.id
    assert len(repo.list_all()) == 2


def test_resolve_without_name_is_rejected(conn):
    with pytest.raises(InputValidationError):
        IdentityMatcher(CandidatesRepo(conn)).resolve(CandidateInput(name="  "), ["Acme"])


def test_score_candidate_match_is_additive_and_capped():
    existing = CanonicalCandidate(
        name="Jane Doe",
        email="jane@example.com",
        phone="(415) 555-0132",
        state="CA",
        employers=[EmployerRecord(employer_name="Acme")],
    )
    score, details = score_candidate_match(
        CandidateInput(name="Jane Doe", email="JANE@example.com", state="ca"), ["Acme Inc"], existing
    )
    assert score == 40 + 25 + 10 + 15
    assert details == ["email_exact_match", "name_exact_match", "state_match", "employer_overlap_1"]

    full, _ = score_candidate_match(
        CandidateInput(name="Jane Doe", email="jane@example.com", phone="4155550132", state="CA"),
        ["Acme"],
        existing,
    )
    assert full == 100


def test_suggest_orders_by_score(conn):
    repo = CandidatesRepo(conn)
    _seed(repo, name="Jane Doe", employers=["Globex"])
    best = _seed(repo, name="Jane Doe", email="jane@example.com", employers=["Acme"])
    _seed(repo, name="Bob Stone", employers=["Initech"])

    suggestions = IdentityMatcher(repo).suggest(CandidateInput(name="Jane Doe", email="jane@example.com"), ["Acme"])
    assert [s.candidate.id for s in suggestions][0] == best.id
    assert len(suggestions) == 2
    assert suggestions[0].score > suggestions[1].score
