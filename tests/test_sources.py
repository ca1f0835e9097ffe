from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from models.llm_schemas import CompanyEvidence, EvidenceSourceItem, PublicEvidenceResponse, UrlListResponse


def test_builtin_sources_register_on_import():
    import sources  # noqa: F401
    from sources.registry import available_sources

    names = list(available_sources().keys())
    assert names[:2] == ["public_web", "people_search"]


def test_unknown_source_raises():
    import sources  # noqa: F401
    from sources.registry import get_source

    with pytest.raises(KeyError):
        get_source("no_such_source")


def test_get_source_passes_kwargs(fake_search):
    import sources  # noqa: F401
    from sources.registry import get_source

    search = fake_search()
    assert get_source("public_web", search=search).search is search


def _url_rounds(query: str) -> UrlListResponse:
    if "RocketReach profile" in query:
        return UrlListResponse(urls=["https://rocketreach.co/jane-doe", "https://example.com/not-a-profile"])
    return UrlListResponse(urls=[
        "https://acme.com/team",
        "https://www.linkedin.com/in/janedoe",
        "https://acme.com/team",
        "mailto:jane@acme.com",
    ])


def test_public_web_collects_filtered_urls(fake_search):
    from sources.public_web import PublicWebEvidenceSource

    search = fake_search({UrlListResponse: _url_rounds})
    urls = PublicWebEvidenceSource(search).collect_urls("Jane Doe", ["Acme", "Globex"])

    assert urls == ["https://rocketreach.co/jane-doe", "https://acme.com/team"]
    # profile + 2 per employer + broad + 1 per employer
    assert len([c for c in search.calls if c["schema"] is UrlListResponse]) == 1 + 4 + 1 + 2


def test_public_web_validates_per_employer(fake_search):
    from sources.public_web import PublicWebEvidenceSource

    response = PublicEvidenceResponse(companies=[
        CompanyEvidence(
            company_name="Acme Corp",
            found=True,
            confidence=0.9,
            source_type="company_site",
            sources=[
                EvidenceSourceItem(url="https://acme.com/team", description="Team page"),
                EvidenceSourceItem(url="https://linkedin.com/in/janedoe"),
            ],
            reasoning="Listed on the team page",
        ),
        CompanyEvidence(
            company_name="Initech",
            found=True,
            confidence=0.4,
            sources=[EvidenceSourceItem(url="https://twitter.com/janedoe")],
        ),
    ])
    search = fake_search({UrlListResponse: _url_rounds, PublicEvidenceResponse: response})
    results = PublicWebEvidenceSource(search).gather("Jane Doe", ["Acme", "Globex", "Initech"])

    acme = results["Acme"]
    assert acme.found and acme.confidence == 0.9
    assert [a.value for a in acme.artifacts] == ["https://acme.com/team"]
    assert acme.artifacts[0].type == "company_site"

    assert not results["Globex"].found
    assert results["Globex"].confidence == 0.1
    assert results["Globex"].source_type == "none"

    # Only personal profiles backing the claim: not found
    assert not results["Initech"].found
    assert results["Initech"].artifacts == ()


def test_public_web_validation_failure(fake_search):
    from sources.public_web import PublicWebEvidenceSource

    search = fake_search({PublicEvidenceResponse: RuntimeError("quota exceeded")})
    results = PublicWebEvidenceSource(search).gather("Jane Doe", ["Acme"])
    assert not results["Acme"].found
    assert results["Acme"].confidence == 0.0
    assert results["Acme"].reasoning.startswith("Error during search")


class _Response:
    def __init__(self, body: Dict[str, Any]):
        self._body = body
        self.ok = True
        self.status_code = 200

    def json(self):
        return self._body

    def raise_for_status(self):
        return None


class _PeopleSession:
    def __init__(self, hits: List[Dict[str, Any]], profile: Dict[str, Any], error=None):
        self.hits = hits
        self.profile = profile
        self.error = error
        self.urls: List[str] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return _Response({"profiles": self.hits})

    def get(self, url, headers=None, timeout=None):
        self.urls.append(url)
        return _Response({"data": self.profile})


def _people_source(session, api_key="rr-key"):
    from dataclasses import replace

    from config.settings import get_settings
    from sources.people_search import PeopleSearchEvidenceSource

    return PeopleSearchEvidenceSource(replace(get_settings(), rocketreach_api_key=api_key), session=session)


def test_people_search_matches_history_and_summary():
    session = _PeopleSession(
        hits=[{"id": 42}],
        profile={
            "work_history": [{"company": "Acme Inc", "title": "Engineer", "date_range": "2019 - 2021"}],
            "bio": "Jane led growth at Globex. She enjoys hiking.",
            "profile_url": "https://rocketreach.co/jane-doe_42",
        },
    )
    results = _people_source(session).gather("Jane Doe", ["Acme", "Globex", "Initech"])

    acme = results["Acme"]
    assert acme.found and acme.confidence == 0.9
    assert acme.artifacts[0].label == "RocketReach Work: Acme Inc - Engineer"
    assert acme.artifacts[0].snippet == "Acme Inc - Engineer (2019 - 2021)"
    assert acme.artifacts[0].value == "https://rocketreach.co/jane-doe_42"

    globex = results["Globex"]
    assert globex.found
    assert globex.artifacts[0].snippet == "Jane led growth at Globex"

    assert not results["Initech"].found
    assert results["Initech"].confidence == 0.1
    assert session.urls[-1].endswith("/person/42")


def test_people_search_skips_without_key():
    session = _PeopleSession(hits=[], profile={})
    assert _people_source(session, api_key=None).gather("Jane Doe", ["Acme"]) == {}
    assert session.urls == []


def test_people_search_single_name_and_errors():
    session = _PeopleSession(hits=[], profile={})
    single = _people_source(session).gather("Cher", ["Acme"])
    assert not single["Acme"].found and single["Acme"].confidence == 0.1

    broken = _PeopleSession(hits=[], profile={}, error=requests.exceptions.ConnectionError("down"))
    assert _people_source(broken).gather("Jane Doe", ["Acme"]) == {}

    no_hits = _people_source(_PeopleSession(hits=[], profile={})).gather("Jane Doe", ["Acme"])
    assert not no_hits["Acme"].found
