from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'services.orchestrator'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    # Set test environment knobs
    os.environ.setdefault("RUN_ENV", "test")


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    # No real providers or tracing in tests unless a test opts in
    for key in (
        "AI_ENABLED", "LINKUP_API_KEY", "OPENAI_API_KEY", "ROCKETREACH_API_KEY", "VAPI_API_KEY",
        "POSTMARK_SERVER_TOKEN", "POSTMARK_WEBHOOK_SECRET", "VAPI_WEBHOOK_SECRET", "CALL_RESULT_MODE",
        "CALL_TRACE", "REPLY_CLASSIFIER",
    ):
        monkeypatch.delenv(key, raising=False)
    from config.settings import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def conn(tmp_path):
    from db import schema
    from db.connection import get_connection

    c = get_connection(str(tmp_path / "test.db"))
    schema.bootstrap(c)
    try:
        yield c
    finally:
        c.close()


class FakeSearch:
    """WebSearchPort fake keyed by output schema.

    A value may be a model instance, a list consumed in order (the last
    entry repeats), a callable taking the query, or an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[type, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []

    def structured_search(self, *, use_case, query, schema):
        self.calls.append({"use_case": use_case, "query": query, "schema": schema})
        value = self.responses.get(schema)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else (value[0] if value else None)
        if isinstance(value, Exception):
            raise value
        if callable(value) and not isinstance(value, type):
            value = value(query)
            if isinstance(value, Exception):
                raise value
        return value if value is not None else schema()


class FakeFetcher:
    def __init__(self, pages: Optional[Dict[str, str]] = None):
        self.pages = dict(pages or {})
        self.fetched: List[str] = []

    def fetch(self, url, timeout=None):
        from ports.web import PageResponse

        self.fetched.append(url)
        body = self.pages.get(url)
        if body is None:
            return None
        return PageResponse(status=200, body=body, content_type="text/html")


class FakePhoneCaller:
    def __init__(self, reports=None, place_error: Optional[Exception] = None, call_id: str = "call-1"):
        self.reports = list(reports or [])
        self.place_error = place_error
        self.call_id = call_id
        self.placed: List[Dict[str, Any]] = []
        self.polls = 0

    def place_call(self, number, variables):
        if self.place_error is not None:
            raise self.place_error
        self.placed.append({"number": number, "variables": dict(variables)})
        return self.call_id

    def get_result(self, call_id):
        from models.workflow import CallStatusReport

        self.polls += 1
        if not self.reports:
            return CallStatusReport(status="in-progress")
        return self.reports.pop(0) if len(self.reports) > 1 else self.reports[0]


class FakeEmailer:
    def __init__(self, message_id: Optional[str] = "msg-1"):
        self.message_id = message_id
        self.sent: List[Dict[str, Any]] = []

    def send(self, to, subject, body, reply_to_token):
        self.sent.append({"to": to, "subject": subject, "body": body, "token": reply_to_token})
        return self.message_id


class FakeLedger:
    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    def write(self, claim_hash, payload):
        self.entries.append({"claim_hash": claim_hash, "payload": dict(payload)})
        return f"ref-{len(self.entries)}"


class InMemoryPolicyCache:
    def __init__(self, fail: bool = False):
        self.items: Dict[str, Any] = {}
        self.puts = 0
        self.fail = fail

    def get(self, domain):
        if self.fail:
            raise RuntimeError("cache unavailable")
        return self.items.get(domain)

    def put(self, domain, policy):
        if self.fail:
            raise RuntimeError("cache unavailable")
        self.puts += 1
        self.items.setdefault(domain, policy)


class StaticSource:
    """EvidenceSourcePort returning fixed results."""

    def __init__(self, name: str, results=None, error: Optional[Exception] = None):
        self.source_name = name
        self.results = dict(results or {})
        self.error = error
        self.calls: List[List[str]] = []

    def gather(self, candidate_name, employers):
        self.calls.append(list(employers))
        if self.error is not None:
            raise self.error
        return {e: r for e, r in self.results.items() if e in employers}


@pytest.fixture
def fake_search():
    return FakeSearch


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_phone_caller():
    return FakePhoneCaller


@pytest.fixture
def fake_emailer():
    return FakeEmailer()


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def policy_cache():
    return InMemoryPolicyCache()


@pytest.fixture
def static_source():
    return StaticSource
