from __future__ import annotations

import json

from services.reporting import call_usage_for_run
from utils.call_trace import sha256_text, trace_call


def test_trace_disabled_writes_nothing(tmp_path, monkeypatch):
    path = tmp_path / "calls.jsonl"
    monkeypatch.setenv("CALL_TRACE_PATH", str(path))
    trace_call(caller="test", provider="vapi", operation="place_call")
    assert not path.exists()


def test_trace_lines_are_counted_per_run(tmp_path, monkeypatch):
    path = tmp_path / "logs" / "calls.jsonl"
    monkeypatch.setenv("CALL_TRACE", "true")
    monkeypatch.setenv("CALL_TRACE_PATH", str(path))

    monkeypatch.setenv("RUN_ID", "run-a")
    trace_call(caller="test", provider="linkup", operation="search", request_hash=sha256_text("q"))
    trace_call(caller="test", provider="linkup", operation="search", status="error", error="timeout")
    trace_call(caller="test", provider="vapi", operation="place_call", extras={"status_code": 201})
    monkeypatch.setenv("RUN_ID", "run-b")
    trace_call(caller="test", provider="postmark", operation="send")

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert len(lines) == 4
    assert lines[2]["extras"] == {"status_code": 201}
    assert lines[0]["request_hash"] == sha256_text("q")

    assert call_usage_for_run("run-a") == {
        "linkup": {"calls": 2, "errors": 1},
        "vapi": {"calls": 1, "errors": 0},
    }
    assert call_usage_for_run("run-b") == {"postmark": {"calls": 1, "errors": 0}}
    assert call_usage_for_run("missing") == {}


def test_usage_for_missing_file_is_empty(tmp_path, monkeypatch):
    monkeypatch.setenv("CALL_TRACE_PATH", str(tmp_path / "nope.jsonl"))
    assert call_usage_for_run("run-a") == {}


def test_sha256_text_skips_empty():
    assert sha256_text("") is None
    assert len(sha256_text("hello")) == 64
