from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from db.repos.attempts_repo import AttemptsRepo
from db.repos.attestations_repo import AttestationsRepo
from db.repos.candidates_repo import CandidatesRepo
from db.repos.verifications_repo import VerificationsRepo
from services.attestation import candidate_hash


def call_usage_for_run(run_id: str) -> Dict[str, Dict[str, int]]:
    """Aggregate traced external calls for ``run_id`` from the call-trace JSONL.

    Returns dict like { 'linkup': {'calls': N, 'errors': E}, 'vapi': {...} }
    """
    result: Dict[str, Dict[str, int]] = {}
    try:
        from config.settings import get_settings
        settings = get_settings()
        log_path = Path(settings.call_trace_path)
        if not log_path.exists():
            return result
        with log_path.open("r", encoding="utf-8") as f:
            for line in f:
                try:
                    rec = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(rec, dict) or rec.get("run_id") != run_id:
                    continue
                bucket = result.setdefault(rec.get("provider") or "unknown", {"calls": 0, "errors": 0})
                bucket["calls"] += 1
                if rec.get("status") == "error":
                    bucket["errors"] += 1
    except OSError:
        return result
    return result


def candidate_report(conn: sqlite3.Connection, candidate_id: str) -> Dict[str, Any]:
    candidate = CandidatesRepo(conn).require(candidate_id)
    latest = {a.employer_name: a for a in AttemptsRepo(conn).latest_per_employer(candidate_id)}
    employers: List[Dict[str, Any]] = []
    for record in candidate.employers:
        attempt = latest.get(record.employer_name)
        employers.append(
            {
                **record.model_dump(mode="json"),
                "latest_attempt": attempt.to_result().to_payload() if attempt else None,
            }
        )
    attestations = AttestationsRepo(conn).list_for_candidate(candidate_hash(candidate_id))
    return {
        "candidate": candidate.model_dump(mode="json", exclude={"employers"}),
        "employers": employers,
        "attestations": [a.model_dump(mode="json") for a in attestations],
    }


def verification_report(conn: sqlite3.Connection, verification_id: str) -> Dict[str, Any]:
    return VerificationsRepo(conn).require(verification_id).model_dump(mode="json")


def print_summary(results: List[Dict[str, Any]], api_usage: Dict[str, Dict[str, int]], output_path: Optional[Path] = None) -> None:
    """Print summary of a verification batch."""
    print("\n" + "=" * 60)
    print("EMPLOYMENT VERIFICATION - SUMMARY")
    print("=" * 60)
    for item in results:
        flag = "VERIFIED" if item.get("isVerified") else item.get("status", "").upper()
        print(f"  {item.get('employer', 'N/A')}: {item.get('outcome')} ({item.get('confidence', 0):.2f}) [{flag}]")
    if api_usage:
        print()
        print("External Calls:")
        for provider, usage in sorted(api_usage.items()):
            print(f"  {provider}: {usage.get('calls', 0)} calls, {usage.get('errors', 0)} errors")
    if output_path:
        print(f"\nFull results saved to: {output_path}")
    print("=" * 60)
