from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from models.evidence import EvidenceArtifact
from models.verification import (
    AttemptStatus,
    NextStep,
    Outcome,
    StageEntry,
    VerificationAttempt,
)
from services.matching import normalize_employer


_COLUMNS = (
    "id, candidate_id, candidate_name, employer_name, stage, stage_history_json, status, "
    "outcome, method, confidence, is_verified, proof_artifacts_json, next_steps_json, error, "
    "created_at, updated_at"
)


def _dump_list(items) -> str:
    return json.dumps([i.model_dump(mode="json") for i in items], ensure_ascii=False)


def _row_to_attempt(row: tuple) -> VerificationAttempt:
    return VerificationAttempt(
        id=row[0],
        candidate_id=row[1],
        candidate_name=row[2],
        employer_name=row[3],
        stage=row[4],
        stage_history=[StageEntry.model_validate(e) for e in json.loads(row[5] or "[]")],
        status=row[6],
        outcome=Outcome(row[7]) if row[7] else None,
        method=row[8],
        confidence=float(row[9] or 0.0),
        is_verified=bool(row[10]),
        proof_artifacts=[EvidenceArtifact.model_validate(a) for a in json.loads(row[11] or "[]")],
        next_steps=[NextStep.model_validate(s) for s in json.loads(row[12] or "[]")],
        error=row[13],
        created_at=row[14],
        updated_at=row[15],
    )


class AttemptsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save(self, attempt: VerificationAttempt) -> VerificationAttempt:
        """Insert on first save, overwrite the row afterwards; returns the stored attempt."""
        now = datetime.now(timezone.utc).isoformat()
        if not attempt.id:
            attempt.id = uuid.uuid4().hex
            attempt.created_at = now
        attempt.updated_at = now
        self.conn.execute(
            "INSERT INTO verification_attempts (id, candidate_id, candidate_name, employer_name, employer_normalized, stage, stage_history_json, status, outcome, method, confidence, is_verified, proof_artifacts_json, next_steps_json, error, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET stage = excluded.stage, stage_history_json = excluded.stage_history_json, "
            "status = excluded.status, outcome = excluded.outcome, method = excluded.method, confidence = excluded.confidence, "
            "is_verified = excluded.is_verified, proof_artifacts_json = excluded.proof_artifacts_json, "
            "next_steps_json = excluded.next_steps_json, error = excluded.error, updated_at = excluded.updated_at",
            (
                attempt.id,
                attempt.candidate_id,
                attempt.candidate_name,
                attempt.employer_name,
                normalize_employer(attempt.employer_name),
                attempt.stage.value,
                _dump_list(attempt.stage_history),
                attempt.status.value,
                attempt.outcome.value if attempt.outcome else None,
                attempt.method,
                attempt.confidence,
                1 if attempt.is_verified else 0,
                _dump_list(attempt.proof_artifacts),
                _dump_list(attempt.next_steps),
                attempt.error,
                attempt.created_at or now,
                now,
            ),
        )
        self.conn.commit()
        return attempt

    def get(self, attempt_id: str) -> Optional[VerificationAttempt]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM verification_attempts WHERE id = ?", (attempt_id,))
        row = cur.fetchone()
        return _row_to_attempt(row) if row else None

    def list_for_candidate(self, candidate_id: str) -> List[VerificationAttempt]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_COLUMNS} FROM verification_attempts WHERE candidate_id = ? ORDER BY created_at, rowid",
            (candidate_id,),
        )
        return [_row_to_attempt(r) for r in cur.fetchall()]

    def latest_per_employer(self, candidate_id: str) -> List[VerificationAttempt]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_COLUMNS} FROM v_latest_attempts WHERE candidate_id = ? ORDER BY employer_name",
            (candidate_id,),
        )
        return [_row_to_attempt(r) for r in cur.fetchall()]

    def find_verified(self, candidate_id: str, employer_name: str) -> Optional[VerificationAttempt]:
        """Most recent completed verified_public_evidence attempt for this employer."""
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_COLUMNS} FROM verification_attempts "
            "WHERE candidate_id = ? AND employer_normalized = ? AND outcome = ? AND status = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (
                candidate_id,
                normalize_employer(employer_name),
                Outcome.VERIFIED_PUBLIC_EVIDENCE.value,
                AttemptStatus.COMPLETED.value,
            ),
        )
        row = cur.fetchone()
        return _row_to_attempt(row) if row else None
