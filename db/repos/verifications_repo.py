from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.contact import ContactDiscoveryResult
from models.workflow import CallResult, ProgressEntry, Verification, WorkflowStatus
from services.errors import NotFoundError


_COLUMNS = (
    "id, candidate_id, candidate_name, company_name, company_domain, job_title, status, "
    "consent_status, final_result, final_reason, progress_json, web_evidence_json, "
    "contact_data_json, phone_call_json, email_sent_to, email_sent_at, email_response_from, "
    "email_response_preview, created_at, updated_at"
)

# Upsert rather than REPLACE: a delete would cascade into verification_tokens
_UPSERT_SET = ", ".join(
    f"{c.strip()} = excluded.{c.strip()}"
    for c in _COLUMNS.split(",")
    if c.strip() not in ("id", "created_at")
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_verification(row: tuple) -> Verification:
    progress = {k: ProgressEntry.model_validate(v) for k, v in json.loads(row[10] or "{}").items()}
    return Verification(
        id=row[0],
        candidate_id=row[1],
        candidate_name=row[2],
        company_name=row[3],
        company_domain=row[4],
        job_title=row[5],
        status=row[6],
        consent_status=row[7],
        final_result=row[8],
        final_reason=row[9],
        progress=progress,
        web_evidence=json.loads(row[11] or "[]"),
        contact_data=ContactDiscoveryResult.model_validate_json(row[12]) if row[12] else None,
        phone_call=CallResult.model_validate_json(row[13]) if row[13] else None,
        email_sent_to=row[14],
        email_sent_at=row[15],
        email_response_from=row[16],
        email_response_preview=row[17],
        created_at=row[18],
        updated_at=row[19],
    )


class VerificationsRepo:
    """Workflow records plus the email correlation-token table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save(self, verification: Verification) -> Verification:
        now = _now()
        if not verification.id:
            verification.id = uuid.uuid4().hex
            verification.created_at = now
        verification.updated_at = now
        progress = {k: v.model_dump(mode="json") for k, v in verification.progress.items()}
        self.conn.execute(
            f"INSERT INTO verifications ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            f"ON CONFLICT(id) DO UPDATE SET {_UPSERT_SET}",
            (
                verification.id,
                verification.candidate_id,
                verification.candidate_name,
                verification.company_name,
                verification.company_domain,
                verification.job_title,
                verification.status.value,
                verification.consent_status.value,
                verification.final_result.value if verification.final_result else None,
                verification.final_reason.value if verification.final_reason else None,
                json.dumps(progress, ensure_ascii=False),
                json.dumps(verification.web_evidence, ensure_ascii=False),
                verification.contact_data.model_dump_json() if verification.contact_data else None,
                verification.phone_call.model_dump_json() if verification.phone_call else None,
                verification.email_sent_to,
                verification.email_sent_at,
                verification.email_response_from,
                verification.email_response_preview,
                verification.created_at or now,
                now,
            ),
        )
        self.conn.commit()
        return verification

    def get(self, verification_id: str) -> Optional[Verification]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM verifications WHERE id = ?", (verification_id,))
        row = cur.fetchone()
        return _row_to_verification(row) if row else None

    def require(self, verification_id: str) -> Verification:
        verification = self.get(verification_id)
        if verification is None:
            raise NotFoundError(f"Unknown verification: {verification_id}")
        return verification

    def list_by_status(self, status: WorkflowStatus) -> List[Verification]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_COLUMNS} FROM verifications WHERE status = ? ORDER BY created_at, rowid",
            (status.value,),
        )
        return [_row_to_verification(r) for r in cur.fetchall()]

    def find_by_call_id(self, call_id: str) -> Optional[Verification]:
        """Most recent verification whose placed call has this provider id."""
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_COLUMNS} FROM verifications WHERE json_extract(phone_call_json, '$.call_id') = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (call_id,),
        )
        row = cur.fetchone()
        return _row_to_verification(row) if row else None

    def swap_call_result(self, verification_id: str, expected: CallResult, result: CallResult) -> bool:
        """Replace an in-flight call with its result; True only for the single caller that swaps it."""
        cur = self.conn.execute(
            "UPDATE verifications SET phone_call_json = ?, updated_at = ? "
            "WHERE id = ? AND status = ? AND phone_call_json = ?",
            (
                result.model_dump_json(),
                _now(),
                verification_id,
                WorkflowStatus.PHONE_RUNNING.value,
                expected.model_dump_json(),
            ),
        )
        self.conn.commit()
        return cur.rowcount == 1

    # --- Correlation tokens ---
    def create_token(self, verification_id: str) -> str:
        token = uuid.uuid4().hex
        self.conn.execute(
            "INSERT INTO verification_tokens (token, verification_id, created_at) VALUES (?, ?, ?)",
            (token, verification_id, _now()),
        )
        self.conn.commit()
        return token

    def find_token(self, token: str) -> Optional[Tuple[str, Optional[str]]]:
        """Return (verification_id, consumed_at) or None for an unknown token."""
        cur = self.conn.cursor()
        cur.execute(
            "SELECT verification_id, consumed_at FROM verification_tokens WHERE token = ?",
            (token,),
        )
        row = cur.fetchone()
        return (row[0], row[1]) if row else None

    def consume_token(self, token: str) -> bool:
        """Mark a token used; True only for the single caller that flips it."""
        cur = self.conn.execute(
            "UPDATE verification_tokens SET consumed_at = ? WHERE token = ? AND consumed_at IS NULL",
            (_now(), token),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def consume_tokens_for(self, verification_id: str) -> int:
        cur = self.conn.execute(
            "UPDATE verification_tokens SET consumed_at = ? WHERE verification_id = ? AND consumed_at IS NULL",
            (_now(), verification_id),
        )
        self.conn.commit()
        return cur.rowcount
