from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from models.candidate import CanonicalCandidate, EmployerRecord
from services.domain_utils import normalize_email
from services.errors import NotFoundError
from services.matching import find_employer, normalize_name


_COLUMNS = (
    "id, name, email, phone, linkedin_url, city, state, employers_json, "
    "ledger_reference, created_at, updated_at"
)

# Filterable fields and the column each one is compared against
_FILTERS = {
    "id": ("id", None),
    "email": ("email_normalized", normalize_email),
    "name": ("normalized_name", normalize_name),
    "phone": ("phone", None),
    "linkedin_url": ("linkedin_url", None),
    "state": ("state", None),
    "city": ("city", None),
}

_UPDATABLE = ("name", "email", "phone", "linkedin_url", "city", "state", "ledger_reference")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_candidate(row: tuple) -> CanonicalCandidate:
    employers = [EmployerRecord.model_validate(e) for e in json.loads(row[7] or "[]")]
    return CanonicalCandidate(
        id=row[0],
        name=row[1],
        email=row[2],
        phone=row[3],
        linkedin_url=row[4],
        city=row[5],
        state=row[6],
        employers=employers,
        ledger_reference=row[8],
        created_at=row[9],
        updated_at=row[10],
    )


def _employers_json(employers: List[EmployerRecord]) -> str:
    return json.dumps([e.model_dump(mode="json") for e in employers], ensure_ascii=False)


class CandidatesRepo:
    """Document-style store for canonical candidates (CandidateStorePort)."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create(self, candidate: CanonicalCandidate) -> CanonicalCandidate:
        cid = candidate.id or uuid.uuid4().hex
        now = _now()
        self.conn.execute(
            "INSERT INTO candidates (id, name, normalized_name, email, email_normalized, phone, linkedin_url, city, state, employers_json, ledger_reference, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                cid,
                candidate.name,
                normalize_name(candidate.name),
                candidate.email,
                normalize_email(candidate.email),
                candidate.phone,
                candidate.linkedin_url,
                candidate.city,
                candidate.state,
                _employers_json(candidate.employers),
                candidate.ledger_reference,
                now,
                now,
            ),
        )
        self.conn.commit()
        return candidate.model_copy(update={"id": cid, "created_at": now, "updated_at": now})

    def get(self, candidate_id: str) -> Optional[CanonicalCandidate]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM candidates WHERE id = ?", (candidate_id,))
        row = cur.fetchone()
        return _row_to_candidate(row) if row else None

    def require(self, candidate_id: str) -> CanonicalCandidate:
        candidate = self.get(candidate_id)
        if candidate is None:
            raise NotFoundError(f"Unknown candidate: {candidate_id}")
        return candidate

    def filter(self, **fields: Any) -> List[CanonicalCandidate]:
        """Equality filter over normalized columns; no fields lists everything."""
        where: List[str] = []
        params: List[Any] = []
        for key, value in fields.items():
            if key not in _FILTERS:
                raise ValueError(f"Unsupported candidate filter: {key}")
            column, normalizer = _FILTERS[key]
            where.append(f"{column} = ?")
            params.append(normalizer(value) if normalizer else value)
        where_sql = (" WHERE " + " AND ".join(where)) if where else ""
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM candidates{where_sql} ORDER BY created_at, rowid", tuple(params))
        return [_row_to_candidate(r) for r in cur.fetchall()]

    def list_all(self) -> List[CanonicalCandidate]:
        return self.filter()

    def update(self, candidate_id: str, fields: Dict[str, Any]) -> CanonicalCandidate:
        """Partial update of scalar fields and/or the whole employer list."""
        columns: List[str] = []
        values: List[Any] = []
        for key in _UPDATABLE:
            if key in fields:
                columns.append(f"{key} = ?")
                values.append(fields[key])
                if key == "name":
                    columns.append("normalized_name = ?")
                    values.append(normalize_name(fields[key]))
                elif key == "email":
                    columns.append("email_normalized = ?")
                    values.append(normalize_email(fields[key]))
        if "employers" in fields:
            employers = [
                e if isinstance(e, EmployerRecord) else EmployerRecord.model_validate(e)
                for e in fields["employers"]
            ]
            columns.append("employers_json = ?")
            values.append(_employers_json(employers))
        if columns:
            columns.append("updated_at = ?")
            values.append(_now())
            sql = f"UPDATE candidates SET {', '.join(columns)} WHERE id = ?;"
            values.append(candidate_id)
            cur = self.conn.execute(sql, tuple(values))
            self.conn.commit()
            if cur.rowcount == 0:
                raise NotFoundError(f"Unknown candidate: {candidate_id}")
        return self.require(candidate_id)

    def update_employer(
        self,
        candidate_id: str,
        employer_name: str,
        mutate: Callable[[EmployerRecord], None],
    ) -> EmployerRecord:
        """Read-modify-write one employer entry against the latest stored row.

        The employer is located by the normalized/substring rule and appended
        when absent; only that entry is replaced. BEGIN IMMEDIATE holds the
        write lock across the read so concurrent runs cannot lose updates.
        """
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT employers_json FROM candidates WHERE id = ?", (candidate_id,))
            row = cur.fetchone()
            if not row:
                raise NotFoundError(f"Unknown candidate: {candidate_id}")
            employers = [EmployerRecord.model_validate(e) for e in json.loads(row[0] or "[]")]
            idx = find_employer([e.employer_name for e in employers], employer_name)
            if idx is None:
                employers.append(EmployerRecord(employer_name=employer_name))
                idx = len(employers) - 1
            record = employers[idx].model_copy(deep=True)
            mutate(record)
            employers[idx] = record
            cur.execute(
                "UPDATE candidates SET employers_json = ?, updated_at = ? WHERE id = ?",
                (_employers_json(employers), _now(), candidate_id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return record
