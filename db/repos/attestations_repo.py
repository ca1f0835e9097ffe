from __future__ import annotations

import hashlib
import json
import sqlite3
from typing import Any, Dict, List, Optional

from models.attestation import Attestation
from utils.call_trace import trace_call


class AttestationsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find(self, candidate_hash: str, company_domain: str, channel: str) -> Optional[Attestation]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, candidate_hash, company_domain, channel, outcome_code, reason, reference_id, created_at "
            "FROM attestations WHERE candidate_hash = ? AND company_domain = ? AND channel = ?",
            (candidate_hash, company_domain, channel),
        )
        row = cur.fetchone()
        return self._row(row) if row else None

    def insert(self, attestation: Attestation) -> bool:
        """Insert unless (candidate, domain, channel) already exists; True if inserted."""
        cur = self.conn.execute(
            "INSERT OR IGNORE INTO attestations (candidate_hash, company_domain, channel, outcome_code, reason, reference_id) VALUES (?, ?, ?, ?, ?, ?)",
            (
                attestation.candidate_hash,
                attestation.company_domain,
                attestation.channel,
                attestation.outcome_code,
                attestation.reason,
                attestation.reference_id,
            ),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def list_for_candidate(self, candidate_hash: str) -> List[Attestation]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, candidate_hash, company_domain, channel, outcome_code, reason, reference_id, created_at "
            "FROM attestations WHERE candidate_hash = ? ORDER BY id",
            (candidate_hash,),
        )
        return [self._row(r) for r in cur.fetchall()]

    @staticmethod
    def _row(row: tuple) -> Attestation:
        return Attestation(
            id=row[0],
            candidate_hash=row[1],
            company_domain=row[2],
            channel=row[3],
            outcome_code=row[4],
            reason=row[5] or "",
            reference_id=row[6],
            created_at=row[7],
        )


class SqliteLedger:
    """Local AttestationLedgerPort: an append-only, hash-chained table.

    Each reference id is sha256(previous reference + claim hash + payload), so
    rewriting any earlier entry breaks every later link (see ``verify_chain``).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def write(self, claim_hash: str, payload: Dict[str, Any]) -> str:
        """Append a claim once; a repeat claim hands back its first reference id."""
        body = json.dumps(payload, sort_keys=True, ensure_ascii=False)
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT reference_id FROM ledger_entries WHERE claim_hash = ?", (claim_hash,))
            existing = cur.fetchone()
            if existing is not None:
                self.conn.commit()
                trace_call(caller="ledger.write", provider="sqlite", operation="append", target=existing[0], extras={"duplicate": True})
                return existing[0]
            cur.execute("SELECT reference_id FROM ledger_entries ORDER BY id DESC LIMIT 1")
            row = cur.fetchone()
            prev = row[0] if row else ""
            reference_id = hashlib.sha256(f"{prev}|{claim_hash}|{body}".encode("utf-8")).hexdigest()
            cur.execute(
                "INSERT INTO ledger_entries (reference_id, claim_hash, payload_json, prev_hash) VALUES (?, ?, ?, ?)",
                (reference_id, claim_hash, body, prev or None),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            trace_call(caller="ledger.write", provider="sqlite", operation="append", status="error", error=str(e))
            raise
        trace_call(caller="ledger.write", provider="sqlite", operation="append", target=reference_id)
        return reference_id

    def verify_chain(self) -> bool:
        cur = self.conn.cursor()
        cur.execute("SELECT reference_id, claim_hash, payload_json, prev_hash FROM ledger_entries ORDER BY id")
        prev = ""
        for reference_id, claim_hash, body, prev_hash in cur.fetchall():
            if (prev_hash or "") != prev:
                return False
            expected = hashlib.sha256(f"{prev}|{claim_hash}|{body}".encode("utf-8")).hexdigest()
            if expected != reference_id:
                return False
            prev = reference_id
        return True
