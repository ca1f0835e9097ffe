from __future__ import annotations

import sqlite3
from typing import List, Optional

from models.policy import EmployerPolicy


class PoliciesRepo:
    """SQLite-backed PolicyCachePort.

    Writes are idempotent: the first classification stored for a domain wins
    and later puts for the same domain are ignored.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, domain: str) -> Optional[EmployerPolicy]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT employer_domain, employer_name, policy_type, verification_vendor, notes, created_at "
            "FROM employer_policies WHERE employer_domain = ?",
            (domain,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return EmployerPolicy(
            employer_domain=row[0],
            employer_name=row[1],
            policy_type=row[2],
            verification_vendor=row[3],
            notes=row[4],
            created_at=row[5],
        )

    def put(self, domain: str, policy: EmployerPolicy) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO employer_policies (employer_domain, employer_name, policy_type, verification_vendor, notes) VALUES (?, ?, ?, ?, ?)",
            (domain, policy.employer_name, policy.policy_type, policy.verification_vendor, policy.notes),
        )
        self.conn.commit()

    def list_all(self) -> List[EmployerPolicy]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT employer_domain, employer_name, policy_type, verification_vendor, notes, created_at "
            "FROM employer_policies ORDER BY employer_domain"
        )
        return [
            EmployerPolicy(
                employer_domain=r[0],
                employer_name=r[1],
                policy_type=r[2],
                verification_vendor=r[3],
                notes=r[4],
                created_at=r[5],
            )
            for r in cur.fetchall()
        ]
