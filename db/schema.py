from __future__ import annotations

import sqlite3


def bootstrap(conn: sqlite3.Connection) -> None:
    """Create tables, indexes, and views (idempotent)."""
    cur = conn.cursor()

    # Canonical candidates; employers are nested JSON like a document store
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS candidates (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  name TEXT NOT NULL,\n"
            "  normalized_name TEXT NOT NULL,\n"
            "  email TEXT,\n"
            "  email_normalized TEXT,\n"
            "  phone TEXT,\n"
            "  linkedin_url TEXT,\n"
            "  city TEXT,\n"
            "  state TEXT,\n"
            "  employers_json TEXT NOT NULL DEFAULT '[]',\n"
            "  ledger_reference TEXT,\n"
            "  created_at TEXT NOT NULL,\n"
            "  updated_at TEXT NOT NULL\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_candidates_email ON candidates(email_normalized);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_candidates_name ON candidates(normalized_name);")

    # One row per orchestrator run for a (candidate, employer) pair
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS verification_attempts (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  candidate_id TEXT,\n"
            "  candidate_name TEXT NOT NULL,\n"
            "  employer_name TEXT NOT NULL,\n"
            "  employer_normalized TEXT NOT NULL,\n"
            "  stage TEXT NOT NULL,\n"
            "  stage_history_json TEXT NOT NULL DEFAULT '[]',\n"
            "  status TEXT NOT NULL,\n"
            "  outcome TEXT,\n"
            "  method TEXT,\n"
            "  confidence REAL NOT NULL DEFAULT 0,\n"
            "  is_verified INTEGER NOT NULL DEFAULT 0,\n"
            "  proof_artifacts_json TEXT NOT NULL DEFAULT '[]',\n"
            "  next_steps_json TEXT NOT NULL DEFAULT '[]',\n"
            "  error TEXT,\n"
            "  created_at TEXT NOT NULL,\n"
            "  updated_at TEXT NOT NULL,\n"
            "  FOREIGN KEY(candidate_id) REFERENCES candidates(id) ON DELETE SET NULL\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_attempts_candidate ON verification_attempts(candidate_id, employer_normalized);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_attempts_outcome ON verification_attempts(outcome, status);")

    # Learned employer verification policies, keyed by normalized domain
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS employer_policies (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  employer_domain TEXT NOT NULL UNIQUE,\n"
            "  employer_name TEXT,\n"
            "  policy_type TEXT NOT NULL,\n"
            "  verification_vendor TEXT,\n"
            "  notes TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )

    # Consented single-employer verification requests
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS verifications (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  candidate_id TEXT,\n"
            "  candidate_name TEXT NOT NULL,\n"
            "  company_name TEXT NOT NULL,\n"
            "  company_domain TEXT,\n"
            "  job_title TEXT,\n"
            "  status TEXT NOT NULL,\n"
            "  consent_status TEXT NOT NULL,\n"
            "  final_result TEXT,\n"
            "  final_reason TEXT,\n"
            "  progress_json TEXT NOT NULL DEFAULT '{}',\n"
            "  web_evidence_json TEXT NOT NULL DEFAULT '[]',\n"
            "  contact_data_json TEXT,\n"
            "  phone_call_json TEXT,\n"
            "  email_sent_to TEXT,\n"
            "  email_sent_at TEXT,\n"
            "  email_response_from TEXT,\n"
            "  email_response_preview TEXT,\n"
            "  created_at TEXT NOT NULL,\n"
            "  updated_at TEXT NOT NULL\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_verifications_status ON verifications(status);")

    # Correlation tokens embedded in outbound email reply addresses
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS verification_tokens (\n"
            "  token TEXT PRIMARY KEY,\n"
            "  verification_id TEXT NOT NULL,\n"
            "  created_at TEXT NOT NULL,\n"
            "  consumed_at TEXT,\n"
            "  FOREIGN KEY(verification_id) REFERENCES verifications(id) ON DELETE CASCADE\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_tokens_verification ON verification_tokens(verification_id);")

    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS attestations (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  candidate_hash TEXT NOT NULL,\n"
            "  company_domain TEXT NOT NULL,\n"
            "  channel TEXT NOT NULL,\n"
            "  outcome_code INTEGER NOT NULL,\n"
            "  reason TEXT,\n"
            "  reference_id TEXT NOT NULL,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  UNIQUE(candidate_hash, company_domain, channel)\n"
            ")"
        )
    )

    # Local hash-chained ledger backing the attestation capability
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS ledger_entries (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  reference_id TEXT NOT NULL UNIQUE,\n"
            "  claim_hash TEXT NOT NULL UNIQUE,\n"
            "  payload_json TEXT NOT NULL,\n"
            "  prev_hash TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )
    cur.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_claim ON ledger_entries(claim_hash);")

    # Latest attempt per (candidate, employer) for reporting
    cur.execute("DROP VIEW IF EXISTS v_latest_attempts;")
    cur.execute(
        (
            "CREATE VIEW v_latest_attempts AS\n"
            "SELECT a.*\n"
            "FROM verification_attempts a\n"
            "WHERE a.rowid = (\n"
            "  SELECT b.rowid FROM verification_attempts b\n"
            "  WHERE b.candidate_id IS a.candidate_id AND b.employer_normalized = a.employer_normalized\n"
            "  ORDER BY b.created_at DESC, b.rowid DESC LIMIT 1\n"
            ");"
        )
    )

    conn.commit()
