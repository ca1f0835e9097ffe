from __future__ import annotations

import sqlite3

from db.repos.candidates_repo import CandidatesRepo
from models.attestation import OUTCOME_YES
from models.candidate import EmployerRecord
from pipelines.runner import RunContext
from services.attestation import CHANNEL_WEB, AttestationRecorder
from services.domain_utils import guess_company_domain


class RecordAttestations:
    """Attest every employer verified from public evidence in this run."""

    def __init__(self, conn: sqlite3.Connection, recorder: AttestationRecorder) -> None:
        self.candidates = CandidatesRepo(conn)
        self.recorder = recorder

    def run(self, ctx: RunContext) -> RunContext:
        if ctx.candidate is None or not ctx.candidate.id:
            return ctx
        receipts = {}
        for employer, result in ctx.results:
            if not result.is_verified:
                continue
            receipt = self.recorder.record(
                ctx.candidate.id,
                guess_company_domain(employer),
                CHANNEL_WEB,
                OUTCOME_YES,
                reason=result.outcome.value,
            )
            receipts[employer] = receipt.reference_id

            def _ref(record: EmployerRecord, ref: str = receipt.reference_id) -> None:
                record.ledger_refs[CHANNEL_WEB] = ref

            self.candidates.update_employer(ctx.candidate.id, employer, _ref)
        ctx.meta["attestations"] = receipts
        return ctx
