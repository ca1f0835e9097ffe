from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from db.repos.attempts_repo import AttemptsRepo
from db.repos.candidates_repo import CandidatesRepo
from db.repos.policies_repo import PoliciesRepo
from models.candidate import Channel, ChannelStatus, EmployerRecord
from models.verification import AttemptStatus, VerificationResult
from pipelines.runner import RunContext
from services.errors import InvalidTransitionError, OrchestrationError
from services.matching import find_employer
from services.orchestrator import VerificationOrchestrator, VerificationRequest
from services.policy_discovery import PolicyDiscoverer


logger = logging.getLogger(__name__)


def web_status_for(result: VerificationResult) -> ChannelStatus:
    if result.is_verified:
        return ChannelStatus.YES
    if result.status == AttemptStatus.ACTION_REQUIRED:
        return ChannelStatus.PENDING
    return ChannelStatus.INCONCLUSIVE


class VerifyEmployers:
    """Run the orchestrator once per claimed employer and mirror the outcome.

    Attempts are checkpointed after every stage. An orchestration failure
    for one employer is recorded on the context and the batch moves on.
    """

    def __init__(self, conn: sqlite3.Connection, policy_discoverer: Optional[PolicyDiscoverer] = None) -> None:
        self.attempts = AttemptsRepo(conn)
        self.candidates = CandidatesRepo(conn)
        self.orchestrator = VerificationOrchestrator(
            policy_discoverer or PolicyDiscoverer(PoliciesRepo(conn)),
            checkpoint=self.attempts.save,
        )

    def run(self, ctx: RunContext) -> RunContext:
        phones = ctx.meta.get("employer_phones") or {}
        for employer in ctx.employers:
            request = VerificationRequest(
                candidate_name=ctx.candidate_input.name,
                employer_name=employer,
                employer_phone=phones.get(employer),
                job_title=self._job_title(ctx, employer),
                public_evidence=ctx.evidence.for_employer(employer) if ctx.evidence is not None else None,
                candidate_id=ctx.candidate.id if ctx.candidate else None,
            )
            try:
                result = self.orchestrator.run(request)
            except OrchestrationError as e:
                ctx.errors.append({"employer": employer, **e.to_dict()})
                continue
            ctx.results.append((employer, result))
            self._write_back(ctx, employer, result)
        return ctx

    @staticmethod
    def _job_title(ctx: RunContext, employer: str) -> Optional[str]:
        if ctx.candidate is None:
            return None
        idx = find_employer([e.employer_name for e in ctx.candidate.employers], employer)
        return ctx.candidate.employers[idx].job_title if idx is not None else None

    def _write_back(self, ctx: RunContext, employer: str, result: VerificationResult) -> None:
        if ctx.candidate is None or not ctx.candidate.id:
            return
        status = web_status_for(result)
        evidence_count = len([a for a in result.proof_artifacts if a.type != "contact_info"])

        def _mutate(record: EmployerRecord) -> None:
            try:
                record.advance(Channel.WEB, status)
            except InvalidTransitionError as e:
                logger.info("Web status kept: %s", e, extra={"employer": employer, "stage": "write_back"})
            record.evidence_count = max(record.evidence_count, evidence_count)

        self.candidates.update_employer(ctx.candidate.id, employer, _mutate)
