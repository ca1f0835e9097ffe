from __future__ import annotations

import logging

from pipelines.runner import RunContext
from ports.repos import CandidateStorePort
from services.identity_matcher import IdentityMatcher


logger = logging.getLogger(__name__)


class ResolveCandidate:
    def __init__(self, store: CandidateStorePort) -> None:
        self.matcher = IdentityMatcher(store)

    def run(self, ctx: RunContext) -> RunContext:
        resolved = self.matcher.resolve(ctx.candidate_input, ctx.employers)
        ctx.candidate = resolved.candidate
        ctx.meta["is_new"] = resolved.is_new
        ctx.meta["match_type"] = resolved.match_type
        logger.info(
            "Candidate %s resolved (%s)", resolved.candidate.id, resolved.match_type,
            extra={"stage": "identity"},
        )
        return ctx
