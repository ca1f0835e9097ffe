from __future__ import annotations

from pipelines.runner import RunContext
from services.evidence_gathering import EvidenceGatherer


class GatherPublicEvidence:
    """One batch lookup per candidate, shared read-only by every employer run."""

    def __init__(self, gatherer: EvidenceGatherer) -> None:
        self.gatherer = gatherer

    def run(self, ctx: RunContext) -> RunContext:
        candidate_id = ctx.candidate.id if ctx.candidate else None
        ctx.evidence = self.gatherer.gather(ctx.candidate_input.name, ctx.employers, candidate_id=candidate_id)
        return ctx
