from __future__ import annotations

from typing import List

from pipelines.runner import RunContext
from services.errors import InputValidationError
from services.matching import find_employer


def dedupe_employers(employers: List[str]) -> List[str]:
    unique: List[str] = []
    for raw in employers or []:
        name = (raw or "").strip()
        if name and find_employer(unique, name) is None:
            unique.append(name)
    return unique


class ValidateCandidateInput:
    """Reject the batch up front: no name or no employers means no processing."""

    def run(self, ctx: RunContext) -> RunContext:
        data = ctx.candidate_input
        if data is None or not (data.name or "").strip():
            raise InputValidationError("Candidate name is required")
        employers = dedupe_employers(ctx.employers)
        if not employers:
            raise InputValidationError("At least one claimed employer is required")
        ctx.employers = employers
        return ctx
