from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from services.matching import employers_match


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EvidenceArtifact(BaseModel):
    """Immutable unit of proof: a URL + snippet, a transcript, a discovery."""

    type: str
    value: str = ""
    label: str
    snippet: str | None = None
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(frozen=True, extra="ignore")


class EvidenceResult(BaseModel):
    """What one evidence source says about one (candidate, employer) pair."""

    found: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    artifacts: Tuple[EvidenceArtifact, ...] = ()
    reasoning: str = ""
    source_type: str = "none"

    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def not_found(cls, reasoning: str, confidence: float = 0.0) -> "EvidenceResult":
        return cls(found=False, confidence=confidence, reasoning=reasoning)

    def clone(self) -> "EvidenceResult":
        return self.model_copy(deep=True)


class EvidenceBatch:
    """Read-only per-candidate evidence shared across employer runs.

    Computed once per candidate (web search is the expensive step) and handed
    to every employer run; ``for_employer`` always returns a deep copy so a
    per-employer record can never mutate the shared batch.
    """

    def __init__(self, candidate_name: str, results: Dict[str, EvidenceResult]) -> None:
        self.candidate_name = candidate_name
        self._results: Dict[str, EvidenceResult] = {k: v.clone() for k, v in results.items()}

    def employers(self) -> List[str]:
        return list(self._results.keys())

    def items(self) -> Iterable[Tuple[str, EvidenceResult]]:
        return [(k, v.clone()) for k, v in self._results.items()]

    def for_employer(self, employer_name: str) -> Optional[EvidenceResult]:
        result = self._results.get(employer_name)
        if result is None:
            for name, candidate in self._results.items():
                if employers_match(name, employer_name):
                    result = candidate
                    break
        return result.clone() if result is not None else None

    def __len__(self) -> int:
        return len(self._results)
