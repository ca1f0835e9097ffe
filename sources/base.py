from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from models.evidence import EvidenceResult


@dataclass
class WorkHistoryEntry:
    company: str
    title: Optional[str] = None
    date_range: Optional[str] = None

    def describe(self) -> str:
        base = f"{self.company} - {self.title or 'Unknown role'}"
        return f"{base} ({self.date_range})" if self.date_range else base


class EvidenceSource(Protocol):
    source_name: str

    def gather(self, candidate_name: str, employers: List[str]) -> Dict[str, EvidenceResult]:
        ...


def not_found_for_all(employers: List[str], reasoning: str, confidence: float = 0.0) -> Dict[str, EvidenceResult]:
    return {e: EvidenceResult.not_found(reasoning, confidence) for e in employers}
