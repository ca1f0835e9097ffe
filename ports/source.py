from __future__ import annotations

from typing import Dict, List, Protocol

from models.evidence import EvidenceResult


class EvidenceSourcePort(Protocol):
    source_name: str

    def gather(self, candidate_name: str, employers: List[str]) -> Dict[str, EvidenceResult]:
        ...
