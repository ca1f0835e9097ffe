from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol

from models.candidate import CanonicalCandidate, EmployerRecord
from models.policy import EmployerPolicy


class CandidateStorePort(Protocol):
    def create(self, candidate: CanonicalCandidate) -> CanonicalCandidate:
        ...

    def get(self, candidate_id: str) -> Optional[CanonicalCandidate]:
        ...

    def filter(self, **fields: Any) -> List[CanonicalCandidate]:
        ...

    def update(self, candidate_id: str, fields: Dict[str, Any]) -> CanonicalCandidate:
        ...

    def update_employer(
        self,
        candidate_id: str,
        employer_name: str,
        mutate: Callable[[EmployerRecord], None],
    ) -> EmployerRecord:
        ...


class PolicyCachePort(Protocol):
    def get(self, domain: str) -> Optional[EmployerPolicy]:
        ...

    def put(self, domain: str, policy: EmployerPolicy) -> None:
        ...


class AttestationLedgerPort(Protocol):
    def write(self, claim_hash: str, payload: Dict[str, Any]) -> str:
        ...
