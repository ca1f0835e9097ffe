from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.evidence import EvidenceArtifact


PolicyType = Literal["network", "email", "phone", "unknown"]


class EmployerPolicy(BaseModel):
    """Cached classification of how an employer can be verified."""

    employer_domain: str
    employer_name: Optional[str] = None
    policy_type: PolicyType = "unknown"
    verification_vendor: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_network(self) -> bool:
        return self.policy_type == "network"


class PolicyDiscoveryResult(BaseModel):
    policy: Optional[EmployerPolicy] = None
    from_cache: bool = False
    artifacts: List[EvidenceArtifact] = Field(default_factory=list)
