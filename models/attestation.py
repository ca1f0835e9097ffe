from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


# Ledger outcome codes
OUTCOME_YES = 1
OUTCOME_NO = 2
OUTCOME_REFUSE_TO_DISCLOSE = 3

OUTCOME_CODES = {
    "yes": OUTCOME_YES,
    "no": OUTCOME_NO,
    "refused": OUTCOME_REFUSE_TO_DISCLOSE,
}


class Attestation(BaseModel):
    id: Optional[int] = None
    candidate_hash: str
    company_domain: str
    channel: str
    outcome_code: int
    reason: str = ""
    reference_id: str
    created_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class AttestationReceipt(BaseModel):
    reference_id: str
    created: bool
