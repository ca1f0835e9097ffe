from __future__ import annotations

import hashlib
import logging
from typing import Optional, Tuple

from db.repos.attestations_repo import AttestationsRepo
from models.attestation import OUTCOME_CODES, OUTCOME_YES, Attestation, AttestationReceipt
from models.candidate import CandidateInput, CanonicalCandidate, Channel, ChannelStatus, EmployerRecord
from ports.repos import AttestationLedgerPort, CandidateStorePort
from services.domain_utils import guess_company_domain
from services.errors import InputValidationError, InvalidTransitionError
from services.identity_matcher import IdentityMatcher


logger = logging.getLogger(__name__)

CHANNEL_WEB = "web"
CHANNEL_PHONE = "phone"
CHANNEL_EMAIL = "email"
CHANNEL_MANUAL = "manual_employer"


def candidate_hash(candidate_id: str) -> str:
    return hashlib.sha256(candidate_id.encode("utf-8")).hexdigest()


def claim_hash(cand_hash: str, company_domain: str, channel: str) -> str:
    return hashlib.sha256(f"{cand_hash}|{company_domain}|{channel}".encode("utf-8")).hexdigest()


def outcome_code_for(status: ChannelStatus) -> Optional[int]:
    """Ledger code for a conclusive channel status; None for anything else."""
    return OUTCOME_CODES.get(status.value)


class AttestationRecorder:
    """Write one attestation per (candidate, company domain, channel).

    A repeat write for the same key is a no-op that hands back the
    existing reference id.
    """

    def __init__(self, repo: AttestationsRepo, ledger: AttestationLedgerPort):
        self.repo = repo
        self.ledger = ledger

    def record(self, candidate_id: str, company_domain: str, channel: str, outcome_code: int, reason: str = "") -> AttestationReceipt:
        if not candidate_id or not company_domain:
            raise InputValidationError("candidate_id and company_domain are required for an attestation")
        if outcome_code not in OUTCOME_CODES.values():
            raise InputValidationError(f"Unknown attestation outcome code: {outcome_code}")
        cand_hash = candidate_hash(candidate_id)
        domain = company_domain.lower()
        extra = {"stage": "attestation", "employer": domain}

        existing = self.repo.find(cand_hash, domain, channel)
        if existing is not None:
            logger.info("Attestation already recorded for %s/%s", domain, channel, extra=extra)
            return AttestationReceipt(reference_id=existing.reference_id, created=False)

        payload = {
            "candidate_hash": cand_hash,
            "company_domain": domain,
            "channel": channel,
            "outcome_code": outcome_code,
            "reason": reason,
        }
        reference_id = self.ledger.write(claim_hash(cand_hash, domain, channel), payload)
        inserted = self.repo.insert(
            Attestation(
                candidate_hash=cand_hash,
                company_domain=domain,
                channel=channel,
                outcome_code=outcome_code,
                reason=reason,
                reference_id=reference_id,
            )
        )
        if not inserted:
            # Lost a race with a concurrent writer for the same key
            winner = self.repo.find(cand_hash, domain, channel)
            if winner is not None:
                return AttestationReceipt(reference_id=winner.reference_id, created=False)
        logger.info("Attestation %s recorded for %s/%s", reference_id[:12], domain, channel, extra={**extra, "outcome": str(outcome_code)})
        return AttestationReceipt(reference_id=reference_id, created=True)


def record_manual_attestation(
    matcher: IdentityMatcher,
    store: CandidateStorePort,
    recorder: AttestationRecorder,
    data: CandidateInput,
    employer_name: str,
    company_domain: Optional[str] = None,
    reason: str = "Employer attested employment",
) -> Tuple[CanonicalCandidate, AttestationReceipt]:
    """Employer-side confirmation: resolve the candidate, mark the channel, attest."""
    if not (employer_name or "").strip():
        raise InputValidationError("Employer name is required")
    resolved = matcher.resolve(data, [employer_name])
    candidate_id = resolved.candidate.id

    def _mark(record: EmployerRecord) -> None:
        try:
            record.advance(Channel.MANUAL_ATTESTATION, ChannelStatus.YES)
        except InvalidTransitionError as e:
            logger.info("Manual attestation status kept: %s", e, extra={"employer": employer_name, "stage": "attestation"})

    store.update_employer(candidate_id, employer_name, _mark)
    receipt = recorder.record(
        candidate_id,
        company_domain or guess_company_domain(employer_name),
        CHANNEL_MANUAL,
        OUTCOME_YES,
        reason,
    )

    def _ref(record: EmployerRecord) -> None:
        record.ledger_refs[CHANNEL_MANUAL] = receipt.reference_id

    store.update_employer(candidate_id, employer_name, _ref)
    return store.get(candidate_id) or resolved.candidate, receipt
