from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from services.errors import InvalidTransitionError


class Channel(str, Enum):
    WEB = "web"
    CALL = "call"
    EMAIL = "email"
    MANUAL_ATTESTATION = "manual_attestation"


class ChannelStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    YES = "yes"
    NO = "no"
    REFUSED = "refused"
    INCONCLUSIVE = "inconclusive"

    @property
    def is_resolved(self) -> bool:
        return self not in (ChannelStatus.NOT_STARTED, ChannelStatus.PENDING)


class EmployerRecord(BaseModel):
    """One claimed employment relationship nested in a canonical candidate."""

    employer_name: str
    web_status: ChannelStatus = ChannelStatus.NOT_STARTED
    call_status: ChannelStatus = ChannelStatus.NOT_STARTED
    email_status: ChannelStatus = ChannelStatus.NOT_STARTED
    manual_attestation_status: ChannelStatus = ChannelStatus.NOT_STARTED
    evidence_count: int = 0
    ledger_refs: Dict[str, str] = Field(default_factory=dict)
    job_title: str | None = None
    email_sent_to: str | None = None
    email_response_from: str | None = None
    email_response_preview: str | None = None

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    def status_for(self, channel: Channel) -> ChannelStatus:
        return getattr(self, f"{channel.value}_status")

    def advance(self, channel: Channel, status: ChannelStatus) -> bool:
        """Move a channel forward: not_started -> pending -> resolved.

        Returns False when the channel is already in ``status``. Raises
        InvalidTransitionError on any backwards or resolved-to-other move.
        """
        current = self.status_for(channel)
        if current == status:
            return False
        if current.is_resolved:
            raise InvalidTransitionError(
                f"{self.employer_name}: {channel.value} already resolved as {current.value}"
            )
        if status == ChannelStatus.NOT_STARTED:
            raise InvalidTransitionError(
                f"{self.employer_name}: {channel.value} cannot return to not_started"
            )
        setattr(self, f"{channel.value}_status", status)
        return True


class CanonicalCandidate(BaseModel):
    """One real person, deduplicated across scans and attestations."""

    id: str | None = None
    name: str
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    city: str | None = None
    state: str | None = None
    employers: List[EmployerRecord] = Field(default_factory=list)
    ledger_reference: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    model_config = ConfigDict(extra="ignore")


class CandidateInput(BaseModel):
    """Identifying data from a resume scan or a manual entry."""

    name: str
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    city: str | None = None
    state: str | None = None

    model_config = ConfigDict(extra="ignore")
