from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Shapes handed to the structured web search as output schemas. Raw responses
# are validated against these before anything else reads them.


class UrlListResponse(BaseModel):
    urls: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class EvidenceSourceItem(BaseModel):
    url: str
    description: Optional[str] = None
    snippet: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class CompanyEvidence(BaseModel):
    company_name: str
    found: bool = False
    confidence: Optional[float] = None
    source_type: Optional[str] = None
    role_mentioned: Optional[str] = None
    time_period: Optional[str] = None
    sources: List[EvidenceSourceItem] = Field(default_factory=list)
    reasoning: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class PublicEvidenceResponse(BaseModel):
    companies: List[CompanyEvidence] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class PhoneLookupResponse(BaseModel):
    phone: Optional[str] = None
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    confidence: Optional[str] = None
    context: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmailLookupResponse(BaseModel):
    email: Optional[str] = None
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    confidence: Optional[str] = None
    context: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PhoneSearchItem(BaseModel):
    phone: str
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    context: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PhoneSearchResponse(BaseModel):
    phones: List[PhoneSearchItem] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ReplyClassificationResponse(BaseModel):
    verdict: str = "INCONCLUSIVE"
    reasoning: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
