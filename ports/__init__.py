from .llm import LLMClientPort, WebSearchPort
from .web import PageFetchPort, PageResponse
from .outreach import EmailerPort, PhoneCallerPort, ReplyClassifierPort
from .repos import AttestationLedgerPort, CandidateStorePort, PolicyCachePort
from .source import EvidenceSourcePort

__all__ = [
    "LLMClientPort",
    "WebSearchPort",
    "PageFetchPort",
    "PageResponse",
    "EmailerPort",
    "PhoneCallerPort",
    "ReplyClassifierPort",
    "AttestationLedgerPort",
    "CandidateStorePort",
    "PolicyCachePort",
    "EvidenceSourcePort",
]
