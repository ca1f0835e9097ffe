from __future__ import annotations

import os


# Central routing for LLM use-cases. Edit here to change per-operation defaults.
# Per-route provider/model can be overridden via env vars for quick testing.
#
# Keys are use_case identifiers consumed by services/llm_client.py
ROUTES: dict[str, dict] = {
    # URL discovery and evidence validation for a candidate's claimed employers
    "public_evidence": {
        "provider": os.getenv("LLM_EVIDENCE_PROVIDER", "linkup"),
        "depth": os.getenv("LLM_EVIDENCE_DEPTH", "standard"),
        "operation": "public_evidence",
    },
    # HR / main phone and HR email lookup on the employer's own site
    "contact_discovery": {
        "provider": os.getenv("LLM_CONTACT_PROVIDER", "linkup"),
        "depth": "standard",
        "operation": "contact_discovery",
    },
    # Candidate contact-page URLs for phone scraping, and the scraping fallback
    "phone_discovery": {
        "provider": os.getenv("LLM_PHONE_PROVIDER", "linkup"),
        "depth": "standard",
        "operation": "phone_discovery",
    },
    # Free-text reply / transcript classification (OpenAI chat)
    "reply_classification": {
        "provider": os.getenv("LLM_REPLY_PROVIDER", "openai"),
        "model": os.getenv("OPENAI_MODEL_REPLY"),  # falls back to global OPENAI_MODEL
        "temperature": 0,
        "operation": "reply_classification",
    },
}
