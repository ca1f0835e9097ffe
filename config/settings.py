from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _load_env() -> None:
    # Centralized dotenv loading; safe if .env missing
    load_dotenv()


def _as_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Core/runtime
    db_path: str
    run_env: str
    log_level: str

    # AI gating
    ai_enabled: bool
    ai_provider: str  # stub | linkup | openai
    openai_api_key: str | None
    openai_model: str | None
    linkup_api_key: str | None

    # People-search API
    rocketreach_api_key: str | None
    rocketreach_base_url: str

    # Outbound voice calls
    vapi_api_key: str | None
    vapi_assistant_id: str | None
    vapi_phone_number_id: str | None
    vapi_base_url: str
    vapi_webhook_secret: str | None

    # Outbound / inbound email
    postmark_server_token: str | None
    postmark_from: str | None
    postmark_api_url: str
    inbound_email_domain: str
    postmark_webhook_secret: str | None

    # Limits/Timeouts
    http_timeout_seconds: int
    fetch_timeout_seconds: int
    call_poll_interval_seconds: float
    call_poll_max_attempts: int
    email_reply_window_days: int
    max_contact_urls: int
    phone_acceptance_threshold: float

    reply_classifier: str = "keyword"  # keyword | llm
    call_result_mode: str = "poll"  # poll | webhook

    # Logging/tracing
    call_trace: bool = False
    call_trace_path: str = "logs/external_calls.jsonl"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_env()
    ai_enabled = _as_bool(os.getenv("AI_ENABLED", "false"))
    ai_provider = os.getenv("AI_PROVIDER", "stub").lower()
    openai_api_key = os.getenv("OPENAI_API_KEY")
    linkup_api_key = os.getenv("LINKUP_API_KEY")

    if ai_enabled:
        if ai_provider == "openai" and not openai_api_key:
            raise RuntimeError(
                "OPENAI_API_KEY required when AI_PROVIDER=openai and AI_ENABLED=true"
            )
        if ai_provider == "linkup" and not linkup_api_key:
            raise RuntimeError(
                "LINKUP_API_KEY required when AI_PROVIDER=linkup and AI_ENABLED=true"
            )
    return Settings(
        db_path=os.getenv("DB_PATH", "verifications.db"),
        run_env=os.getenv("RUN_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        ai_enabled=ai_enabled,
        ai_provider=ai_provider,
        openai_api_key=openai_api_key,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        linkup_api_key=linkup_api_key,
        rocketreach_api_key=os.getenv("ROCKETREACH_API_KEY"),
        rocketreach_base_url=os.getenv("ROCKETREACH_BASE_URL", "https://api.rocketreach.co/v2"),
        vapi_api_key=os.getenv("VAPI_API_KEY"),
        vapi_assistant_id=os.getenv("VAPI_ASSISTANT_ID"),
        vapi_phone_number_id=os.getenv("VAPI_PHONE_NUMBER_ID"),
        vapi_base_url=os.getenv("VAPI_BASE_URL", "https://api.vapi.ai"),
        vapi_webhook_secret=os.getenv("VAPI_WEBHOOK_SECRET"),
        postmark_server_token=os.getenv("POSTMARK_SERVER_TOKEN"),
        postmark_from=os.getenv("POSTMARK_FROM"),
        postmark_api_url=os.getenv("POSTMARK_API_URL", "https://api.postmarkapp.com/email"),
        inbound_email_domain=os.getenv("INBOUND_EMAIL_DOMAIN", "inbound.postmarkapp.com"),
        postmark_webhook_secret=os.getenv("POSTMARK_WEBHOOK_SECRET"),
        http_timeout_seconds=int(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        fetch_timeout_seconds=int(os.getenv("FETCH_TIMEOUT_SECONDS", "8")),
        call_poll_interval_seconds=float(os.getenv("CALL_POLL_INTERVAL_SECONDS", "5")),
        call_poll_max_attempts=int(os.getenv("CALL_POLL_MAX_ATTEMPTS", "60")),
        email_reply_window_days=int(os.getenv("EMAIL_REPLY_WINDOW_DAYS", "7")),
        max_contact_urls=int(os.getenv("MAX_CONTACT_URLS", "8")),
        phone_acceptance_threshold=float(os.getenv("PHONE_ACCEPTANCE_THRESHOLD", "0.5")),
        reply_classifier=os.getenv("REPLY_CLASSIFIER", "keyword").lower(),
        call_result_mode=os.getenv("CALL_RESULT_MODE", "poll").lower(),
        call_trace=_as_bool(os.getenv("CALL_TRACE", "false")),
        call_trace_path=os.getenv("CALL_TRACE_PATH", "logs/external_calls.jsonl"),
    )
