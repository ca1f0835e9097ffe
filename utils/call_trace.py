from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


def sha256_text(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def trace_call(
    *,
    caller: str,
    provider: str,
    operation: str,
    target: Optional[str] = None,
    request_hash: Optional[str] = None,
    duration_ms: Optional[int] = None,
    status: str = "ok",
    error: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> None:
    """Append one JSON line describing an external call if tracing is enabled.

    Covers every outbound dependency: structured web search, page fetches,
    phone-call placement/polling, email sends and ledger writes. Controlled
    by CALL_TRACE / CALL_TRACE_PATH in config/settings.py.
    """
    from config.settings import get_settings
    # Pick up env changes made after first load (tests monkeypatch between calls)
    get_settings.cache_clear()
    settings = get_settings()
    if not settings.call_trace:
        return

    log_path = Path(settings.call_trace_path)
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "caller": caller,
        "provider": provider,
        "operation": operation,
        "target": target,
        "request_hash": request_hash,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    run_id = os.getenv("RUN_ID")
    if run_id:
        payload["run_id"] = run_id
    if extras:
        # Kept under a dedicated key to avoid collisions
        payload["extras"] = extras

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except OSError:
        # Never break the caller on tracing failures
        return
