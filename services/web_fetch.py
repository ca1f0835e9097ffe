from __future__ import annotations

import logging
import time
from typing import Optional

import requests

from config.settings import Settings, get_settings
from ports.web import PageResponse
from utils.call_trace import trace_call


logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class RequestsPageFetcher:
    """Plain HTTP GET with a browser-like User-Agent (PageFetchPort).

    Network errors and non-2xx/3xx responses come back as None.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": BROWSER_USER_AGENT})

    def fetch(self, url: str, timeout: Optional[float] = None) -> Optional[PageResponse]:
        t0 = time.time()
        try:
            response = self.session.get(url, timeout=timeout or self.settings.fetch_timeout_seconds)
        except requests.exceptions.RequestException as e:
            logger.warning("Fetch failed for %s", url, extra={"provider": "http", "error": str(e)})
            trace_call(caller="web_fetch.fetch", provider="http", operation="GET", target=url, status="error", error=str(e))
            return None
        dt = int((time.time() - t0) * 1000)
        trace_call(
            caller="web_fetch.fetch",
            provider="http",
            operation="GET",
            target=url,
            duration_ms=dt,
            status="ok" if response.ok else "error",
            extras={"status_code": response.status_code},
        )
        if response.status_code >= 400:
            logger.info("Fetch of %s returned %s", url, response.status_code, extra={"provider": "http", "duration_ms": dt})
            return None
        return PageResponse(
            status=response.status_code,
            body=response.text,
            content_type=response.headers.get("Content-Type", ""),
        )
