from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class PageResponse:
    status: int
    body: str
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class PageFetchPort(Protocol):
    def fetch(self, url: str, timeout: Optional[float] = None) -> Optional[PageResponse]:
        ...
