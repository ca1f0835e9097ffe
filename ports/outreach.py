from __future__ import annotations

from typing import Dict, Optional, Protocol

from models.workflow import CallStatusReport, FinalResult


class PhoneCallerPort(Protocol):
    def place_call(self, number: str, variables: Dict[str, str]) -> str:
        ...

    def get_result(self, call_id: str) -> CallStatusReport:
        ...


class EmailerPort(Protocol):
    def send(self, to: str, subject: str, body: str, reply_to_token: str) -> Optional[str]:
        ...


class ReplyClassifierPort(Protocol):
    def classify(self, text: str) -> FinalResult:
        ...
