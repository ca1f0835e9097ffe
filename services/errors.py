from __future__ import annotations

import traceback
from typing import Any, Dict, Optional


class VerificationError(Exception):
    """Base class for errors raised by the verification core."""


class InputValidationError(VerificationError, ValueError):
    """Request rejected before any processing (missing name, employers, ...)."""


class NotFoundError(VerificationError, KeyError):
    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class InvalidTransitionError(VerificationError):
    """A record was asked to move to a state its lifecycle does not allow."""


class OrchestrationError(VerificationError):
    """Unexpected failure inside an orchestrator run.

    These indicate an integration or programming bug, not an evidence gap,
    so they surface to the caller with the stage reached and the traceback.
    """

    def __init__(self, message: str, *, attempt_id: Optional[str] = None, stage: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.attempt_id = attempt_id
        self.stage = stage
        self.stack = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__)) if cause else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "attempt_id": self.attempt_id,
            "stage": self.stage,
            "stack": self.stack,
        }


class ProviderError(VerificationError):
    """An external provider call failed after retries."""
