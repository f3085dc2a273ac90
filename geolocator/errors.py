"""
Error taxonomy for the geolocation pipeline.

Two families:
  - ReasoningError: raised by the reasoning client when an outbound call fails.
    The retry controller matches these by class, never by message text.
  - PipelineError: the small, enumerable set a caller of analyze/refine can see.
"""

from typing import Any, Dict, Optional


class GeolocatorError(Exception):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# --------------------------------------------------------------------------- #
# Reasoning client                                                            #
# --------------------------------------------------------------------------- #


class ReasoningError(GeolocatorError):
    """Unclassified failure of the external service. Never retried."""


class ToolInputRejected(ReasoningError):
    def __init__(self, detail: str, tool: Optional[str] = None):
        super().__init__(
            f"Tool input rejected: {detail}",
            {"detail": detail, "tool": tool},
        )
        self.detail = detail
        self.tool = tool


class EmptyResponse(ReasoningError):
    """The service answered without text, usually a content-safety refusal."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(
            "Reasoning service returned no text",
            {"reason": reason},
        )
        self.reason = reason


class ServiceUnavailable(ReasoningError):
    def __init__(self, status: Optional[int] = None, reason: str = ""):
        super().__init__(
            f"Reasoning service unavailable ({status})",
            {"status": status, "reason": reason},
        )
        self.status = status


# --------------------------------------------------------------------------- #
# Pipeline                                                                    #
# --------------------------------------------------------------------------- #


class PipelineError(GeolocatorError):
    pass


class AllExpertsFailed(PipelineError):
    def __init__(self, attempted: int):
        super().__init__(
            "All expert analyses failed. Please try again.",
            {"attempted": attempted},
        )


class MalformedOutput(PipelineError):
    def __init__(self, reason: str, preview: str = ""):
        super().__init__(
            f"Invalid JSON response from reasoning service: {reason}",
            {"reason": reason, "preview": preview[:200]},
        )


class VerificationFailed(PipelineError):
    def __init__(self, reason: str, attempts: int = 0):
        super().__init__(
            f"Verification failed: {reason}",
            {"reason": reason, "attempts": attempts},
        )
        self.attempts = attempts
