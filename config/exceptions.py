"""Custom exception hierarchy for the novel expansion workflow."""

from typing import Optional


class ExpanderError(Exception):
    """Base exception for all novel expander errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- LLM Errors ----

class LLMError(ExpanderError):
    """Base exception for generation backend errors."""


class LLMRateLimitError(LLMError):
    """Backend rate limit or quota exceeded, retries exhausted."""

    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


class LLMResponseParseError(LLMError):
    """Failed to parse a structured backend response."""

    def __init__(self, message: str = "Failed to parse LLM response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


class StreamInterruptedError(LLMError):
    """A stream failed after fragments were already delivered."""

    def __init__(self, message: str = "Stream interrupted", delivered_chars: int = 0):
        super().__init__(message, {"delivered_chars": delivered_chars})
        self.delivered_chars = delivered_chars


# ---- Database Errors ----

class DatabaseError(ExpanderError):
    """Project store operation failed."""


# ---- Workflow Errors ----

class WorkflowError(ExpanderError):
    """Base exception for orchestration errors."""


class WorkflowStateError(WorkflowError):
    """Operation invoked from a phase that does not allow it."""

    def __init__(self, operation: str, phase: str, allowed: tuple = ()):
        details = {"phase": phase}
        if allowed:
            details["allowed"] = "/".join(allowed)
        super().__init__(f"Cannot {operation} in phase {phase}", details)
        self.operation = operation
        self.phase = phase


class GenerationInProgressError(WorkflowError):
    """A generation cycle is already active for this session."""

    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation} while a generation is in progress")
        self.operation = operation


class BatchAbortedError(WorkflowError):
    """The user declined to continue a batch after a consistency warning."""

    def __init__(self, beat_id: str, issues: list[str]):
        super().__init__(f"Batch aborted at beat {beat_id}", {"issues": len(issues)})
        self.beat_id = beat_id
        self.issues = issues


# ---- Validation Errors ----

class ValidationError(ExpanderError):
    """Input validation failed."""


class InvalidConfigError(ValidationError):
    """Configuration value is invalid."""


class EmptyManuscriptError(ValidationError):
    """Uploaded manuscript produced no source chunks."""

    def __init__(self, message: str = "Manuscript is empty"):
        super().__init__(message)
