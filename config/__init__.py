"""Configuration package: settings, logging, and exceptions."""

from config.exceptions import (
    ExpanderError,
    LLMError,
    LLMRateLimitError,
    LLMResponseParseError,
    StreamInterruptedError,
    DatabaseError,
    WorkflowError,
    WorkflowStateError,
    GenerationInProgressError,
    BatchAbortedError,
    ValidationError,
    InvalidConfigError,
    EmptyManuscriptError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "ExpanderError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseParseError",
    "StreamInterruptedError",
    "DatabaseError",
    "WorkflowError",
    "WorkflowStateError",
    "GenerationInProgressError",
    "BatchAbortedError",
    "ValidationError",
    "InvalidConfigError",
    "EmptyManuscriptError",
]
