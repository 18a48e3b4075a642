"""Translation of execution errors into user-facing categories and messages."""
from enum import Enum

from weaveflow.executors.base import NodeInputError


class ErrorCategory(str, Enum):
    """User-facing error category."""

    VALIDATION = "validation"
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    QUOTA = "quota"
    INVALID_KEY = "invalid_key"
    TIMEOUT = "timeout"
    NETWORK = "network"
    MODEL_NOT_FOUND = "model_not_found"
    GENERIC = "generic"


_MESSAGES = {
    ErrorCategory.OVERLOADED: "The AI model is currently overloaded. Please wait a few moments and try again.",
    ErrorCategory.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
    ErrorCategory.QUOTA: "API quota exceeded. Please check your API key limits.",
    ErrorCategory.INVALID_KEY: "Invalid API key. Please check WEAVEFLOW_GEMINI_API_KEY in your environment.",
    ErrorCategory.TIMEOUT: "Request timed out. The model is taking too long to respond. Please try again.",
    ErrorCategory.NETWORK: "Network error. Please check your internet connection and try again.",
    ErrorCategory.MODEL_NOT_FOUND: "The selected model is not available. Please try a different model.",
}


def categorize(error: BaseException) -> ErrorCategory:
    """Pick the category whose signal appears first in the error message."""
    if isinstance(error, NodeInputError):
        return ErrorCategory.VALIDATION

    message = str(error).lower()
    if "503" in message or "service unavailable" in message or "overloaded" in message:
        return ErrorCategory.OVERLOADED
    if "429" in message or "rate limit" in message or "too many requests" in message:
        return ErrorCategory.RATE_LIMITED
    if "quota" in message or "billing" in message:
        return ErrorCategory.QUOTA
    if "invalid api key" in message or "authentication" in message or "401" in message:
        return ErrorCategory.INVALID_KEY
    if "timeout" in message or "timed out" in message:
        return ErrorCategory.TIMEOUT
    if (
        "network" in message
        or "fetch" in message
        or "econnrefused" in message
        or "connect" in message
    ):
        return ErrorCategory.NETWORK
    if "model" in message and "not found" in message:
        return ErrorCategory.MODEL_NOT_FOUND
    return ErrorCategory.GENERIC


def describe_error(error: BaseException) -> tuple[ErrorCategory, str]:
    """
    Translate an error into (category, user-facing message).

    Validation and uncategorized errors keep their own message.
    """
    category = categorize(error)
    message = _MESSAGES.get(category) or str(error) or "An unexpected error occurred. Please try again."
    return category, message
