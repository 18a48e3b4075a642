"""Tests for user-facing error translation."""
import pytest

from weaveflow.capabilities.base import RemoteCallError, RemoteTimeoutError
from weaveflow.executors import (
    ErrorCategory,
    NodeInputError,
    RemoteExecutionError,
    describe_error,
)


@pytest.mark.parametrize(
    "message,category",
    [
        ("503 Service Unavailable: UNAVAILABLE The model is overloaded", ErrorCategory.OVERLOADED),
        ("429 Too Many Requests: RESOURCE_EXHAUSTED", ErrorCategory.RATE_LIMITED),
        ("Quota exceeded, check billing", ErrorCategory.QUOTA),
        ("400 Bad Request: INVALID_ARGUMENT API key not valid. invalid api key", ErrorCategory.INVALID_KEY),
        ("401 Unauthorized", ErrorCategory.INVALID_KEY),
        ("Request timeout: ReadTimeout", ErrorCategory.TIMEOUT),
        ("Network error: connection refused", ErrorCategory.NETWORK),
        ("404 Not Found: models/gemini-9 is not found", ErrorCategory.MODEL_NOT_FOUND),
        ("Something odd happened", ErrorCategory.GENERIC),
    ],
)
def test_categories(message, category):
    assert describe_error(RemoteCallError(message))[0] == category


def test_overloaded_message():
    category, message = describe_error(RemoteCallError("503 Service Unavailable"))

    assert category == ErrorCategory.OVERLOADED
    assert message == "The AI model is currently overloaded. Please wait a few moments and try again."


def test_validation_errors_keep_their_message():
    category, message = describe_error(NodeInputError("Please connect an image input"))

    assert category == ErrorCategory.VALIDATION
    assert message == "Please connect an image input"


def test_wrapped_remote_error_uses_cause_message():
    error = RemoteExecutionError(RemoteTimeoutError("Request timeout: read"), attempts=4)

    category, message = describe_error(error)

    assert category == ErrorCategory.TIMEOUT
    assert error.attempts == 4
    assert "timed out" in message


def test_generic_keeps_original_text():
    assert describe_error(RemoteCallError("weird failure")) == (ErrorCategory.GENERIC, "weird failure")


def test_empty_generic_message_gets_fallback():
    _, message = describe_error(RuntimeError())

    assert message == "An unexpected error occurred. Please try again."
