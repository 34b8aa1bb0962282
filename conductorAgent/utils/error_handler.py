"""Error types and user-facing error messages for the conductor runtime."""

from __future__ import annotations


class ConductorError(Exception):
    """Base exception for conductor errors."""

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message


class ConfigurationError(ConductorError):
    """Missing or invalid runtime configuration (model, credentials, paths)."""
    pass


class ModelInvocationError(ConductorError):
    """Error during model invocation."""
    pass


class PlanValidationError(ConductorError):
    """A generated plan could not be parsed into steps."""
    pass


class TurnCancelledError(ConductorError):
    """The caller cancelled an in-flight turn."""
    pass


class ChannelChatError(ConductorError):
    """A channel-originated turn failed."""
    pass


def describe_exception(error: BaseException) -> str:
    """Return a non-empty message for any exception."""
    if isinstance(error, ConductorError):
        return error.message
    text = str(error).strip()
    return text or type(error).__name__


def handle_model_error(error: Exception) -> str:
    """Convert model invocation errors to user-friendly messages.

    Args:
        error: Exception raised during model invocation

    Returns:
        User-friendly error message
    """
    if isinstance(error, ConductorError):
        return error.user_message

    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "Too many requests, please try again shortly."

    if "timeout" in error_str or "timed out" in error_str:
        return "The model took too long to respond, please retry."

    if "context_length" in error_str or "maximum context" in error_str:
        return "The conversation is too long, please start a new one."

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "The model API key is invalid, please check your configuration."

    if "quota" in error_str or "insufficient" in error_str:
        return "The model provider quota is exhausted."

    return f"The model service is unavailable: {describe_exception(error)}"
