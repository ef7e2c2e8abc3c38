from __future__ import annotations


AI_ERROR_CODES = (
    "OPENAI_ERROR",
    "RATE_LIMIT",
    "INVALID_IMAGE",
    "NO_IMAGE",
    "INVALID_PARAMS",
    "VALIDATION_FAILED",
    "INAPPROPRIATE_CONTENT",
    "UNCLEAR_IMAGE",
    "MULTIPLE_ITEMS",
    "UNKNOWN_ERROR",
    "TIMEOUT",
)

_CLIENT_ERROR_CODES = {
    "INVALID_IMAGE",
    "NO_IMAGE",
    "INVALID_PARAMS",
    "VALIDATION_FAILED",
    "INAPPROPRIATE_CONTENT",
    "UNCLEAR_IMAGE",
    "MULTIPLE_ITEMS",
}

_FRIENDLY_MESSAGES = {
    "OPENAI_ERROR": "Failed to generate description. Please try again.",
    "RATE_LIMIT": "Too many requests. Please wait a moment and try again.",
    "INVALID_IMAGE": "Image could not be processed. Please upload a different photo.",
    "NO_IMAGE": "Please upload an image to generate a description.",
    "VALIDATION_FAILED": "Generated description did not meet quality standards. Please try again.",
    "TIMEOUT": "Request took too long. Please try again.",
}
_DEFAULT_FRIENDLY_MESSAGE = "An unexpected error occurred. Please try again."


class AIError(Exception):
    def __init__(self, code: str, message: str, *, retry_after: int | None = None):
        super().__init__(message)
        self.code = code if code in AI_ERROR_CODES else "UNKNOWN_ERROR"
        self.message = message
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"AIError(code={self.code!r}, message={self.message!r})"


def openai_error(message: str) -> AIError:
    return AIError("OPENAI_ERROR", message)


def rate_limit_error(retry_after: int | None = None) -> AIError:
    if retry_after:
        message = f"Rate limit exceeded. Retry after {int(retry_after)} seconds."
    else:
        message = "Rate limit exceeded. Please try again later."
    return AIError("RATE_LIMIT", message, retry_after=retry_after)


def invalid_image_error(message: str = "Invalid or inaccessible image URL") -> AIError:
    return AIError("INVALID_IMAGE", message)


def no_image_error() -> AIError:
    return AIError("NO_IMAGE", "No image URL provided")


def validation_error(message: str) -> AIError:
    return AIError("VALIDATION_FAILED", message)


def timeout_error() -> AIError:
    return AIError("TIMEOUT", "Request timed out after 30 seconds")


def user_friendly_message(error: Exception) -> str:
    if isinstance(error, AIError):
        return _FRIENDLY_MESSAGES.get(error.code, _DEFAULT_FRIENDLY_MESSAGE)
    return _DEFAULT_FRIENDLY_MESSAGE


def http_status_for(code: str) -> int:
    if code in _CLIENT_ERROR_CODES:
        return 400
    if code == "RATE_LIMIT":
        return 429
    return 500
