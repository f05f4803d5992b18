"""
Error taxonomy for the analysis pipeline and the mapping from raw
exceptions (OpenAI SDK, timeouts, our own) onto it.
"""

import asyncio
from enum import Enum

import openai

from ..models.analysis import AnalysisErrorInfo


class ErrorCode(str, Enum):
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    INVALID_FORMAT = "invalid_format"
    API_KEY_INVALID = "api_key_invalid"
    CONTENT_POLICY = "content_policy"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


RETRYABLE_CODES = frozenset({
    ErrorCode.RATE_LIMIT,
    ErrorCode.SERVER_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.PARSE_ERROR,
})


def is_retryable(code: ErrorCode) -> bool:
    return code in RETRYABLE_CODES


class AnalysisError(Exception):
    """A failure already classified into the pipeline's taxonomy."""

    def __init__(self, code: ErrorCode, message: str, retryable: bool | None = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.retryable = is_retryable(self.code) if retryable is None else retryable

    def to_info(self) -> AnalysisErrorInfo:
        return AnalysisErrorInfo(code=self.code.value, message=self.message, retryable=self.retryable)


class QuantityParseError(ValueError):
    """Raised when a quantity token is not a usable number."""


class AnalysisNotFoundError(LookupError):
    pass


class UploadNotFoundError(LookupError):
    pass


class UnsupportedContentTypeError(ValueError):
    pass


def _info(code: ErrorCode, message: str) -> AnalysisErrorInfo:
    return AnalysisErrorInfo(code=code.value, message=message, retryable=is_retryable(code))


def classify_error(error: BaseException) -> AnalysisErrorInfo:
    """Categorize an exception raised during extraction."""
    if isinstance(error, AnalysisError):
        return error.to_info()

    message = str(error) or error.__class__.__name__

    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status == 429:
            return _info(ErrorCode.RATE_LIMIT, message)
        if status >= 500:
            return _info(ErrorCode.SERVER_ERROR, message)
        if status in (401, 403):
            return _info(ErrorCode.API_KEY_INVALID, message)
        if error.code == "content_policy_violation":
            return _info(ErrorCode.CONTENT_POLICY, message)

    if isinstance(error, (openai.APITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return _info(ErrorCode.TIMEOUT, message)
    if "timeout" in message.lower():
        return _info(ErrorCode.TIMEOUT, message)

    return _info(ErrorCode.UNKNOWN, message)
