"""
Standardised error handling for BiliSummary.
"""

from bilisummary.core.constants import ErrorCode, RETRYABLE_ERRORS


class PipelineError(Exception):
    """Raised when a call or pipeline step encounters a known error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else is_retryable(code)
        super().__init__(f"[{code}] {message}")


class ConfigurationMissing(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.CONFIGURATION_MISSING, message)


class CredentialRequired(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.CREDENTIAL_REQUIRED, message)


class SigningUnavailable(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.SIGNING_UNAVAILABLE, message)


class RemoteAPIError(PipelineError):
    """Non-zero application code inside the response envelope."""

    def __init__(self, api_code: int, api_message: str):
        self.api_code = api_code
        self.api_message = api_message
        super().__init__(ErrorCode.REMOTE_API, f"API error ({api_code}): {api_message}")


class HTTPError(PipelineError):
    """Transport-level status outside 200-299."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(ErrorCode.HTTP, f"HTTP {status}: {body[:200]}")


class EmptyPayload(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.EMPTY_PAYLOAD, message)


class InvalidResponse(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_RESPONSE, message)


class NetworkError(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.NETWORK_TRANSIENT, message)


class RateLimited(PipelineError):
    def __init__(self, message: str = "API rate limited (429)"):
        super().__init__(ErrorCode.RATE_LIMITED, message)


class RateLimitExhausted(PipelineError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(ErrorCode.RATE_LIMIT_EXHAUSTED,
                         f"API rate limited, gave up after {attempts} attempts")


class SubtitleUnavailable(PipelineError):
    """No usable subtitle track. A routing outcome, not a failure."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.SUBTITLE_UNAVAILABLE, message, retryable=False)


class TranscriptionFailed(PipelineError):
    """Any failure on the speech-recognition fallback path."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.TRANSCRIPTION_FAILED, message, retryable=False)


class PersistenceFailed(PipelineError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.PERSISTENCE_FAILED, message)


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS


def describe_error(error: Exception) -> str:
    """Short human-readable message for progress display."""
    if isinstance(error, PipelineError):
        return error.message
    return f"{type(error).__name__}: {error}"
