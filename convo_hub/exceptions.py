"""
Standardized exceptions for Convo Hub
"""

from typing import Any, Dict, Optional, Type


class ConvoHubError(Exception):
    """Base exception for all Convo Hub errors"""

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        error_str = self.message
        if self.provider:
            error_str = f"[{self.provider}] {error_str}"
        if self.details:
            error_str = f"{error_str} - Details: {self.details}"
        return error_str


class ConfigurationError(ConvoHubError):
    """Exception raised for errors in the configuration"""
    pass


class TransportError(ConvoHubError):
    """Exception raised when a request could not be sent or its response read"""
    pass


class HttpStatusError(TransportError):
    """Exception raised for an unsuccessful HTTP status that is not retried"""

    def __init__(self, status_code: int, body: str, provider: Optional[str] = None):
        super().__init__(f"Request failed with HTTP {status_code}: {body}", provider)
        self.status_code = status_code
        self.body = body


class RetryExhaustedError(TransportError):
    """Exception raised when the retry budget is used up"""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(f"Giving up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ProviderError(ConvoHubError):
    """Exception raised for errors returned by the LLM provider"""

    error_type: Optional[str] = None
    retryable: bool = False

    def __init__(
        self,
        message: str,
        provider: Optional[str] = "anthropic",
        details: Optional[Dict[str, Any]] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message, provider, details)
        if error_type is not None:
            self.error_type = error_type


class InvalidRequestError(ProviderError):
    """HTTP 400: the request was malformed"""
    error_type = "invalid_request_error"


class AuthenticationError(ProviderError):
    """HTTP 401: the API key was rejected"""
    error_type = "authentication_error"


class PermissionDeniedError(ProviderError):
    """HTTP 403: the API key may not use the requested resource"""
    error_type = "permission_error"


class NotFoundError(ProviderError):
    """HTTP 404: the requested resource does not exist"""
    error_type = "not_found_error"


class RequestTooLargeError(ProviderError):
    """HTTP 413: the request exceeds the maximum allowed size"""
    error_type = "request_too_large"


class RateLimitError(ProviderError):
    """Exception raised when rate limits are exceeded"""

    error_type = "rate_limit_error"
    retryable = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = "anthropic",
        details: Optional[Dict[str, Any]] = None,
        error_type: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider, details, error_type)
        self.retry_after = retry_after


class InternalServerError(ProviderError):
    """HTTP 500: unexpected error inside the provider"""
    error_type = "api_error"


class OverloadedError(RateLimitError):
    """HTTP 529: the provider is temporarily overloaded"""
    error_type = "overloaded_error"


class DecodeError(ConvoHubError):
    """Exception raised when a payload is malformed or has an unexpected shape"""
    pass


class ResponseDecodeError(DecodeError):
    """Exception raised when a response body cannot be decoded"""
    pass


class UnexpectedResponseTypeError(DecodeError):
    """Exception raised when a response has a different type than expected"""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Unexpected response type: expected '{expected}', got '{actual}'")
        self.expected = expected
        self.actual = actual


class StreamingError(DecodeError):
    """Exception raised for streaming-related errors"""
    pass


class ScanError(ConvoHubError):
    """Exception raised when a byte stream does not contain a JSON object where one is expected"""
    pass


class ProtocolStateError(ConvoHubError):
    """Exception raised when a turn operation is called in the wrong conversation state"""
    pass


class ToolError(ConvoHubError):
    """Exception raised for tool-related errors"""
    pass


PROVIDER_ERRORS: Dict[str, Type[ProviderError]] = {
    cls.error_type: cls
    for cls in (
        InvalidRequestError,
        AuthenticationError,
        PermissionDeniedError,
        NotFoundError,
        RequestTooLargeError,
        RateLimitError,
        InternalServerError,
        OverloadedError,
    )
}


def provider_error_from_payload(
    error_type: str,
    message: str = "",
    retry_after: Optional[float] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ProviderError:
    """
    Map a wire error tag to the matching ProviderError subclass

    Args:
        error_type: The ``type`` tag of the error object
        message: Human readable message sent by the provider
        retry_after: Seconds to wait before retrying, if known
        details: Additional context to attach

    Returns:
        An exception instance (not raised)
    """
    cls = PROVIDER_ERRORS.get(error_type)
    message = message or error_type
    if cls is None:
        return ProviderError(message, details=details, error_type=error_type)
    if issubclass(cls, RateLimitError):
        return cls(message, details=details, retry_after=retry_after)
    return cls(message, details=details)
