"""
Decoding of non-streaming API responses
"""

import json
from typing import Union

from pydantic import ValidationError

from .exceptions import ResponseDecodeError, UnexpectedResponseTypeError, provider_error_from_payload
from .types import ErrorResponse, MessagesResponse


def deserialize_response(raw: Union[str, bytes]) -> MessagesResponse:
    """
    Decode a response body from the messages endpoint

    Args:
        raw: The response body as received

    Returns:
        The decoded message

    Raises:
        ResponseDecodeError: If the body is not JSON or not a valid message
        ProviderError: If the body is an error envelope
        UnexpectedResponseTypeError: If the body is some other response type
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ResponseDecodeError(f"Response is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ResponseDecodeError(f"Response must be a JSON object, got {type(payload).__name__}")

    response_type = payload.get("type")

    if response_type == "error":
        try:
            envelope = ErrorResponse.model_validate(payload)
        except ValidationError as e:
            raise ResponseDecodeError(f"Malformed error response: {e}") from e
        raise provider_error_from_payload(envelope.error.type, envelope.error.message)

    if response_type != "message":
        raise UnexpectedResponseTypeError(expected="message", actual=str(response_type))

    try:
        return MessagesResponse.model_validate(payload)
    except ValidationError as e:
        raise ResponseDecodeError(f"Malformed message response: {e}") from e
