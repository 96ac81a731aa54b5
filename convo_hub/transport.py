"""
HTTP transport for the messages endpoint

The conversation engine only produces HttpRequest values and consumes
response bodies or stream events. A Transport is the piece that actually
executes the request; RequestsTransport does so with ``requests`` and applies
the retry policy around each attempt.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, Optional, Union

import requests

from .config import TransportConfig
from .exceptions import (
    HttpStatusError,
    OverloadedError,
    RateLimitError,
    StreamingError,
    TransportError,
)
from .http_request import HttpRequest
from .json_scan import JsonStreamDecoder
from .middleware.retry import RetryPolicy
from .middleware.tracing import traced_span
from .utils.logging import LoggingContext, log_request, log_response

logger = logging.getLogger(__name__)

OVERLOADED_STATUS = 529


class Transport(ABC):
    """Executes built requests"""

    @abstractmethod
    def send(self, request: HttpRequest) -> str:
        """Send a request and return the complete response body."""

    @abstractmethod
    def stream(self, request: HttpRequest) -> Iterator[Dict[str, Any]]:
        """Send a streaming request and yield each event payload in arrival order."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def iter_sse_payloads(lines: Iterable[Union[str, bytes]]) -> Iterator[str]:
    """
    Split server-sent event lines into event payloads

    ``data:`` lines of one event are joined with newlines and the event is
    emitted at the following blank line. Comments and the ``event``, ``id``
    and ``retry`` fields are ignored; the payload carries its own type.

    Args:
        lines: Lines without their line terminators

    Yields:
        The data of each event

    Raises:
        StreamingError: If a line is not valid UTF-8
    """
    data = []
    for line in lines:
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StreamingError(f"Event stream is not valid UTF-8: {e}") from e
        line = line.rstrip("\r")

        if not line:
            if data:
                yield "\n".join(data)
                data = []
            continue

        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data.append(value)

    # stream closed without a trailing blank line
    if data:
        yield "\n".join(data)


class RequestsTransport(Transport):
    """
    Transport built on ``requests``

    Rate-limit statuses raise RateLimitError (OverloadedError for 529) and
    are retried by the RetryPolicy with the same prepared request. Every other
    unsuccessful status raises HttpStatusError at once.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        config: Optional[TransportConfig] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the transport

        Args:
            session: Session to send with (a new one is created if omitted)
            config: Transport configuration
            retry: Retry policy (built from the config if omitted)
        """
        self.config = config or TransportConfig()
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.retry = retry or RetryPolicy.from_config(self.config)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def send(self, request: HttpRequest) -> str:
        request_id = str(uuid.uuid4())
        model = request.header("anthropic-model") or ""

        with LoggingContext(request_id, model) as context:
            log_request(request_id, model, request.body)
            response = self.retry.call(self._attempt, request, False)
            if response.encoding is None:
                response.encoding = "utf-8"
            body = response.text
            log_response(request_id, model, body, context.elapsed)

        return body

    def stream(self, request: HttpRequest) -> Iterator[Dict[str, Any]]:
        """
        Send a streaming request and yield event payloads

        The request is sent when iteration starts. Server-sent events are
        split with iter_sse_payloads; any other content type is treated as
        concatenated JSON objects and split with JsonStreamDecoder. Reading
        stops after the message_stop payload, and the response is closed
        when the stream ends or the iterator is closed.
        """
        request_id = str(uuid.uuid4())
        model = request.header("anthropic-model") or ""

        with LoggingContext(request_id, model, metadata={"stream": True}) as context:
            log_request(request_id, model, request.body, metadata={"stream": True})
            response = self.retry.call(self._attempt, request, True)
            events = 0
            finished = False
            try:
                for payload in _iter_payloads(response):
                    events += 1
                    if isinstance(payload, dict) and payload.get("type") == "message_stop":
                        finished = True
                        yield payload
                        return
                    yield payload
                finished = True
            except requests.RequestException as e:
                raise TransportError(f"Stream from {request.url} interrupted: {e}") from e
            finally:
                response.close()
                if finished:
                    log_response(request_id, model, f"<{events} events>", context.elapsed)

    def _attempt(self, request: HttpRequest, stream: bool) -> requests.Response:
        attributes = {
            "http.method": request.method,
            "http.url": request.url,
            "convo_hub.model": request.header("anthropic-model"),
            "convo_hub.stream": stream,
        }
        with traced_span(self.config.enable_tracing, "convo_hub.messages", attributes, self.config.tracer_name):
            try:
                prepared = self.session.prepare_request(request.to_requests())
                response = self.session.send(prepared, stream=stream, timeout=self.config.timeout)
            except requests.RequestException as e:
                raise TransportError(f"Request to {request.url} failed: {e}") from e

            status = response.status_code
            if status in self.config.rate_limit_statuses:
                error = _rate_limit_error(response)
                response.close()
                raise error

            if not 200 <= status < 300:
                body = response.text
                response.close()
                raise HttpStatusError(status, body)

            return response


def _iter_payloads(response: requests.Response) -> Iterator[Dict[str, Any]]:
    content_type = response.headers.get("content-type", "")
    if "text/event-stream" in content_type:
        for payload in iter_sse_payloads(response.iter_lines()):
            yield _load_payload(payload)
        return

    decoder = JsonStreamDecoder()
    for chunk in response.iter_content(chunk_size=None):
        yield from decoder.feed(chunk)
    decoder.finish()


def _load_payload(payload: str) -> Dict[str, Any]:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise StreamingError(f"Stream event is not valid JSON: {e}", details={"payload": payload}) from e


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not used by the API
        logger.debug(f"Ignoring unparseable retry-after header: {value!r}")
        return None


def _rate_limit_error(response: requests.Response) -> RateLimitError:
    cls = OverloadedError if response.status_code == OVERLOADED_STATUS else RateLimitError
    message = f"HTTP {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message") or message

    return cls(
        message,
        details={"status_code": response.status_code},
        retry_after=_retry_after(response),
    )
