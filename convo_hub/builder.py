"""
Request builder for the messages endpoint
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from .config import ApiConfig
from .http_request import HttpRequest
from .types import Message, Role, Tool

MESSAGES_PATH = "/v1/messages"


class MessagesRequestBuilder:
    """
    Fluent builder for ``POST /v1/messages`` requests

    Model and max tokens fall back to the defaults of the ApiConfig passed to
    ``build``. Every setter returns the builder so calls can be chained::

        request = (
            MessagesRequestBuilder()
            .system("You are a helpful assistant.")
            .push_message(Role.USER, "Hello!")
            .build(config)
        )
    """

    def __init__(self):
        self._model: Optional[str] = None
        self._max_tokens: Optional[int] = None
        self._system: Optional[str] = None
        self._messages: List[Message] = []
        self._tools: Optional[List[Tool]] = None
        self._stream = False

    def model(self, model: str) -> "MessagesRequestBuilder":
        self._model = model
        return self

    def max_tokens(self, max_tokens: int) -> "MessagesRequestBuilder":
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        self._max_tokens = max_tokens
        return self

    def system(self, system: Optional[str]) -> "MessagesRequestBuilder":
        self._system = system
        return self

    def push(self, message: Message) -> "MessagesRequestBuilder":
        self._messages.append(message)
        return self

    def push_message(self, role: Role, text: str) -> "MessagesRequestBuilder":
        return self.push(Message.from_text(role, text))

    def set_messages(self, messages: Iterable[Message]) -> "MessagesRequestBuilder":
        self._messages = list(messages)
        return self

    def set_tools(self, tools: Optional[Iterable[Tool]]) -> "MessagesRequestBuilder":
        self._tools = list(tools) if tools is not None else None
        return self

    def stream(self, stream: bool = True) -> "MessagesRequestBuilder":
        self._stream = stream
        return self

    def body(self, config: ApiConfig) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._model or config.default_model,
            "max_tokens": self._max_tokens or config.default_max_tokens,
        }
        if self._system is not None:
            body["system"] = self._system
        body["messages"] = [message.model_dump(mode="json") for message in self._messages]
        if self._tools:
            body["tools"] = [tool.model_dump(mode="json") for tool in self._tools]
        if self._stream:
            body["stream"] = True
        return body

    def build(self, config: ApiConfig) -> HttpRequest:
        """
        Build the HTTP request

        Args:
            config: API configuration providing the key and defaults

        Returns:
            A request ready to be handed to any HTTP client
        """
        model = self._model or config.default_model
        max_tokens = self._max_tokens or config.default_max_tokens

        headers = (
            ("content-type", "application/json"),
            ("anthropic-version", config.anthropic_version),
            ("x-api-key", config.api_key),
            ("anthropic-model", model),
            ("max-tokens", str(max_tokens)),
        )

        return HttpRequest(
            host=config.endpoint_host,
            path=MESSAGES_PATH,
            method="POST",
            headers=headers,
            body=json.dumps(self.body(config), separators=(",", ":"), ensure_ascii=False),
            scheme=config.scheme,
        )
