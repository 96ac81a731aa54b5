"""
Logging utilities for Convo Hub
"""

import datetime
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Union

# Set up the default logger
logger = logging.getLogger("convo_hub")


class ConvoHubLogFormatter(logging.Formatter):
    """
    Formatter that renders plain messages as a single line and keeps
    structured (JSON) messages as JSON
    """

    def __init__(self, include_timestamp: bool = True, include_level: bool = True):
        """
        Initialize the formatter

        Args:
            include_timestamp: Whether to include timestamps in log messages
            include_level: Whether to include log levels in log messages
        """
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        try:
            fields = json.loads(message)
            is_json = isinstance(fields, dict)
        except json.JSONDecodeError:
            is_json = False
        if not is_json:
            fields = {"message": message}

        if self.include_timestamp:
            fields["timestamp"] = datetime.datetime.fromtimestamp(record.created).isoformat()
        if self.include_level:
            fields["level"] = record.levelname
        fields["logger"] = record.name

        if is_json:
            return json.dumps(fields, default=str)

        parts = []
        if self.include_timestamp:
            parts.append(fields.pop("timestamp"))
        if self.include_level:
            parts.append(f"[{fields.pop('level')}]")
        parts.append(f"({fields.pop('logger')})")
        parts.append(fields.pop("message"))
        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return " ".join(parts)


def configure_logging(
    level: int = logging.INFO,
    console: bool = True,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Configure the ``convo_hub`` logger

    Existing handlers on the logger are replaced.

    Args:
        level: Logging level
        console: Whether to log to stdout
        log_file: Path to log file (if None, no file logging)
        json_format: Emit raw messages only, for log pipelines that parse JSON
    """
    root_logger = logging.getLogger("convo_hub")
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = logging.Formatter("%(message)s")
    else:
        formatter = ConvoHubLogFormatter()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def log_json(logger_instance: logging.Logger, level: int, data: Dict[str, Any]) -> None:
    """Log a dictionary as one JSON line"""
    if logger_instance.isEnabledFor(level):
        logger_instance.log(level, json.dumps(data, default=str))


def log_request(
    request_id: str,
    model: str,
    messages: Union[str, List[Dict[str, Any]]],
    metadata: Optional[Dict[str, Any]] = None,
    level: int = logging.DEBUG,
) -> None:
    """
    Log an outgoing messages request

    Args:
        request_id: Client-side id correlating request, response and error lines
        model: Model name
        messages: The request body or message list
        metadata: Additional metadata
        level: Logging level
    """
    log_data = {
        "event": "messages_request",
        "request_id": request_id,
        "timestamp": datetime.datetime.now().isoformat(),
        "model": model,
        "messages": messages,
    }
    if metadata:
        log_data["metadata"] = metadata

    log_json(logger, level, log_data)


def log_response(
    request_id: str,
    model: str,
    response: Any,
    latency: float,
    usage: Optional[Dict[str, int]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    level: int = logging.DEBUG,
) -> None:
    """
    Log a response received for a request

    Args:
        request_id: Client-side id of the request
        model: Model name
        response: Response content
        latency: Response time in seconds
        usage: Token usage information
        metadata: Additional metadata
        level: Logging level
    """
    log_data = {
        "event": "messages_response",
        "request_id": request_id,
        "timestamp": datetime.datetime.now().isoformat(),
        "model": model,
        "latency": latency,
    }

    if isinstance(response, (str, int, float, bool)) or response is None:
        log_data["content"] = response
    else:
        log_data["content"] = str(response)

    if usage:
        log_data["usage"] = usage
    if metadata:
        log_data["metadata"] = metadata

    log_json(logger, level, log_data)


def log_error(
    request_id: str,
    error_type: str,
    error_message: str,
    metadata: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    log_data = {
        "event": "messages_error",
        "request_id": request_id,
        "timestamp": datetime.datetime.now().isoformat(),
        "error_type": error_type,
        "error_message": error_message,
    }
    if metadata:
        log_data["metadata"] = metadata

    log_json(logger, level, log_data)


class LoggingContext:
    """
    Context manager for request-scoped logging

    Records the start time on entry and logs any exception raised inside the
    block before letting it propagate.
    """

    def __init__(self, request_id: str, model: str, metadata: Optional[Dict[str, Any]] = None):
        self.request_id = request_id
        self.model = model
        self.metadata = metadata or {}
        self.start_time: Optional[datetime.datetime] = None

    @property
    def elapsed(self) -> float:
        """Seconds since the context was entered"""
        if self.start_time is None:
            return 0.0
        return (datetime.datetime.now() - self.start_time).total_seconds()

    def __enter__(self) -> "LoggingContext":
        self.start_time = datetime.datetime.now()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None and not issubclass(exc_type, GeneratorExit):
            log_error(
                request_id=self.request_id,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                metadata=self.metadata,
            )
