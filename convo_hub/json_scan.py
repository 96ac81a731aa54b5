"""
Incremental detection of complete JSON objects inside a byte stream
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

from .exceptions import ScanError

# ASCII whitespace: space, tab, LF, CR and form feed. Vertical tab is not whitespace.
_WHITESPACE = frozenset(b" \t\n\r\x0c")

_OPEN_BRACE = ord("{")
_CLOSE_BRACE = ord("}")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")

BytesLike = Union[bytes, bytearray, memoryview]


class ScanState(str, Enum):
    LOOKING_FOR_START = "looking_for_start"
    IN_OBJECT = "in_object"
    IN_STRING = "in_string"
    IN_ESCAPE = "in_escape"


class ScanStatus(str, Enum):
    NEEDS_MORE = "needs_more"
    FOUND = "found"
    ERROR = "error"


@dataclass(frozen=True)
class ScanResult:
    status: ScanStatus
    offset: Optional[int] = None  # end of the object within the scanned slice, FOUND only

    @classmethod
    def found(cls, offset: int) -> "ScanResult":
        return cls(ScanStatus.FOUND, offset)

    @property
    def is_found(self) -> bool:
        return self.status is ScanStatus.FOUND


NEEDS_MORE = ScanResult(ScanStatus.NEEDS_MORE)
SCAN_ERROR = ScanResult(ScanStatus.ERROR)


class JsonScanner:
    """
    Restartable state machine that reports where a top-level ``{...}`` ends

    The scanner keeps no bytes of its own, only its position in the grammar,
    so slices of any size (including empty or single bytes) may be fed in
    turn. Callers own the buffering.
    """

    def __init__(self):
        self.state = ScanState.LOOKING_FOR_START
        self.depth = 0

    def scan(self, data: BytesLike) -> ScanResult:
        """
        Scan a slice of bytes

        Args:
            data: The next bytes of the stream

        Returns:
            FOUND with the offset just past the closing brace (relative to
            ``data``), NEEDS_MORE if the slice ended inside or before an
            object, or ERROR if a byte appeared where only whitespace or
            ``{`` is allowed. Bytes after a FOUND offset have not been
            consumed and must be scanned by a further call.
        """
        for i, byte in enumerate(data):
            state = self.state

            if state is ScanState.LOOKING_FOR_START:
                if byte in _WHITESPACE:
                    continue
                if byte != _OPEN_BRACE:
                    return SCAN_ERROR
                self.state = ScanState.IN_OBJECT
                self.depth = 1

            elif state is ScanState.IN_OBJECT:
                if byte == _OPEN_BRACE:
                    self.depth += 1
                elif byte == _CLOSE_BRACE:
                    self.depth -= 1
                    if self.depth == 0:
                        self.reset()
                        return ScanResult.found(i + 1)
                elif byte == _QUOTE:
                    self.state = ScanState.IN_STRING

            elif state is ScanState.IN_STRING:
                if byte == _QUOTE:
                    self.state = ScanState.IN_OBJECT
                elif byte == _BACKSLASH:
                    self.state = ScanState.IN_ESCAPE

            else:
                # IN_ESCAPE: the escaped byte is taken as-is, whatever it is
                self.state = ScanState.IN_STRING

        return NEEDS_MORE

    def reset(self) -> None:
        self.state = ScanState.LOOKING_FOR_START
        self.depth = 0


class JsonStreamDecoder:
    """
    Buffers a byte stream and decodes each complete JSON object as it arrives
    """

    def __init__(self):
        self._scanner = JsonScanner()
        self._buffer = bytearray()
        self._consumed = 0  # total bytes handed out as objects, for error offsets

    def feed(self, chunk: BytesLike) -> List[Any]:
        """
        Add bytes to the stream

        Args:
            chunk: The next bytes received from the transport

        Returns:
            Every object completed by this chunk, in stream order

        Raises:
            ScanError: If the stream contains bytes outside of an object
        """
        objects = []
        self._buffer.extend(chunk)
        pending = memoryview(bytes(chunk))

        while len(pending):
            result = self._scanner.scan(pending)
            if result.status is ScanStatus.NEEDS_MORE:
                break
            if result.status is ScanStatus.ERROR:
                raise ScanError(
                    "Unexpected byte outside of a JSON object",
                    details={"stream_offset": self._consumed},
                )

            end = len(self._buffer) - len(pending) + result.offset
            raw = bytes(self._buffer[:end])
            del self._buffer[:end]
            self._consumed += end
            pending = pending[result.offset:]

            try:
                objects.append(json.loads(raw))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ScanError(f"Framed object is not valid JSON: {e}") from e

        return objects

    def finish(self) -> None:
        """
        Signal the end of the stream

        Raises:
            ScanError: If an incomplete object is still buffered
        """
        if bytes(self._buffer).strip():
            raise ScanError(
                "Stream ended inside a JSON object",
                details={"pending_bytes": len(self._buffer)},
            )
        self._buffer.clear()
        self._scanner.reset()
