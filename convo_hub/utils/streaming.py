"""
Streaming helpers for Convo Hub
"""

from typing import Any, Callable, Iterable, Iterator

from ..events import ContentBlockDeltaEvent, StreamEvent, TextDelta, parse_stream_event


def iter_text_deltas(events: Iterable[Any]) -> Iterator[str]:
    """
    Yield the text of every text delta in a stream

    Args:
        events: Stream events, or raw payloads accepted by parse_stream_event

    Yields:
        Text fragments in arrival order
    """
    for event in events:
        event = parse_stream_event(event)
        if isinstance(event, ContentBlockDeltaEvent) and isinstance(event.delta, TextDelta):
            yield event.delta.text


def stream_to_text(events: Iterable[Any]) -> str:
    """Concatenate all text deltas of a stream into one string"""
    return "".join(iter_text_deltas(events))


def with_text_callback(
    events: Iterable[Any],
    callback: Callable[[str], None],
) -> Iterator[StreamEvent]:
    """
    Pass events through unchanged, calling ``callback`` for each text delta

    Useful for printing a reply as it arrives while still handing every
    event to the conversation::

        result = conversation.handle_stream(
            with_text_callback(transport.stream(request), print_fragment)
        )

    Args:
        events: Stream events, or raw payloads accepted by parse_stream_event
        callback: Function that takes one text fragment

    Yields:
        The parsed events

    Closing this iterator also closes ``events`` when it has a ``close``
    method, so the underlying response is released.
    """
    try:
        for event in events:
            event = parse_stream_event(event)
            if isinstance(event, ContentBlockDeltaEvent) and isinstance(event.delta, TextDelta):
                callback(event.delta.text)
            yield event
    finally:
        close = getattr(events, "close", None)
        if close is not None:
            close()
