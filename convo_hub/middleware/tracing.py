from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from opentelemetry import trace

@contextmanager
def traced_span(
    enabled: bool,
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    tracer_name: str = "convo_hub",
) -> Iterator[None]:
    if not enabled:
        yield
        return
    tracer = trace.get_tracer(tracer_name)
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is None:
                continue
            span.set_attribute(key, value)
        yield
