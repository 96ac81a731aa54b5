"""
Transport-neutral HTTP request

An HttpRequest describes what should be sent to the API without committing to
a specific HTTP client. ``to_requests`` converts it for use with ``requests``.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import requests


@dataclass(frozen=True)
class HttpRequest:
    host: str
    path: str
    method: str
    headers: Tuple[Tuple[str, str], ...]
    body: str
    scheme: str = "https"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.path}"

    def header(self, name: str) -> Optional[str]:
        """Return the first header value with the given name (case-insensitive)"""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def render_headers(self) -> str:
        """Render the headers one per line, without the Host header"""
        return "\n".join(f"{key}: {value}" for key, value in self.headers)

    def to_requests(self) -> requests.Request:
        return requests.Request(
            method=self.method,
            url=self.url,
            headers=dict(self.headers),
            data=self.body.encode("utf-8"),
        )

    def __str__(self) -> str:
        lines = [f"{self.method} {self.path} HTTP/1.1", f"Host: {self.host}"]
        lines.extend(f"{key}: {value}" for key, value in self.headers)
        return "\n".join(lines) + "\n\n" + self.body
