"""HTTP client seam between the traffic driver and whoever sends requests."""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import urlsplit

import requests


class HttpClient(Protocol):
    """Anything that can issue a tagged GET and return a response."""

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        timeout: float,
        tags: dict[str, Any],
    ) -> Any: ...


def request_name(url: str, tags: dict[str, Any]) -> str:
    """
    Build a stable statistics name for a request.

    Query strings carry the PromQL expression and the time window, which
    would otherwise produce one stats row per distinct URL.  The name is
    the URL path plus the ``query_type`` tag, e.g.
    ``/api/v1/query [rate]``.
    """
    path = urlsplit(url).path or "/"
    query_type = tags.get("query_type")
    if query_type:
        return f"{path} [{query_type}]"
    return path


class RequestsClient:
    """
    :class:`HttpClient` backed by a plain ``requests.Session``.

    Used for the connectivity probe and for running the driver outside
    Locust.  Transport errors surface as ``requests.RequestException``;
    tags are accepted for interface parity and otherwise ignored.
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        timeout: float,
        tags: dict[str, Any],
    ) -> requests.Response:
        return self.session.get(url, headers=headers, timeout=timeout)
