from __future__ import annotations

from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from engine.models import SearchCandidate


class CatalogSearchError(RuntimeError):
    """A catalog search could not be completed (network, HTTP status or payload)."""


class CatalogAuthError(RuntimeError):
    """The catalog rejected the session token."""


class CatalogAdapter(Protocol):
    name: str

    async def search(self, query: str) -> list[SearchCandidate]:
        raise NotImplementedError


def build_session(*, retry_statuses=(500, 502, 503, 504)) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.4,
        status_forcelist=tuple(retry_statuses),
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_id(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()
