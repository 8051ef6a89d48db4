from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from typing import Any, Protocol

import requests

from .errors import (
    GatewayError,
    NetworkError,
    RecordNotFound,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)


class CollectionGateway(Protocol):
    """CRUD access to one remote collection of records."""

    def fetch_all(self) -> list[dict[str, Any]]:
        ...

    def fetch_by_id(self, rid: Hashable) -> dict[str, Any]:
        ...

    def update_by_id(self, rid: Hashable, patch: Mapping[str, Any]) -> dict[str, Any]:
        ...

    def delete_by_id(self, rid: Hashable) -> None:
        ...


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        msg = data.get("error") or data.get("message")
        if msg:
            return str(msg)
    return f"HTTP {response.status_code}: {response.reason}"


def raise_for_status(response: requests.Response) -> None:
    """Translate an unsuccessful *response* into a :class:`GatewayError`."""
    status = response.status_code
    if status < 400:
        return
    message = _error_message(response)
    if status in (401, 403):
        raise Unauthorized(message, status=status)
    if status == 404:
        raise RecordNotFound(message, status=status)
    if status in (400, 409, 422):
        raise ValidationError(message, status=status)
    raise GatewayError(message, status=status)


class HttpCollectionGateway:
    """Gateway talking to a JSON REST resource such as ``/users``.

    ``GET /<resource>`` lists records, ``GET``/``PUT``/``DELETE``
    ``/<resource>/<id>`` address single records.  A bearer *token* is sent
    when given.
    """

    def __init__(
        self,
        base_url: str,
        resource: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.resource = resource.strip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, rid: Hashable | None = None) -> str:
        url = f"{self.base_url}/{self.resource}"
        if rid is not None:
            url = f"{url}/{rid}"
        return url

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise NetworkError(str(exc) or "network error") from exc
        raise_for_status(response)
        if not response.content:
            return None
        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError as exc:
                raise GatewayError(f"invalid JSON from {url}: {exc}") from exc
        return response.text

    def fetch_all(self) -> list[dict[str, Any]]:
        data = self._request("GET", self._url())
        if not isinstance(data, list):
            raise GatewayError(f"expected a list from {self._url()}")
        return data

    def fetch_by_id(self, rid: Hashable) -> dict[str, Any]:
        data = self._request("GET", self._url(rid))
        if not isinstance(data, dict):
            raise GatewayError(f"expected an object from {self._url(rid)}")
        return data

    def update_by_id(self, rid: Hashable, patch: Mapping[str, Any]) -> dict[str, Any]:
        data = self._request("PUT", self._url(rid), json=dict(patch))
        return data if isinstance(data, dict) else {}

    def delete_by_id(self, rid: Hashable) -> None:
        self._request("DELETE", self._url(rid))


__all__ = ["CollectionGateway", "HttpCollectionGateway", "raise_for_status"]
