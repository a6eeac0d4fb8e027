"""A small client for the broker's HTTP management API."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from rmqprovision.util import ResponseError


@dataclass(frozen=True)
class Response:
    """The outcome of a request that changes state on the server."""

    status_code: int
    reason: str
    body: str = ""

    @property
    def status(self) -> str:
        return f"{self.status_code} {self.reason}"


class ManagementClient:
    """Talks to the management API with basic authentication.

    Lookups raise ResponseError for error statuses; calls that change
    state return the Response and leave status handling to the caller.
    """

    def __init__(self, endpoint: str, username: str, password: str, timeout: float = 30.0) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.auth = (username, password)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> ManagementClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _url(self, *segments: str) -> str:
        return self.endpoint + "/api/" + "/".join(quote(s, safe="") for s in segments)

    def _request(self, method: str, segments: Iterable[str], body: Any = None) -> requests.Response:
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if body is not None:
            kwargs["json"] = body
        return self._session.request(method, self._url(*segments), **kwargs)

    def _send(self, method: str, segments: Iterable[str], body: Any = None) -> Response:
        raw = self._request(method, segments, body)
        return Response(raw.status_code, raw.reason or "", raw.text)

    def _get(self, *segments: str) -> Any:
        raw = self._request("GET", segments)
        if raw.status_code >= 400:
            message, reason = "", ""
            try:
                payload = raw.json()
            except ValueError:
                payload = None
            if isinstance(payload, Mapping):
                message = str(payload.get("error", ""))
                reason = str(payload.get("reason", ""))
            raise ResponseError(raw.status_code, message, reason)
        return json.loads(raw.text) if raw.text else None

    def _put_limits(self, kind: str, owner: str, limits: Mapping[str, int]) -> Response:
        if not limits:
            raise ValueError("no limits given")
        response = None
        for limit, value in limits.items():
            response = self._send("PUT", (kind, owner, limit), {"value": value})
            if response.status_code >= 400:
                break
        return response

    def _delete_limits(self, kind: str, owner: str, limits: Iterable[str]) -> Response:
        response = None
        for limit in limits:
            response = self._send("DELETE", (kind, owner, limit))
            if response.status_code >= 400 and response.status_code != 404:
                break
        if response is None:
            raise ValueError("no limits given")
        return response

    def overview(self) -> dict[str, Any]:
        return self._get("overview")

    def get_policy(self, vhost: str, name: str) -> dict[str, Any]:
        return self._get("policies", vhost, name)

    def put_policy(self, vhost: str, name: str, policy: Mapping[str, Any]) -> Response:
        return self._send("PUT", ("policies", vhost, name), dict(policy))

    def delete_policy(self, vhost: str, name: str) -> Response:
        return self._send("DELETE", ("policies", vhost, name))

    def get_queue(self, vhost: str, name: str) -> dict[str, Any]:
        return self._get("queues", vhost, name)

    def declare_queue(self, vhost: str, name: str, settings: Mapping[str, Any]) -> Response:
        return self._send("PUT", ("queues", vhost, name), dict(settings))

    def delete_queue(self, vhost: str, name: str) -> Response:
        return self._send("DELETE", ("queues", vhost, name))

    def get_shovel(self, vhost: str, name: str) -> dict[str, Any]:
        return self._get("parameters", "shovel", vhost, name)

    def declare_shovel(self, vhost: str, name: str, definition: Mapping[str, Any]) -> Response:
        return self._send("PUT", ("parameters", "shovel", vhost, name), {"value": dict(definition)})

    def delete_shovel(self, vhost: str, name: str) -> Response:
        return self._send("DELETE", ("parameters", "shovel", vhost, name))

    def get_topic_permissions_in(self, vhost: str, user: str) -> list[dict[str, Any]]:
        return self._get("topic-permissions", vhost, user)

    def update_topic_permissions_in(self, vhost: str, user: str, permissions: Mapping[str, Any]) -> Response:
        return self._send("PUT", ("topic-permissions", vhost, user), dict(permissions))

    def clear_topic_permissions_in(self, vhost: str, user: str) -> Response:
        return self._send("DELETE", ("topic-permissions", vhost, user))

    def get_user(self, name: str) -> dict[str, Any]:
        user = self._get("users", name)
        tags = user.get("tags")
        if isinstance(tags, str):
            user["tags"] = [tag for tag in tags.split(",") if tag]
        elif tags is None:
            user["tags"] = []
        return user

    def put_user(self, name: str, settings: Mapping[str, Any]) -> Response:
        payload = dict(settings)
        tags = payload.get("tags")
        if isinstance(tags, (list, tuple)):
            payload["tags"] = ",".join(tags)
        return self._send("PUT", ("users", name), payload)

    def delete_user(self, name: str) -> Response:
        return self._send("DELETE", ("users", name))

    def get_user_limits(self, name: str) -> list[dict[str, Any]]:
        return self._get("user-limits", name)

    def put_user_limits(self, name: str, limits: Mapping[str, int]) -> Response:
        return self._put_limits("user-limits", name, limits)

    def delete_user_limits(self, name: str, limits: Iterable[str]) -> Response:
        return self._delete_limits("user-limits", name, limits)

    def get_vhost(self, name: str) -> dict[str, Any]:
        return self._get("vhosts", name)

    def put_vhost(self, name: str, settings: Mapping[str, Any]) -> Response:
        return self._send("PUT", ("vhosts", name), dict(settings))

    def delete_vhost(self, name: str) -> Response:
        return self._send("DELETE", ("vhosts", name))

    def get_vhost_limits(self, name: str) -> list[dict[str, Any]]:
        return self._get("vhost-limits", name)

    def put_vhost_limits(self, name: str, limits: Mapping[str, int]) -> Response:
        return self._put_limits("vhost-limits", name, limits)

    def delete_vhost_limits(self, name: str, limits: Iterable[str]) -> Response:
        return self._delete_limits("vhost-limits", name, limits)