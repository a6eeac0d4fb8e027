"""The vhost resource: virtual hosts, their settings and limits."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import requests

from rmqprovision.util import (
    ProviderError,
    ResourceData,
    ResponseError,
    check_deleted,
    fail_api_response,
)

_QUEUE_TYPES = frozenset({"classic", "quorum", "stream"})
_DEFAULT_QUEUE_TYPE = "classic"

# Resource attribute -> limit name used by the management API.
_LIMITS: dict[str, str] = {
    "max_connections": "max-connections",
    "max_queues": "max-queues",
}

_INT_TEXT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def validate_default_queue_type(value: Any, key: str) -> None:
    """Raise unless ``value`` is one of the known queue types."""
    if value not in _QUEUE_TYPES:
        raise ProviderError(
            f"{json.dumps(key)} must be one of [classic, quorum, stream], got: {value}"
        )


def _quote(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return repr(value)


def _parse_limit(attribute: str, value: Any) -> int:
    if isinstance(value, str) and _INT_TEXT.fullmatch(value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    raise ProviderError(f"error converting '{attribute}' to int: {_quote(value)}")


def _current_limit(current: Sequence[Mapping[str, Any]] | None, key: str) -> int:
    if not current:
        return 0
    value = current[0].get("value") or {}
    return value.get(key, 0)


def _checked(
    action: str,
    what: str,
    call: Callable[..., Any],
    *args: Any,
    tolerate_missing: bool = False,
) -> Any:
    try:
        resp = call(*args)
    except requests.RequestException as err:
        raise fail_api_response(err, None, action, what) from err
    if resp.status_code >= 400 and not (tolerate_missing and resp.status_code == 404):
        raise fail_api_response(None, resp, action, what)
    return resp


def _settings(description: Any, default_queue_type: Any, tracing: bool) -> dict[str, Any]:
    settings: dict[str, Any] = {}
    if description:
        settings["description"] = description
    if default_queue_type:
        settings["default_queue_type"] = default_queue_type
    settings["tracing"] = tracing
    return settings


def _configured_queue_type(d: ResourceData) -> str:
    value = d.get("default_queue_type")
    if value is None:
        value = _DEFAULT_QUEUE_TYPE
    validate_default_queue_type(value, "default_queue_type")
    return value


def create_vhost(d: ResourceData, client: Any) -> None:
    """Create the vhost and its limits, refusing when it already exists."""
    queue_type = _configured_queue_type(d)
    name = d.get("name")

    try:
        client.get_vhost(name)
    except (ResponseError, requests.RequestException):
        pass
    else:
        raise ProviderError(f"Error creating RabbitMQ vhost '{name}': vhost already exists")

    description = d.get("description")
    tracing = d.get("tracing")
    settings = _settings(
        description if isinstance(description, str) else "",
        queue_type,
        tracing if isinstance(tracing, bool) else False,
    )

    limits: dict[str, int] = {}
    for attribute, key in _LIMITS.items():
        value, ok = d.get_ok(attribute)
        if ok and value:
            limits[key] = _parse_limit(attribute, value)

    _checked("creating", "vhost", client.put_vhost, name, settings)

    if limits:
        _checked("creating", "vhost limits", client.put_vhost_limits, name, limits)

    d.set_id(name)
    read_vhost(d, client)


def read_vhost(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    try:
        vhost = client.get_vhost(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    d.set("name", vhost.get("name"))

    queue_type = vhost.get("default_queue_type")
    if queue_type and queue_type != "undefined":
        d.set("default_queue_type", queue_type)

    description = vhost.get("description")
    if description:
        d.set("description", description)

    try:
        current = client.get_vhost_limits(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    if current:
        value = current[0].get("value") or {}
        for attribute, key in _LIMITS.items():
            # An empty value stands for no limit.
            d.set(attribute, str(value[key]) if key in value else "")

    d.set("tracing", bool(vhost.get("tracing", False)))


def _changed_or(d: ResourceData, attribute: str, current: Any, accept: Callable[[Any], bool]) -> Any:
    if d.has_change(attribute):
        _, new_value = d.get_change(attribute)
        return new_value if accept(new_value) else None
    return current


def update_vhost(d: ResourceData, client: Any) -> None:
    """Update the settings and limits of the vhost, then refresh."""
    if d.get("default_queue_type") is not None:
        validate_default_queue_type(d.get("default_queue_type"), "default_queue_type")

    try:
        vhost = client.get_vhost(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    try:
        current = client.get_vhost_limits(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    def non_empty_string(value: Any) -> bool:
        return isinstance(value, str) and value != ""

    description = _changed_or(d, "description", vhost.get("description"), non_empty_string)
    queue_type = _changed_or(d, "default_queue_type", vhost.get("default_queue_type"), non_empty_string)
    tracing = _changed_or(
        d, "tracing", vhost.get("tracing", False), lambda value: isinstance(value, bool)
    )

    limits: dict[str, int] = {}
    for attribute, key in _LIMITS.items():
        _, ok = d.get_ok(attribute)
        if not ok:
            continue
        if d.has_change(attribute):
            _, new_value = d.get_change(attribute)
            if isinstance(new_value, str):
                limits[key] = _parse_limit(attribute, new_value)
        else:
            limits[key] = _current_limit(current, key)

    name = vhost.get("name", d.id)
    settings = _settings(description, queue_type, bool(tracing))

    _checked("updating", "vhost", client.put_vhost, name, settings)
    _checked("updating", "vhost limits", client.delete_vhost_limits, name, list(_LIMITS.values()))

    if limits:
        _checked("updating", "vhost limits", client.put_vhost_limits, name, limits)

    read_vhost(d, client)


def delete_vhost(d: ResourceData, client: Any) -> None:
    """Delete the vhost; one already gone is not an error."""
    _checked("deleting", "vhost limits", client.delete_vhost, d.id, tolerate_missing=True)