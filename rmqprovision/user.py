"""The user resource: users, their tags and their connection limits."""

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

# Resource attribute -> limit name used by the management API.
_LIMITS: dict[str, str] = {
    "max_connections": "max-connections",
    "max_channels": "max-channels",
}

_INT_TEXT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _quote(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return repr(value)


def _parse_limit(attribute: str, value: Any) -> int:
    """Convert a limit given as text into an integer."""
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
    """Run an API call that changes state, raising on transport errors and error statuses."""
    try:
        resp = call(*args)
    except requests.RequestException as err:
        raise fail_api_response(err, None, action, what) from err
    if resp.status_code >= 400 and not (tolerate_missing and resp.status_code == 404):
        raise fail_api_response(None, resp, action, what)
    return resp


def user_tags(d: ResourceData) -> list[str]:
    """Return the configured tags, keeping only string values."""
    return [tag for tag in d.get("tags") or [] if isinstance(tag, str)]


def _settings(d: ResourceData) -> dict[str, Any]:
    return {"password": d.get("password"), "tags": user_tags(d)}


def create_user(d: ResourceData, client: Any) -> None:
    """Create the user and its limits, refusing when the user already exists."""
    name = d.get("name")

    try:
        client.get_user(name)
    except (ResponseError, requests.RequestException):
        pass
    else:
        raise ProviderError(f"error creating RabbitMQ user '{name}': user already exists")

    settings = _settings(d)

    limits: dict[str, int] = {}
    for attribute, key in _LIMITS.items():
        value, ok = d.get_ok(attribute)
        if ok and value:
            limits[key] = _parse_limit(attribute, value)

    _checked("creating", "user", client.put_user, name, settings)

    if limits:
        _checked("creating", "user limits", client.put_user_limits, name, limits)

    d.set_id(name)
    read_user(d, client)


def read_user(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    try:
        user = client.get_user(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    d.set("name", user.get("name"))

    tags = [tag for tag in user.get("tags") or [] if tag]
    if tags:
        d.set("tags", tags)

    try:
        current = client.get_user_limits(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

    if current:
        value = current[0].get("value") or {}
        for attribute, key in _LIMITS.items():
            d.set(attribute, str(value[key]) if key in value else None)


def update_user(d: ResourceData, client: Any) -> None:
    """Update the password, tags and limits of the user, then refresh."""
    name = d.id
    settings = _settings(d)

    try:
        current = client.get_user_limits(d.id)
    except ResponseError as err:
        check_deleted(d, err)
        return

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

    _checked("updating", "user", client.put_user, name, settings)
    _checked("updating", "user limits", client.delete_user_limits, name, list(_LIMITS.values()))

    if limits:
        _checked("updating", "user limits", client.put_user_limits, name, limits)

    read_user(d, client)


def delete_user(d: ResourceData, client: Any) -> None:
    """Delete the user's limits and the user; ones already gone are not an error."""
    name = d.id
    _checked(
        "deleting",
        "user limits",
        client.delete_user_limits,
        name,
        list(_LIMITS.values()),
        tolerate_missing=True,
    )
    _checked("deleting", "user", client.delete_user, name, tolerate_missing=True)