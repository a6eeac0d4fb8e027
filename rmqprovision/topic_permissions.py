"""The topic permissions resource: a user's per-exchange topic permissions."""

from __future__ import annotations

import logging
import math
import struct
from collections.abc import Mapping
from typing import Any

import requests

from rmqprovision.util import (
    ProviderError,
    ResourceData,
    ResponseError,
    check_deleted,
    parse_resource_id,
)

log = logging.getLogger(__name__)

_DEFAULT_VHOST = "/"
_MINIMUM_VERSION = 3.7


def _version_number(text: str) -> float:
    """Read a version string as a single-precision number; 0 when it is not one."""
    if text != text.strip():
        return 0.0
    try:
        value = float(text)
    except ValueError:
        return 0.0
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def check_version(client: Any) -> None:
    """Raise when the server is too old to support topic permissions."""
    try:
        overview = client.overview() or {}
    except (ResponseError, requests.RequestException):
        overview = {}
    version = str(overview.get("rabbitmq_version", "") or "")
    if _version_number(version) < _MINIMUM_VERSION:
        raise ProviderError(
            f"Topic permissions were adding in RabbitMQ 3.7, connected to {version}"
        )


def set_topic_permissions_in(
    client: Any, vhost: str, user: str, perms_map: Mapping[str, Any]
) -> None:
    """Set the topic permissions of one exchange for the user."""
    perms = {"exchange": "", "write": "", "read": ""}
    for key in perms:
        value = perms_map.get(key)
        if isinstance(value, str):
            perms[key] = value

    log.debug("RabbitMQ: Attempting to set topic permissions for %s@%s: %r", user, vhost, perms)
    resp = client.update_topic_permissions_in(vhost, user, perms)
    log.debug("RabbitMQ: Permission response: %r", resp)

    if resp.status_code >= 400:
        check_version(client)
        raise ProviderError(f"Error setting topic permissions: {resp.status}")


def _apply_all(client: Any, vhost: str, user: str, permissions: Any) -> None:
    for entry in permissions or []:
        if not isinstance(entry, Mapping):
            raise ProviderError("Unable to parse permissions")
        set_topic_permissions_in(client, vhost, user, entry)


def create_topic_permissions(d: ResourceData, client: Any) -> None:
    """Set every configured exchange's permissions, then refresh."""
    user = d.get("user")
    vhost = d.get("vhost")
    if vhost is None:
        vhost = _DEFAULT_VHOST

    _apply_all(client, vhost, user, d.get("permissions"))

    d.set_id(f"{user}@{vhost}")
    read_topic_permissions(d, client)


def read_topic_permissions(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    user, vhost = parse_resource_id(d)

    try:
        user_perms = client.get_topic_permissions_in(vhost, user)
    except ResponseError as err:
        check_deleted(d, err)
        return

    log.debug("RabbitMQ: Topic permission retrieved for %s: %r", d.id, user_perms)

    if not user_perms:
        raise ProviderError(f"no topic permissions found for {d.id}")

    d.set("user", user_perms[0].get("user"))
    d.set("vhost", user_perms[0].get("vhost"))
    d.set(
        "permissions",
        [
            {
                "exchange": perm.get("exchange"),
                "write": perm.get("write"),
                "read": perm.get("read"),
            }
            for perm in user_perms
        ],
    )


def update_topic_permissions(d: ResourceData, client: Any) -> None:
    """Replace all permissions when they changed, then refresh."""
    user, vhost = parse_resource_id(d)

    if d.has_change("permissions"):
        delete_topic_permissions(d, client)
        _, new_perms = d.get_change("permissions")
        _apply_all(client, vhost, user, new_perms)

    read_topic_permissions(d, client)


def delete_topic_permissions(d: ResourceData, client: Any) -> None:
    """Clear the user's topic permissions; ones already gone are not an error."""
    user, vhost = parse_resource_id(d)

    log.debug("RabbitMQ: Attempting to delete topic permission for %s", d.id)
    resp = client.clear_topic_permissions_in(vhost, user)
    log.debug("RabbitMQ: Topic permission delete response: %r", resp)

    if resp.status_code == 404:
        return
    if resp.status_code >= 400:
        check_version(client)
        raise ProviderError(f"Error deleting RabbitMQ topic permission: {resp.status}")