"""The queue resource: declaring, reading and deleting queues."""

from __future__ import annotations

import json
import logging
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
_QUEUE_TYPE_ARGUMENT = "x-queue-type"


def non_string_in_arguments(args: Mapping[str, Any] | None) -> bool:
    """Whether any argument value is not a string."""
    return any(not isinstance(value, str) for value in (args or {}).values())


def _settings_map(settings_list: Any) -> dict[str, Any]:
    if (
        not isinstance(settings_list, list)
        or not settings_list
        or not isinstance(settings_list[0], Mapping)
    ):
        raise ProviderError("Unable to parse settings")
    return dict(settings_list[0])


def _decode_arguments(text: str) -> dict[str, Any] | None:
    try:
        decoded = json.loads(text)
    except ValueError as exc:
        raise ProviderError(str(exc)) from exc
    if decoded is not None and not isinstance(decoded, dict):
        raise ProviderError("arguments_json must hold a JSON object")
    return decoded


def _encode_arguments(arguments: Mapping[str, Any] | None) -> str:
    return json.dumps(arguments, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def declare_queue(client: Any, vhost: str, name: str, settings_map: Mapping[str, Any]) -> None:
    """Declare the queue on the server from the resource's settings block."""
    settings: dict[str, Any] = {"durable": False, "auto_delete": False}

    durable = settings_map.get("durable")
    if isinstance(durable, bool):
        settings["durable"] = durable

    auto_delete = settings_map.get("auto_delete")
    if isinstance(auto_delete, bool):
        settings["auto_delete"] = auto_delete

    arguments = settings_map.get("arguments")
    if isinstance(arguments, Mapping) and arguments:
        settings["arguments"] = dict(arguments)

    log.debug("RabbitMQ: Attempting to declare queue for %s@%s: %r", name, vhost, settings)
    resp = client.declare_queue(vhost, name, settings)
    log.debug("RabbitMQ: Queue declare response: %r", resp)

    if resp.status_code >= 400:
        raise ProviderError(f"Error declaring RabbitMQ queue '{name}': {resp.status}")


def create_queue(d: ResourceData, client: Any) -> None:
    """Create the queue, refusing when one of that name already exists."""
    name = d.get("name")
    vhost = d.get("vhost")
    if vhost is None:
        vhost = _DEFAULT_VHOST

    try:
        client.get_queue(vhost, name)
    except (ResponseError, requests.RequestException):
        pass
    else:
        raise ProviderError(f"Error creating RabbitMQ queue '{name}': queue already exists")

    settings_map = _settings_map(d.get("settings"))

    arguments_json = settings_map.get("arguments_json")
    if isinstance(arguments_json, str) and arguments_json:
        arguments = _decode_arguments(arguments_json)
        del settings_map["arguments_json"]
        settings_map["arguments"] = arguments

    declare_queue(client, vhost, name, settings_map)

    d.set_id(f"{name}@{vhost}")
    read_queue(d, client)


def _queue_type_configured(d: ResourceData) -> bool:
    args, ok = d.get_ok("settings.0.arguments")
    if ok and isinstance(args, Mapping) and _QUEUE_TYPE_ARGUMENT in args:
        return True

    args_json, ok = d.get_ok("settings.0.arguments_json")
    if ok and isinstance(args_json, str):
        try:
            decoded = json.loads(args_json)
        except ValueError:
            return False
        if isinstance(decoded, dict) and _QUEUE_TYPE_ARGUMENT in decoded:
            return True
    return False


def read_queue(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    name, vhost = parse_resource_id(d)

    try:
        queue = client.get_queue(vhost, name)
    except ResponseError as err:
        check_deleted(d, err)
        return

    log.debug("RabbitMQ: Queue retrieved for %s: %r", d.id, queue)

    d.set("name", queue.get("name"))
    d.set("vhost", queue.get("vhost"))
    d.set("type", queue.get("type"))

    settings: dict[str, Any] = {
        "durable": bool(queue.get("durable", False)),
        "auto_delete": bool(queue.get("auto_delete", False)),
    }

    raw_arguments = queue.get("arguments")
    arguments = dict(raw_arguments) if isinstance(raw_arguments, Mapping) else None

    # A server-assigned queue type is dropped unless the configuration asked for it,
    # so that a plan on the same configuration stays clean.
    if arguments is not None and not _queue_type_configured(d):
        arguments.pop(_QUEUE_TYPE_ARGUMENT, None)

    # Keep whichever of `arguments` or `arguments_json` the configuration used;
    # non-string values can only be held by `arguments_json`.
    _, json_configured = d.get_ok("settings.0.arguments_json")
    if json_configured or non_string_in_arguments(arguments):
        settings["arguments_json"] = _encode_arguments(arguments)
    else:
        settings["arguments"] = arguments

    d.set("settings", [settings])


def delete_queue(d: ResourceData, client: Any) -> None:
    """Delete the queue; one already gone is not an error."""
    name, vhost = parse_resource_id(d)

    log.debug("RabbitMQ: Attempting to delete queue for %s", d.id)
    resp = client.delete_queue(vhost, name)
    log.debug("RabbitMQ: Queue delete response: %r", resp)

    if resp.status_code == 404:
        return
    if resp.status_code >= 400:
        raise ProviderError(f"Error deleting RabbitMQ queue '{name}': {resp.status}")