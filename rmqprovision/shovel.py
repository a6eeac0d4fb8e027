"""The shovel resource: dynamic shovels that move messages between brokers."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from rmqprovision.util import (
    ProviderError,
    ResourceData,
    ResponseError,
    check_deleted,
    parse_resource_id,
)

log = logging.getLogger(__name__)

# Attribute name -> name used by the management API.
_WIRE_NAMES: dict[str, str] = {
    "ack_mode": "ack-mode",
    "add_forward_headers": "add-forward-headers",
    "delete_after": "delete-after",
    "destination_add_forward_headers": "dest-add-forward-headers",
    "destination_add_timestamp_header": "dest-add-timestamp-header",
    "destination_address": "dest-address",
    "destination_application_properties": "dest-application-properties",
    "destination_exchange": "dest-exchange",
    "destination_exchange_key": "dest-exchange-key",
    "destination_properties": "dest-properties",
    "destination_protocol": "dest-protocol",
    "destination_publish_properties": "dest-publish-properties",
    "destination_queue": "dest-queue",
    "destination_queue_arguments": "dest-queue-args",
    "destination_uri": "dest-uri",
    "prefetch_count": "prefetch-count",
    "reconnect_delay": "reconnect-delay",
    "source_address": "src-address",
    "source_delete_after": "src-delete-after",
    "source_exchange": "src-exchange",
    "source_exchange_key": "src-exchange-key",
    "source_prefetch_count": "src-prefetch-count",
    "source_protocol": "src-protocol",
    "source_queue": "src-queue",
    "source_uri": "src-uri",
}

_BOOL_FIELDS = frozenset(
    {"add_forward_headers", "destination_add_forward_headers", "destination_add_timestamp_header"}
)
_INT_FIELDS = frozenset({"prefetch_count", "reconnect_delay", "source_prefetch_count"})
_MAP_FIELDS = frozenset(
    {
        "destination_application_properties",
        "destination_properties",
        "destination_publish_properties",
        "destination_queue_arguments",
    }
)
_URI_FIELDS = frozenset({"destination_uri", "source_uri"})
_DELETE_AFTER_FIELDS = frozenset({"delete_after", "source_delete_after"})

# Defaults the resource schema gives to optional attributes.
_INFO_DEFAULTS: dict[str, Any] = {
    "ack_mode": "on-confirm",
    "destination_add_timestamp_header": False,
    "destination_protocol": "amqp091",
    "reconnect_delay": 1,
    "source_protocol": "amqp091",
}

_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class ShovelDefinition:
    """The settings of a dynamic shovel."""

    ack_mode: str = ""
    add_forward_headers: bool = False
    delete_after: str = ""
    destination_add_forward_headers: bool = False
    destination_add_timestamp_header: bool = False
    destination_address: str = ""
    destination_application_properties: dict[str, Any] | None = None
    destination_exchange: str = ""
    destination_exchange_key: str = ""
    destination_properties: dict[str, Any] | None = None
    destination_protocol: str = ""
    destination_publish_properties: dict[str, Any] | None = None
    destination_queue: str = ""
    destination_queue_arguments: dict[str, Any] | None = None
    destination_uri: list[str] = field(default_factory=list)
    prefetch_count: int = 0
    reconnect_delay: int = 0
    source_address: str = ""
    source_delete_after: str = ""
    source_exchange: str = ""
    source_exchange_key: str = ""
    source_prefetch_count: int = 0
    source_protocol: str = ""
    source_queue: str = ""
    source_uri: list[str] = field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        """Return the definition as the management API expects it.

        Empty settings are left out; the URI lists are always sent.
        A delete-after value holding an integer is sent as a number.
        """
        payload: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            wire_name = _WIRE_NAMES[f.name]
            if f.name in _URI_FIELDS:
                payload[wire_name] = list(value)
                continue
            if not value:
                continue
            if f.name in _DELETE_AFTER_FIELDS and _INTEGER_TEXT.fullmatch(value):
                payload[wire_name] = int(value)
            elif f.name in _MAP_FIELDS:
                payload[wire_name] = dict(value)
            else:
                payload[wire_name] = value
        return payload

    @classmethod
    def from_api(cls, data: Mapping[str, Any] | None) -> ShovelDefinition:
        """Build a definition from the value the management API returns."""
        data = data or {}
        values: dict[str, Any] = {}
        for name, wire_name in _WIRE_NAMES.items():
            raw = data.get(wire_name)
            if raw is None:
                continue
            if name in _URI_FIELDS:
                if isinstance(raw, str):
                    values[name] = [raw]
                elif isinstance(raw, list):
                    values[name] = [uri for uri in raw if isinstance(uri, str)]
            elif name in _DELETE_AFTER_FIELDS:
                if _is_int(raw):
                    values[name] = str(raw)
                elif isinstance(raw, float) and raw.is_integer():
                    values[name] = str(int(raw))
                elif isinstance(raw, str):
                    values[name] = raw
            elif name in _BOOL_FIELDS:
                if isinstance(raw, bool):
                    values[name] = raw
            elif name in _INT_FIELDS:
                if _is_int(raw):
                    values[name] = raw
                elif isinstance(raw, float) and raw.is_integer():
                    values[name] = int(raw)
            elif name in _MAP_FIELDS:
                if isinstance(raw, Mapping):
                    values[name] = dict(raw)
            elif isinstance(raw, str):
                values[name] = raw
        return cls(**values)


def shovel_definition_from_map(shovel_map: Mapping[str, Any]) -> ShovelDefinition:
    """Build a definition from the resource's info block, keeping well-typed values only."""
    values: dict[str, Any] = {}
    for name in _WIRE_NAMES:
        value = shovel_map.get(name)
        if name in _URI_FIELDS:
            if isinstance(value, str):
                values[name] = [value]
        elif name in _BOOL_FIELDS:
            if isinstance(value, bool):
                values[name] = value
        elif name in _INT_FIELDS:
            if _is_int(value):
                values[name] = value
        elif name in _MAP_FIELDS:
            if isinstance(value, Mapping):
                values[name] = dict(value)
        elif isinstance(value, str):
            values[name] = value
    return ShovelDefinition(**values)


def _info_map(info_list: Any) -> dict[str, Any]:
    if not isinstance(info_list, list) or not info_list or not isinstance(info_list[0], Mapping):
        raise ProviderError("Unable to parse shovel info")
    info = dict(_INFO_DEFAULTS)
    info.update({name: value for name, value in info_list[0].items() if value is not None})
    return info


def _declare(client: Any, vhost: str, name: str, definition: ShovelDefinition) -> None:
    log.debug("RabbitMQ: Attempting to declare shovel %s in vhost %s", name, vhost)
    resp = client.declare_shovel(vhost, name, definition.to_api())
    log.debug("RabbitMQ: shovel declaration response: %r", resp)
    if resp.status_code >= 400:
        raise ProviderError(f"Error declaring RabbitMQ shovel '{name}': {resp.status}")


def create_shovel(d: ResourceData, client: Any) -> None:
    """Declare the shovel, then refresh."""
    vhost = d.get("vhost")
    name = d.get("name")
    definition = shovel_definition_from_map(_info_map(d.get("info")))

    _declare(client, vhost, name, definition)

    d.set_id(f"{name}@{vhost}")
    read_shovel(d, client)


def read_shovel(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    name, vhost = parse_resource_id(d)

    try:
        shovel = client.get_shovel(vhost, name)
    except ResponseError as err:
        check_deleted(d, err)
        return

    log.debug("RabbitMQ: Shovel retrieved: Vhost: %r, Name: %r", vhost, name)

    definition = ShovelDefinition.from_api(shovel.get("value"))
    info: dict[str, Any] = {}
    for f in fields(definition):
        value = getattr(definition, f.name)
        if f.name in _URI_FIELDS:
            if value:
                info[f.name] = value[0]
        else:
            info[f.name] = value

    d.set("name", shovel.get("name"))
    d.set("vhost", shovel.get("vhost"))
    d.set("info", [info])


def update_shovel(d: ResourceData, client: Any) -> None:
    """Redeclare the shovel when its info changed, then refresh."""
    name, vhost = parse_resource_id(d)

    if d.has_change("info"):
        _, new_info = d.get_change("info")
        definition = shovel_definition_from_map(_info_map(new_info))
        _declare(client, vhost, name, definition)

    read_shovel(d, client)


def delete_shovel(d: ResourceData, client: Any) -> None:
    """Delete the shovel."""
    name, vhost = parse_resource_id(d)

    log.debug("RabbitMQ: Attempting to delete shovel %s", d.id)
    resp = client.delete_shovel(vhost, name)
    log.debug("RabbitMQ: shovel deletion response: %r", resp)

    if resp.status_code >= 400:
        raise ProviderError(f"Error deleting RabbitMQ shovel: {resp.status}")