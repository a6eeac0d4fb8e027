"""The policy resource: policies applied to exchanges and queues."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from decimal import Decimal
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

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _parse_int64(text: str) -> int | None:
    if not _INT_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return None


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def flatten_definition(definition: Mapping[str, Any] | None) -> dict[str, Any]:
    """Turn a definition read from the server into the string map kept in state.

    Numbers become their plain decimal text and lists of strings are
    joined with commas.
    """
    flat: dict[str, Any] = {}
    for key, value in (definition or {}).items():
        if isinstance(value, bool):
            pass
        elif isinstance(value, int):
            value = str(value)
        elif isinstance(value, float):
            value = _format_number(value)
        elif isinstance(value, list):
            value = ",".join(node for node in value if isinstance(node, str))
        flat[key] = value
    return flat


def _policy_map(policy_list: Any) -> dict[str, Any]:
    if not isinstance(policy_list, list) or not policy_list or not isinstance(policy_list[0], Mapping):
        raise ProviderError("Unable to parse policy")
    return dict(policy_list[0])


def put_policy(client: Any, vhost: str, name: str, policy_map: Mapping[str, Any]) -> None:
    """Declare the policy on the server from the resource's policy block."""
    policy: dict[str, Any] = {
        "vhost": vhost,
        "name": name,
        "pattern": "",
        "priority": 0,
        "apply-to": "",
        "definition": {},
    }

    pattern = policy_map.get("pattern")
    if isinstance(pattern, str):
        policy["pattern"] = pattern

    priority = policy_map.get("priority")
    if isinstance(priority, int) and not isinstance(priority, bool):
        policy["priority"] = priority

    apply_to = policy_map.get("apply_to")
    if isinstance(apply_to, str):
        policy["apply-to"] = apply_to

    definition = policy_map.get("definition")
    if isinstance(definition, Mapping):
        definition = dict(definition)
        if definition.get("ha-mode") == "nodes" and isinstance(definition.get("ha-params"), str):
            definition["ha-params"] = definition["ha-params"].split(",")

        for key, value in definition.items():
            if isinstance(value, str):
                number = _parse_int64(value)
                if number is not None:
                    definition[key] = number

        policy["definition"] = definition

    log.debug("RabbitMQ: Attempting to declare policy for %s@%s: %r", name, vhost, policy)
    resp = client.put_policy(vhost, name, policy)
    log.debug("RabbitMQ: Policy declare response: %r", resp)

    if resp.status_code >= 400:
        raise ProviderError(f"Error declaring RabbitMQ policy '{name}': {resp.status}")


def create_policy(d: ResourceData, client: Any) -> None:
    """Create the policy, refusing when one of that name already exists."""
    name = d.get("name")
    vhost = d.get("vhost")

    try:
        client.get_policy(vhost, name)
    except (ResponseError, requests.RequestException):
        pass
    else:
        raise ProviderError(f"Error creating RabbitMQ policy '{name}': policy already exists")

    policy_map = _policy_map(d.get("policy"))
    put_policy(client, vhost, name, policy_map)

    d.set_id(f"{name}@{vhost}")
    read_policy(d, client)


def read_policy(d: ResourceData, client: Any) -> None:
    """Refresh the resource from the server, clearing the id if it is gone."""
    name, vhost = parse_resource_id(d)

    try:
        policy = client.get_policy(vhost, name)
    except ResponseError as err:
        check_deleted(d, err)
        return

    log.debug("RabbitMQ: Policy retrieved for %s: %r", d.id, policy)

    d.set("name", policy.get("name"))
    d.set("vhost", policy.get("vhost"))
    d.set(
        "policy",
        [
            {
                "pattern": policy.get("pattern"),
                "priority": policy.get("priority"),
                "apply_to": policy.get("apply-to"),
                "definition": flatten_definition(policy.get("definition")),
            }
        ],
    )


def update_policy(d: ResourceData, client: Any) -> None:
    """Redeclare the policy when its settings changed, then refresh."""
    name, vhost = parse_resource_id(d)

    if d.has_change("policy"):
        _, new_policy = d.get_change("policy")
        put_policy(client, vhost, name, _policy_map(new_policy))

    read_policy(d, client)


def delete_policy(d: ResourceData, client: Any) -> None:
    """Delete the policy; one already gone is not an error."""
    name, vhost = parse_resource_id(d)

    log.debug("RabbitMQ: Attempting to delete policy for %s", d.id)
    resp = client.delete_policy(vhost, name)
    log.debug("RabbitMQ: Policy delete response: %r", resp)

    if resp.status_code == 404:
        return
    if resp.status_code >= 400:
        raise ProviderError(f"Error deleting RabbitMQ policy '{name}': {resp.status}")