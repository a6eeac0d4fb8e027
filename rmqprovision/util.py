"""Shared helpers: errors, resource state and resource identifiers."""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

_MISSING = object()


class ProviderError(Exception):
    """Raised when a resource operation cannot be completed."""


class ResponseError(ProviderError):
    """An error status returned by the management API for a lookup."""

    def __init__(self, status_code: int, message: str = "", reason: str = "") -> None:
        self.status_code = status_code
        self.message = message
        self.reason = reason
        super().__init__(f"Error {status_code} ({message}): {reason}")


def _lookup(data: Any, key: str) -> Any:
    """Follow a dotted path such as ``settings.0.arguments`` through maps and lists."""
    current = data
    for part in key.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


class ResourceData:
    """The desired configuration, prior state and identifier of one resource.

    ``get`` reads the working values: the configuration, overlaid with
    whatever has been written back with ``set``.  ``has_change`` and
    ``get_change`` compare the prior state with the configuration.
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        state: Mapping[str, Any] | None = None,
        resource_id: str = "",
    ) -> None:
        self.config: dict[str, Any] = copy.deepcopy(dict(config or {}))
        self.state: dict[str, Any] = copy.deepcopy(dict(state or {}))
        self.values: dict[str, Any] = copy.deepcopy(self.config)
        self.id = resource_id

    def get(self, key: str) -> Any:
        """Return the current value at ``key``, or None when unset."""
        return copy.deepcopy(_lookup(self.values, key))

    def get_ok(self, key: str) -> tuple[Any, bool]:
        """Return the value at ``key`` and whether it is set to a non-empty value."""
        value = self.get(key)
        return value, bool(value)

    def has_change(self, key: str) -> bool:
        """Whether the configuration differs from the prior state at ``key``."""
        return _lookup(self.state, key) != _lookup(self.config, key)

    def get_change(self, key: str) -> tuple[Any, Any]:
        """Return the (old, new) pair for ``key``."""
        return (
            copy.deepcopy(_lookup(self.state, key)),
            copy.deepcopy(_lookup(self.config, key)),
        )

    def set(self, key: str, value: Any) -> None:
        """Record a top-level attribute as read back from the server."""
        self.values[key] = copy.deepcopy(value)

    def set_id(self, resource_id: str) -> None:
        """Set the identifier; an empty one marks the resource as gone."""
        self.id = resource_id


def check_deleted(d: ResourceData, err: Exception) -> None:
    """Clear the resource id on a 404, otherwise re-raise ``err``."""
    if isinstance(err, ResponseError) and err.status_code == 404:
        d.set_id("")
        return
    raise err


def percent_encode_slashes(s: str) -> str:
    """Encode percent signs, then forward slashes."""
    return s.replace("%", "%25").replace("/", "%2F")


def percent_decode_slashes(s: str) -> str:
    """Decode forward slashes, then percent signs."""
    return s.replace("%2F", "/").replace("%25", "%")


def parse_id(resource_id: str) -> tuple[str, str]:
    """Split a ``name@vhost`` identifier into its name and vhost."""
    parts = resource_id.split("@")
    if len(parts) != 2:
        raise ProviderError(f"unable to parse resource id: {resource_id}")
    return parts[0], parts[1]


def parse_resource_id(d: ResourceData) -> tuple[str, str]:
    """Return the name and vhost held in the resource's identifier."""
    return parse_id(d.id)


def fail_api_response(err: Exception | None, resp: Any, action: str, name: str) -> ProviderError:
    """Build the error for a failed API call, from the exception or the response."""
    if err is not None:
        return ProviderError(f"error {action} RabbitMQ {name}: {err!r}")
    return ProviderError(f"error {action} RabbitMQ {name}: {resp.status}")