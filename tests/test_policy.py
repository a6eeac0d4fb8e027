import copy
import json

import pytest

from rmqprovision.client import Response
from rmqprovision.policy import (
    create_policy,
    delete_policy,
    flatten_definition,
    put_policy,
    read_policy,
    update_policy,
)
from rmqprovision.util import ProviderError, ResourceData, ResponseError

BASIC = {
    "name": "test",
    "vhost": "test",
    "policy": [
        {
            "pattern": ".*",
            "priority": 0,
            "apply_to": "all",
            "definition": {"ha-mode": "nodes", "ha-params": "a,b,c", "max-length": "10000"},
        }
    ],
}

UPDATE = {
    "name": "test",
    "vhost": "test",
    "policy": [
        {
            "pattern": ".*",
            "priority": 0,
            "apply_to": "all",
            "definition": {"ha-mode": "all"},
        }
    ],
}


class FakeBroker:
    def __init__(self, put_status=201, delete_status=None):
        self.policies = {}
        self.puts = []
        self.put_status = put_status
        self.delete_status = delete_status

    def get_policy(self, vhost, name):
        try:
            return json.loads(json.dumps(self.policies[(vhost, name)]))
        except KeyError:
            raise ResponseError(404, "Object Not Found", "Not Found") from None

    def put_policy(self, vhost, name, policy):
        self.puts.append(copy.deepcopy(policy))
        if self.put_status >= 400:
            return Response(self.put_status, "Bad Request")
        self.policies[(vhost, name)] = {
            "vhost": vhost,
            "name": name,
            "pattern": policy["pattern"],
            "apply-to": policy["apply-to"],
            "priority": policy["priority"],
            "definition": policy["definition"],
        }
        return Response(self.put_status, "Created")

    def delete_policy(self, vhost, name):
        if self.delete_status is not None:
            return Response(self.delete_status, "Internal Server Error")
        if self.policies.pop((vhost, name), None) is None:
            return Response(404, "Not Found")
        return Response(204, "No Content")


def _created():
    broker = FakeBroker()
    d = ResourceData(config=BASIC)
    create_policy(d, broker)
    return broker, d


def test_create_basic_policy():
    broker, d = _created()
    assert d.id == "test@test"
    assert broker.puts[0]["definition"] == {
        "ha-mode": "nodes",
        "ha-params": ["a", "b", "c"],
        "max-length": 10000,
    }
    assert d.get("policy") == [
        {
            "pattern": ".*",
            "priority": 0,
            "apply_to": "all",
            "definition": {"ha-mode": "nodes", "ha-params": "a,b,c", "max-length": "10000"},
        }
    ]
    assert BASIC["policy"][0]["definition"]["ha-params"] == "a,b,c"


def test_update_policy():
    broker, created = _created()
    d = ResourceData(config=UPDATE, state=created.values, resource_id=created.id)
    update_policy(d, broker)
    assert broker.policies[("test", "test")]["definition"] == {"ha-mode": "all"}
    assert d.get("policy.0.definition") == {"ha-mode": "all"}


def test_update_without_change_does_not_put():
    broker, created = _created()
    d = ResourceData(config=BASIC, state=created.values, resource_id=created.id)
    update_policy(d, broker)
    assert len(broker.puts) == 1


def test_import_matches_created_state():
    broker, created = _created()
    imported = ResourceData(resource_id="test@test")
    read_policy(imported, broker)
    for key in ("name", "vhost", "policy"):
        assert imported.get(key) == created.get(key)


def test_create_existing_policy_fails():
    broker, _ = _created()
    with pytest.raises(ProviderError, match="policy already exists"):
        create_policy(ResourceData(config=BASIC), broker)


def test_create_with_unparseable_policy():
    with pytest.raises(ProviderError, match="Unable to parse policy"):
        create_policy(ResourceData(config={"name": "x", "vhost": "v", "policy": ["bad"]}), FakeBroker())


def test_put_policy_error_status():
    with pytest.raises(ProviderError, match="Error declaring RabbitMQ policy 'test'"):
        put_policy(FakeBroker(put_status=400), "test", "test", BASIC["policy"][0])


def test_read_missing_clears_id():
    d = ResourceData(resource_id="gone@test")
    read_policy(d, FakeBroker())
    assert d.id == ""


def test_read_bad_id():
    with pytest.raises(ProviderError, match="unable to parse resource id"):
        read_policy(ResourceData(resource_id="footest"), FakeBroker())


def test_delete_then_delete_again():
    broker, d = _created()
    delete_policy(d, broker)
    assert ("test", "test") not in broker.policies
    delete_policy(d, broker)
    read_policy(d, broker)
    assert d.id == ""


def test_delete_error_status():
    broker = FakeBroker(delete_status=500)
    with pytest.raises(ProviderError, match="Error deleting RabbitMQ policy 'test'"):
        delete_policy(ResourceData(resource_id="test@test"), broker)


@pytest.mark.parametrize(
    "text,expected",
    [("-5", -5), ("+3", 3), ("1_000", "1_000"), (" 7", " 7"), ("9223372036854775808", "9223372036854775808")],
)
def test_integer_strings_in_definition(text, expected):
    broker = FakeBroker()
    put_policy(broker, "v", "p", {"definition": {"k": text}})
    assert broker.puts[0]["definition"]["k"] == expected


def test_ha_params_split_only_for_nodes_mode():
    broker = FakeBroker()
    put_policy(broker, "v", "p", {"definition": {"ha-mode": "exactly", "ha-params": "2"}})
    assert broker.puts[0]["definition"] == {"ha-mode": "exactly", "ha-params": 2}


def test_flatten_definition():
    flat = flatten_definition({"a": 1.5, "b": 3, "c": ["x", 1, "y"], "d": True, "e": 10000.0, "f": 1e20})
    assert flat == {"a": "1.5", "b": "3", "c": "x,y", "d": True, "e": "10000", "f": "100000000000000000000"}


def test_flatten_empty_definition():
    assert flatten_definition(None) == {}