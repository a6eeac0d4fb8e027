import copy

import pytest

from rmqprovision.client import Response
from rmqprovision.queue import (
    create_queue,
    declare_queue,
    delete_queue,
    non_string_in_arguments,
    read_queue,
)
from rmqprovision.util import ProviderError, ResourceData, ResponseError


class FakeBroker:
    def __init__(self, assign_queue_type=False):
        self.queues = {}
        self.declared = []
        self.declare_status = 201
        self.delete_status = 204
        self.assign_queue_type = assign_queue_type

    def get_queue(self, vhost, name):
        if (vhost, name) not in self.queues:
            raise ResponseError(404, "Object Not Found", "Not Found")
        return copy.deepcopy(self.queues[(vhost, name)])

    def declare_queue(self, vhost, name, settings):
        self.declared.append(copy.deepcopy(settings))
        if self.declare_status >= 400:
            return Response(self.declare_status, "Bad Request")
        arguments = dict(settings.get("arguments") or {})
        queue_type = arguments.get("x-queue-type", "classic")
        if self.assign_queue_type:
            arguments.setdefault("x-queue-type", queue_type)
        self.queues[(vhost, name)] = {
            "name": name,
            "vhost": vhost,
            "type": queue_type,
            "durable": settings["durable"],
            "auto_delete": settings["auto_delete"],
            "arguments": arguments,
        }
        return Response(self.declare_status, "Created")

    def delete_queue(self, vhost, name):
        if (vhost, name) not in self.queues:
            return Response(404, "Not Found")
        if self.delete_status >= 400:
            return Response(self.delete_status, "Internal Server Error")
        del self.queues[(vhost, name)]
        return Response(self.delete_status, "No Content")


def _config(name="myqueue", vhost="/", **settings):
    base = {"durable": False, "auto_delete": False}
    base.update(settings)
    return {"name": name, "vhost": vhost, "settings": [base]}


def test_create_required():
    broker = FakeBroker()
    d = ResourceData(config=_config())
    create_queue(d, broker)
    assert d.id == "myqueue@/"
    assert d.get("name") == "myqueue"
    assert d.get("vhost") == "/"
    assert d.get("type") == "classic"
    assert len(d.get("settings")) == 1
    assert d.get("settings.0.auto_delete") is False
    assert d.get("settings.0.durable") is False
    assert ("/", "myqueue") in broker.queues


def test_vhost_defaults_to_root():
    broker = FakeBroker()
    d = ResourceData(config={"name": "q", "settings": [{}]})
    create_queue(d, broker)
    assert d.id == "q@/"
    assert broker.declared == [{"durable": False, "auto_delete": False}]


def test_create_with_arguments():
    broker = FakeBroker()
    d = ResourceData(config=_config(arguments={"myKey": "myValue"}))
    create_queue(d, broker)
    assert d.get("settings.0.arguments.myKey") == "myValue"
    assert d.get("settings.0.arguments_json") is None


def test_create_with_arguments_json():
    broker = FakeBroker()
    d = ResourceData(config=_config(arguments_json='{"myKey":"myValue"}'))
    create_queue(d, broker)
    assert d.get("settings.0.arguments") is None
    assert d.get("settings.0.arguments_json") == '{"myKey":"myValue"}'
    assert broker.declared[0]["arguments"] == {"myKey": "myValue"}


def test_arguments_json_keeps_non_string_values():
    broker = FakeBroker()
    d = ResourceData(config=_config(durable=True, arguments_json='{"x-max-length": 10}'))
    create_queue(d, broker)
    assert broker.declared[0] == {
        "durable": True,
        "auto_delete": False,
        "arguments": {"x-max-length": 10},
    }
    assert d.get("settings.0.arguments_json") == '{"x-max-length":10}'


def test_x_queue_type_kept_when_configured():
    broker = FakeBroker(assign_queue_type=True)
    d = ResourceData(config=_config(arguments={"x-queue-type": "classic"}))
    create_queue(d, broker)
    assert d.get("type") == "classic"
    assert d.get("settings.0.arguments.x-queue-type") == "classic"
    assert d.get("settings.0.arguments_json") is None


def test_x_queue_type_dropped_when_not_configured():
    broker = FakeBroker(assign_queue_type=True)
    d = ResourceData(config=_config(arguments={"myKey": "myValue"}))
    create_queue(d, broker)
    assert broker.queues[("/", "myqueue")]["arguments"]["x-queue-type"] == "classic"
    assert d.get("settings.0.arguments") == {"myKey": "myValue"}


def test_server_non_string_arguments_move_to_json():
    broker = FakeBroker()
    broker.queues[("/", "q")] = {
        "name": "q",
        "vhost": "/",
        "type": "classic",
        "durable": True,
        "auto_delete": False,
        "arguments": {"x-max-length": 5, "b": "x"},
    }
    d = ResourceData(config=_config(name="q", arguments={"b": "x"}), resource_id="q@/")
    read_queue(d, broker)
    assert d.get("settings.0.arguments_json") == '{"b":"x","x-max-length":5}'
    assert d.get("settings.0.arguments") is None
    assert d.get("settings.0.durable") is True


def test_already_exists():
    broker = FakeBroker()
    create_queue(ResourceData(config=_config()), broker)
    with pytest.raises(ProviderError, match="queue already exists"):
        create_queue(ResourceData(config=_config()), broker)


def test_invalid_arguments_json():
    broker = FakeBroker()
    d = ResourceData(config=_config(arguments_json="{not json"))
    with pytest.raises(ProviderError):
        create_queue(d, broker)
    assert broker.declared == []


def test_unparsable_settings():
    d = ResourceData(config={"name": "q", "vhost": "/", "settings": []})
    with pytest.raises(ProviderError, match="Unable to parse settings"):
        create_queue(d, FakeBroker())


def test_declare_error_status():
    broker = FakeBroker()
    broker.declare_status = 400
    with pytest.raises(ProviderError, match="Error declaring RabbitMQ queue 'q': 400 Bad Request"):
        declare_queue(broker, "/", "q", {"durable": True})


def test_declare_omits_empty_arguments():
    broker = FakeBroker()
    declare_queue(broker, "/", "q", {"durable": True, "auto_delete": True, "arguments": {}})
    assert broker.declared == [{"durable": True, "auto_delete": True}]


def test_read_missing_clears_id():
    d = ResourceData(config=_config(), resource_id="gone@/")
    read_queue(d, FakeBroker())
    assert d.id == ""


def test_read_bad_id():
    d = ResourceData(resource_id="no-separator")
    with pytest.raises(ProviderError, match="unable to parse resource id"):
        read_queue(d, FakeBroker())


def test_delete_removes_queue():
    broker = FakeBroker()
    d = ResourceData(config=_config())
    create_queue(d, broker)
    delete_queue(d, broker)
    assert broker.queues == {}


def test_delete_already_gone_is_fine():
    broker = FakeBroker()
    d = ResourceData(resource_id="gone@/")
    delete_queue(d, broker)
    assert broker.queues == {}


def test_delete_error_status():
    broker = FakeBroker()
    d = ResourceData(config=_config())
    create_queue(d, broker)
    broker.delete_status = 500
    with pytest.raises(ProviderError, match="Error deleting RabbitMQ queue 'myqueue'"):
        delete_queue(d, broker)


@pytest.mark.parametrize(
    "args, expected",
    [
        ({}, False),
        (None, False),
        ({"a": "b"}, False),
        ({"a": "b", "c": 1}, True),
        ({"a": True}, True),
        ({"a": None}, True),
    ],
)
def test_non_string_in_arguments(args, expected):
    assert non_string_in_arguments(args) is expected