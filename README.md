# rmqprovision

Keep a RabbitMQ broker in the shape you describe. `rmqprovision` talks to the
RabbitMQ management HTTP API and offers create, read, update and delete
functions for:

| Resource           | Module                            | Functions                                                         | Resource id      |
|--------------------|-----------------------------------|-------------------------------------------------------------------|------------------|
| Virtual hosts      | `rmqprovision.vhost`              | `create_vhost`, `read_vhost`, `update_vhost`, `delete_vhost`      | `<name>`         |
| Users              | `rmqprovision.user`               | `create_user`, `read_user`, `update_user`, `delete_user`          | `<name>`         |
| Queues             | `rmqprovision.queue`              | `create_queue`, `read_queue`, `delete_queue`                      | `<name>@<vhost>` |
| Policies           | `rmqprovision.policy`             | `create_policy`, `read_policy`, `update_policy`, `delete_policy`  | `<name>@<vhost>` |
| Dynamic shovels    | `rmqprovision.shovel`             | `create_shovel`, `read_shovel`, `update_shovel`, `delete_shovel`  | `<name>@<vhost>` |
| Topic permissions  | `rmqprovision.topic_permissions`  | `create_topic_permissions`, `read_topic_permissions`, `update_topic_permissions`, `delete_topic_permissions` | `<user>@<vhost>` |

Queues have no update function: a changed queue has to be deleted and
created again.

## How it works

Every operation takes two arguments, `(d, client)`:

* `d`, a `ResourceData` from `rmqprovision.util`, holding the desired
  configuration (`config`), the last known state (`state`) and the resource
  id (`id`). `get(key)` and `get_ok(key)` read the working values and accept
  dotted paths such as `"settings.0.arguments"`; `has_change(key)` and
  `get_change(key)` compare state with configuration; `set(key, value)` and
  `set_id(resource_id)` record what was read back from the broker.
* `client`, a `ManagementClient` from `rmqprovision.client`, connected to the
  broker with basic authentication. It can be used as a context manager and
  has `close()`.

Create functions declare the resource, set the resource id and then read the
live settings back into the `ResourceData`. The vhost, user, queue and
policy create functions first look the resource up and refuse with an error
if it already exists. Read functions refresh the values from the broker; if
the broker answers 404, the resource id is cleared so you know it is gone.
Update functions compare state with configuration: policies, shovels and
topic permissions are only redeclared when their block changed, while users
and vhosts are always written again with the changed values merged over the
current ones. Delete functions for vhosts, users, queues, policies and topic
permissions treat a resource that is already missing as success; deleting a
shovel that is not there is an error.

Errors are raised as `ProviderError` from `rmqprovision.util`, for example
for a malformed resource id, an existing resource on create, a limit that is
not an integer or an error status from the broker. The client's lookup
methods (`get_vhost`, `get_queue`, `overview`, ...) raise `ResponseError`, a
`ProviderError` carrying `status_code`, `message` and `reason`, for error
statuses; methods that change state return a `Response` with `status_code`,
`reason`, `body` and `status` and leave the status to the caller. Transport
failures surface as `requests` exceptions.

## Example

```python
from rmqprovision.client import ManagementClient
from rmqprovision.queue import create_queue
from rmqprovision.util import ResourceData
from rmqprovision.vhost import create_vhost

password = "password"
with ManagementClient("http://localhost:15672", "guest", password=password, timeout=10) as client:
    vhost = ResourceData(
        config={
            "name": "orders",
            "description": "Order processing",
            "default_queue_type": "quorum",
            "tracing": False,
            "max_connections": "100",
            "max_queues": "50",
        },
    )
    create_vhost(vhost, client)
    print(vhost.id)                          # "orders"
    print(vhost.get("default_queue_type"))   # as reported by the broker

    queue = ResourceData(
        config={
            "name": "incoming",
            "vhost": "orders",
            "settings": [{"durable": True, "auto_delete": False,
                          "arguments": {"x-max-length": "1000"}}],
        },
    )
    create_queue(queue, client)
    print(queue.id)                          # "incoming@orders"
    print(queue.get("type"))                 # as reported by the broker
```

## Notes on specific resources

* **Vhosts** – `default_queue_type` defaults to `classic` and must be one of
  `classic`, `quorum` or `stream` (`validate_default_queue_type` raises
  `ProviderError` otherwise). `max_connections` and `max_queues` are given as
  strings and sent as integer limits; when read back, a missing limit is
  stored as an empty string.
* **Users** – `tags` is a list of strings (`user_tags` keeps the string
  entries); `max_connections` and `max_channels` are string limits as on
  vhosts. `update_user` clears both limits and sets the ones configured.
* **Queues** – `vhost` defaults to `/`. Use either `arguments` or
  `arguments_json` (a JSON object, for non-string values). When read back,
  the form you used is kept, non-string values force `arguments_json`
  (`non_string_in_arguments`), and `x-queue-type` is dropped unless your
  configuration set it. `declare_queue` sends one queue declaration.
* **Policies** – `put_policy` sends definition values that are integer text
  as integers, and with `ha-mode = "nodes"` a comma separated `ha-params` is
  sent as a list of node names. `flatten_definition` turns a definition read
  from the broker back into string values: numbers as plain decimal text,
  lists of strings joined with commas.
* **Shovels** – `ShovelDefinition` holds the settings of the `info` block;
  `shovel_definition_from_map` builds one from the block,
  `ShovelDefinition.to_api()` produces the document the API expects and
  `ShovelDefinition.from_api()` reads one back. Unset optional settings take
  the defaults `ack_mode = "on-confirm"`, `destination_protocol` and
  `source_protocol = "amqp091"`, `reconnect_delay = 1` and
  `destination_add_timestamp_header = False`.
* **Topic permissions** – `vhost` defaults to `/`; `permissions` is a list of
  `{"exchange", "write", "read"}` maps, each set with
  `set_topic_permissions_in`. An update clears all of the user's topic
  permissions in the vhost and sets the new list. On an error status the
  broker version is checked with `check_version`, which raises for brokers
  older than 3.7.

## Helpers

`rmqprovision.util` also provides `parse_id` and `parse_resource_id`, which
split a `<name>@<vhost>` id (anything but exactly one `@` is an error),
`check_deleted`, `fail_api_response`, and `percent_encode_slashes` /
`percent_decode_slashes` for carrying slashes safely inside composite ids.

## What it does not do

`rmqprovision` is a library of functions. It has no command-line tool, does
not read configuration files and does not store state between runs: keeping
the `state` and id of each `ResourceData` is up to the caller. It manages
only the six resources above; exchanges, bindings, ordinary user permissions,
operator policies and federation upstreams are not covered.

## Running the tests

The test suite uses `pytest` and `responses`, declared in the `test` extra:

```
pip install -e ".[test]"
pytest
```