"""Create, read, update and delete RabbitMQ resources through the management HTTP API."""

__version__ = "0.1.0"

__all__ = [
    "client",
    "policy",
    "queue",
    "shovel",
    "topic_permissions",
    "user",
    "util",
    "vhost",
]