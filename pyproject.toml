[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rmqprovision"
version = "0.1.0"
description = "Create, read, update and delete RabbitMQ vhosts, users, queues, policies, shovels and topic permissions over the management HTTP API."
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = [
    "rabbitmq",
    "amqp",
    "provisioning",
    "management-api",
    "infrastructure",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["rmqprovision"]

[tool.hatch.build.targets.sdist]
include = [
    "rmqprovision",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
