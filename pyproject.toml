[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flightpipe"
version = "0.1.0"
description = "Building blocks for a distributed flight-data pipeline: message framing, RabbitMQ queue protocols, EOF propagation and row-processing workers."
requires-python = ">=3.10"
dependencies = [
    "pika",
]
keywords = [
    "distributed",
    "pipeline",
    "rabbitmq",
    "amqp",
    "flights",
    "haversine",
    "serialization",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["flightpipe"]

[tool.hatch.build.targets.sdist]
include = [
    "flightpipe",
    "tests",
    "README.md",
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
