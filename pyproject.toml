[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "respkv"
version = "0.1.0"
description = "A small in-memory key-value server speaking the RESP protocol, with hashes, pub/sub and an append-only file."
requires-python = ">=3.10"
dependencies = []
keywords = ["resp", "key-value", "server", "pubsub", "append-only-file"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
respkv = "respkv.server:main"

[tool.hatch.build.targets.wheel]
packages = ["respkv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
