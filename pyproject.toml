[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "forkjoin"
version = "0.2.1"
description = "Low-overhead fork-join parallelism driven by heartbeats"
requires-python = ">=3.10"
keywords = ["join", "concurrency", "parallel", "fork-join", "heartbeat"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["forkjoin"]

[tool.pytest.ini_options]
addopts = "-ra"
