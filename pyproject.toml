[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "busferry"
version = "0.1.0"
description = "D-Bus address parsing, client authentication, introspection trees, pending replies and message capture analysis"
requires-python = ">=3.10"
dependencies = []
keywords = ["dbus", "ipc", "introspection", "authentication", "bus", "sasl"]
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
    "Topic :: Software Development :: Libraries",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["busferry"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
