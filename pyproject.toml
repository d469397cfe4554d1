[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "natstier"
version = "0.1.0"
description = "Tiered storage for message streams: write-through tiers, fall-through reads, policy-based eviction, and a client with cold-storage fallback."
requires-python = ">=3.10"
dependencies = []
keywords = ["nats", "jetstream", "tiered-storage", "archiving", "key-value", "object-store"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["natstier"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
