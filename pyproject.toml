[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mankeli"
version = "0.1.0"
description = "Peer-to-peer chat with a local SQLite mailbox, friend invites and an HTTP message server"
requires-python = ">=3.10"
keywords = ["chat", "peer-to-peer", "messaging", "sqlite", "aiohttp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "aiohttp>=3.9",
    "aiosqlite",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
mankeli = "mankeli.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mankeli"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
