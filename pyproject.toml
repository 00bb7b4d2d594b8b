[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zknode"
version = "0.1.0"
description = "Zero-knowledge contract state trees, Poseidon hashing, peer bookkeeping and node context for a peer-to-peer chain node"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "blockchain",
    "zero-knowledge",
    "poseidon",
    "merkle-tree",
    "peer-to-peer",
    "firewall",
    "mempool",
]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Security :: Cryptography",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["zknode"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
