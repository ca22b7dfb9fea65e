[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "heliolite"
version = "0.1.0"
description = "Proof-verifying execution layer for an Ethereum light client: account and storage proofs, receipt roots and log verification over an untrusted JSON-RPC endpoint."
requires-python = ">=3.10"
keywords = ["ethereum", "light-client", "merkle-patricia", "rlp", "json-rpc", "proof"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "pycryptodome",
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["heliolite"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
