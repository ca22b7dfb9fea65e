"""Interface to an execution-layer JSON-RPC backend, and a file-backed stand-in."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .errors import RpcError
from .types import (
    AccessListItem,
    BlockTag,
    CallOpts,
    Filter,
    Log,
    ProofResponse,
    Receipt,
    Transaction,
)


def _quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith(("0x", "0X")) else int(text)


def _fee_history_from_json(data: dict) -> dict:
    """Normalise an eth_feeHistory result into plain Python values."""
    return {
        "oldest_block": _quantity(data["oldestBlock"]),
        "base_fee_per_gas": [_quantity(v) for v in data.get("baseFeePerGas") or []],
        "gas_used_ratio": [float(v) for v in data.get("gasUsedRatio") or []],
        "reward": [[_quantity(v) for v in row] for row in data.get("reward") or []],
    }


class ExecutionRpc(ABC):
    """Untrusted source of execution-layer data."""

    @abstractmethod
    async def get_proof(
        self, address: bytes, slots: Sequence[bytes], block: int
    ) -> ProofResponse:
        """Account and storage proof for address at block number."""

    @abstractmethod
    async def create_access_list(
        self, opts: CallOpts, block: BlockTag
    ) -> list[AccessListItem]:
        """Accounts and storage slots a call would touch."""

    @abstractmethod
    async def get_code(self, address: bytes, block: int) -> bytes:
        """Contract code at address at block number."""

    @abstractmethod
    async def send_raw_transaction(self, data: bytes) -> bytes:
        """Submit a signed transaction and return its hash."""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: bytes) -> Receipt | None:
        """Receipt of a transaction, or None if unknown."""

    @abstractmethod
    async def get_transaction(self, tx_hash: bytes) -> Transaction | None:
        """Transaction by hash, or None if unknown."""

    @abstractmethod
    async def get_logs(self, log_filter: Filter) -> list[Log]:
        """Logs matching a filter."""

    @abstractmethod
    async def get_filter_changes(self, filter_id: int) -> list[Log]:
        """Logs produced since the filter was last polled."""

    @abstractmethod
    async def uninstall_filter(self, filter_id: int) -> bool:
        """Remove an installed filter."""

    @abstractmethod
    async def get_new_filter(self, log_filter: Filter) -> int:
        """Install a log filter and return its id."""

    @abstractmethod
    async def get_new_block_filter(self) -> int:
        """Install a new-block filter and return its id."""

    @abstractmethod
    async def get_new_pending_transaction_filter(self) -> int:
        """Install a pending-transaction filter and return its id."""

    @abstractmethod
    async def chain_id(self) -> int:
        """Chain id the endpoint serves."""

    @abstractmethod
    async def get_fee_history(
        self, block_count: int, last_block: int, reward_percentiles: Sequence[float]
    ) -> dict:
        """Fee history ending at last_block."""


class MockRpc(ExecutionRpc):
    """Serves canned responses from JSON files in a directory."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self, name: str) -> str:
        return (self.path / name).read_text()

    def _load(self, name: str) -> Any:
        return json.loads(self._read(name))

    @staticmethod
    def _unsupported(method: str) -> RpcError:
        return RpcError(method, "unsupported by MockRpc")

    async def get_proof(
        self, address: bytes, slots: Sequence[bytes], block: int
    ) -> ProofResponse:
        return ProofResponse.from_json(self._load("proof.json"))

    async def create_access_list(
        self, opts: CallOpts, block: BlockTag
    ) -> list[AccessListItem]:
        raise self._unsupported("create_access_list")

    async def get_code(self, address: bytes, block: int) -> bytes:
        text = self._read("code.json").strip()
        if text.startswith('"'):
            text = json.loads(text)
        if text.startswith(("0x", "0X")):
            text = text[2:]
        return bytes.fromhex(text)

    async def send_raw_transaction(self, data: bytes) -> bytes:
        raise self._unsupported("send_raw_transaction")

    async def get_transaction_receipt(self, tx_hash: bytes) -> Receipt | None:
        data = self._load("receipt.json")
        return None if data is None else Receipt.from_json(data)

    async def get_transaction(self, tx_hash: bytes) -> Transaction | None:
        data = self._load("transaction.json")
        return None if data is None else Transaction.from_json(data)

    async def get_logs(self, log_filter: Filter) -> list[Log]:
        return [Log.from_json(entry) for entry in self._load("logs.json")]

    async def get_filter_changes(self, filter_id: int) -> list[Log]:
        return [Log.from_json(entry) for entry in self._load("logs.json")]

    async def uninstall_filter(self, filter_id: int) -> bool:
        raise self._unsupported("uninstall_filter")

    async def get_new_filter(self, log_filter: Filter) -> int:
        raise self._unsupported("get_new_filter")

    async def get_new_block_filter(self) -> int:
        raise self._unsupported("get_new_block_filter")

    async def get_new_pending_transaction_filter(self) -> int:
        raise self._unsupported("get_new_pending_transaction_filter")

    async def chain_id(self) -> int:
        raise self._unsupported("chain_id")

    async def get_fee_history(
        self, block_count: int, last_block: int, reward_percentiles: Sequence[float]
    ) -> dict:
        return _fee_history_from_json(self._load("fee_history.json"))