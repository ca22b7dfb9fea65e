"""Data types for blocks, transactions, logs, receipts and proofs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Union

from . import rlp
from .proof import keccak256

ZERO_HASH = b"\x00" * 32
ZERO_ADDRESS = b"\x00" * 20


def _int(value: Any, default: int | None = 0) -> int | None:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith(("0x", "0X")) else int(text)


def _bytes(value: Any, size: int | None = None) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        data = bytes(value)
    else:
        text = str(value)
        text = text[2:] if text.startswith(("0x", "0X")) else text
        if len(text) % 2:
            text = "0" + text
        data = bytes.fromhex(text)
    if size is not None and len(data) < size:
        data = data.rjust(size, b"\x00")
    return data


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def _be_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


@dataclass(frozen=True)
class BlockTag:
    """Latest, finalized, or a specific block number."""

    kind: str
    number: int | None = None

    LATEST: ClassVar["BlockTag"]
    FINALIZED: ClassVar["BlockTag"]

    def __post_init__(self) -> None:
        if self.kind not in ("latest", "finalized", "number"):
            raise ValueError(f"unknown block tag kind: {self.kind}")
        if (self.kind == "number") != (self.number is not None):
            raise ValueError("a number tag needs a number, other tags none")
        if self.number is not None and self.number < 0:
            raise ValueError("block number must be non-negative")

    def __str__(self) -> str:
        return self.kind if self.number is None else hex(self.number)


BlockTag.LATEST = BlockTag("latest")
BlockTag.FINALIZED = BlockTag("finalized")


def parse_block_tag(value: Any) -> BlockTag:
    """Build a BlockTag from a tag, 'latest', 'finalized', an int or a numeric string."""
    if isinstance(value, BlockTag):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid block tag: {value!r}")
    if isinstance(value, int):
        return BlockTag("number", value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("latest", "finalized"):
            return BlockTag(text)
        try:
            return BlockTag("number", _int(text))
        except ValueError:
            pass
    raise ValueError(f"invalid block tag: {value!r}")


@dataclass
class Transaction:
    hash: bytes
    nonce: int = 0
    from_address: bytes | None = None
    to: bytes | None = None
    value: int = 0
    gas: int = 0
    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    input: bytes = b""
    chain_id: int | None = None
    transaction_type: int = 0
    access_list: list = field(default_factory=list)
    v: int = 0
    r: int = 0
    s: int = 0
    block_hash: bytes | None = None
    block_number: int | None = None
    transaction_index: int | None = None

    @classmethod
    def decode(cls, raw: bytes) -> "Transaction":
        """Decode a signed legacy, EIP-2930 or EIP-1559 transaction."""
        raw = bytes(raw)
        if not raw:
            raise rlp.RlpError("empty transaction")
        tx_hash = keccak256(raw)
        if raw[0] >= 0xC0:
            f = rlp.decode(raw)
            if len(f) != 9:
                raise rlp.RlpError("legacy transaction needs 9 fields")
            v = _be_int(f[6])
            chain_id = (v - 35) // 2 if v >= 35 else None
            return cls(
                hash=tx_hash, nonce=_be_int(f[0]), gas_price=_be_int(f[1]),
                gas=_be_int(f[2]), to=f[3] or None, value=_be_int(f[4]), input=f[5],
                chain_id=chain_id, v=v, r=_be_int(f[7]), s=_be_int(f[8]),
            )
        tx_type = raw[0]
        f = rlp.decode(raw[1:])
        if tx_type == 1 and len(f) == 11:
            chain_id, nonce, gas_price, gas, to, value, data, access, v, r, s = f
            fees = dict(gas_price=_be_int(gas_price))
        elif tx_type == 2 and len(f) == 12:
            chain_id, nonce, prio, max_fee, gas, to, value, data, access, v, r, s = f
            fees = dict(max_priority_fee_per_gas=_be_int(prio), max_fee_per_gas=_be_int(max_fee))
        else:
            raise rlp.RlpError(f"unsupported transaction type {tx_type}")
        return cls(
            hash=tx_hash, nonce=_be_int(nonce), gas=_be_int(gas), to=to or None,
            value=_be_int(value), input=data, chain_id=_be_int(chain_id),
            transaction_type=tx_type,
            access_list=[AccessListItem(a, list(keys)) for a, keys in access],
            v=_be_int(v), r=_be_int(r), s=_be_int(s), **fees,
        )

    @classmethod
    def from_json(cls, data: dict) -> "Transaction":
        return cls(
            hash=_bytes(data["hash"], 32),
            nonce=_int(data.get("nonce")),
            from_address=_bytes(data.get("from"), 20),
            to=_bytes(data.get("to"), 20),
            value=_int(data.get("value")),
            gas=_int(data.get("gas")),
            gas_price=_int(data.get("gasPrice"), None),
            max_fee_per_gas=_int(data.get("maxFeePerGas"), None),
            max_priority_fee_per_gas=_int(data.get("maxPriorityFeePerGas"), None),
            input=_bytes(data.get("input")) or b"",
            chain_id=_int(data.get("chainId"), None),
            transaction_type=_int(data.get("type")),
            access_list=[AccessListItem.from_json(i) for i in data.get("accessList") or []],
            v=_int(data.get("v")),
            r=_int(data.get("r")),
            s=_int(data.get("s")),
            block_hash=_bytes(data.get("blockHash"), 32),
            block_number=_int(data.get("blockNumber"), None),
            transaction_index=_int(data.get("transactionIndex"), None),
        )


@dataclass
class Block:
    number: int = 0
    hash: bytes = ZERO_HASH
    parent_hash: bytes = ZERO_HASH
    state_root: bytes = ZERO_HASH
    receipts_root: bytes = ZERO_HASH
    miner: bytes = ZERO_ADDRESS
    timestamp: int = 0
    difficulty: int = 0
    base_fee_per_gas: int = 0
    gas_limit: int = 0
    gas_used: int = 0
    transactions: list[Union[Transaction, bytes]] = field(default_factory=list)

    def transaction_hashes(self) -> list[bytes]:
        return [t.hash if isinstance(t, Transaction) else t for t in self.transactions]

    def with_hashes_only(self) -> "Block":
        """A copy of this block listing only transaction hashes."""
        return replace(self, transactions=self.transaction_hashes())


@dataclass
class Log:
    address: bytes
    topics: list[bytes] = field(default_factory=list)
    data: bytes = b""
    block_hash: bytes | None = None
    block_number: int | None = None
    transaction_hash: bytes | None = None
    transaction_index: int | None = None
    log_index: int | None = None
    removed: bool = False

    @classmethod
    def from_json(cls, data: dict) -> "Log":
        return cls(
            address=_bytes(data["address"], 20),
            topics=[_bytes(t, 32) for t in data.get("topics") or []],
            data=_bytes(data.get("data")) or b"",
            block_hash=_bytes(data.get("blockHash"), 32),
            block_number=_int(data.get("blockNumber"), None),
            transaction_hash=_bytes(data.get("transactionHash"), 32),
            transaction_index=_int(data.get("transactionIndex"), None),
            log_index=_int(data.get("logIndex"), None),
            removed=bool(data.get("removed", False)),
        )

    def rlp_bytes(self) -> bytes:
        """Consensus encoding: [address, topics, data]."""
        return rlp.encode([self.address, list(self.topics), self.data])


@dataclass
class Receipt:
    transaction_hash: bytes
    transaction_index: int = 0
    block_hash: bytes | None = None
    block_number: int | None = None
    from_address: bytes | None = None
    to: bytes | None = None
    cumulative_gas_used: int = 0
    gas_used: int | None = None
    contract_address: bytes | None = None
    logs: list[Log] = field(default_factory=list)
    status: int | None = None
    logs_bloom: bytes = b"\x00" * 256
    transaction_type: int | None = None
    effective_gas_price: int | None = None

    @classmethod
    def from_json(cls, data: dict) -> "Receipt":
        return cls(
            transaction_hash=_bytes(data["transactionHash"], 32),
            transaction_index=_int(data.get("transactionIndex")),
            block_hash=_bytes(data.get("blockHash"), 32),
            block_number=_int(data.get("blockNumber"), None),
            from_address=_bytes(data.get("from"), 20),
            to=_bytes(data.get("to"), 20),
            cumulative_gas_used=_int(data.get("cumulativeGasUsed")),
            gas_used=_int(data.get("gasUsed"), None),
            contract_address=_bytes(data.get("contractAddress"), 20),
            logs=[Log.from_json(entry) for entry in data.get("logs") or []],
            status=_int(data.get("status"), None),
            logs_bloom=_bytes(data.get("logsBloom"), 256) or b"\x00" * 256,
            transaction_type=_int(data.get("type"), None),
            effective_gas_price=_int(data.get("effectiveGasPrice"), None),
        )


@dataclass
class Filter:
    from_block: BlockTag | None = None
    to_block: BlockTag | None = None
    block_hash: bytes | None = None
    address: list[bytes] = field(default_factory=list)
    topics: list[Any] = field(default_factory=list)


@dataclass
class StorageProof:
    key: bytes
    value: int
    proof: list[bytes] = field(default_factory=list)


@dataclass
class ProofResponse:
    address: bytes
    balance: int
    code_hash: bytes
    nonce: int
    storage_hash: bytes
    account_proof: list[bytes] = field(default_factory=list)
    storage_proof: list[StorageProof] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "ProofResponse":
        return cls(
            address=_bytes(data["address"], 20),
            balance=_int(data["balance"]),
            code_hash=_bytes(data["codeHash"], 32),
            nonce=_int(data["nonce"]),
            storage_hash=_bytes(data["storageHash"], 32),
            account_proof=[_bytes(p) for p in data.get("accountProof") or []],
            storage_proof=[
                StorageProof(
                    key=_bytes(sp["key"], 32),
                    value=_int(sp["value"]),
                    proof=[_bytes(p) for p in sp.get("proof") or []],
                )
                for sp in data.get("storageProof") or []
            ],
        )


@dataclass
class AccessListItem:
    address: bytes
    storage_keys: list[bytes] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "AccessListItem":
        return cls(
            address=_bytes(data["address"], 20),
            storage_keys=[_bytes(k, 32) for k in data.get("storageKeys") or []],
        )


@dataclass
class Account:
    balance: int = 0
    nonce: int = 0
    code_hash: bytes = ZERO_HASH
    code: bytes = b""
    storage_hash: bytes = ZERO_HASH
    slots: dict[bytes, int] = field(default_factory=dict)


@dataclass
class CallOpts:
    from_address: bytes | None = None
    to: bytes | None = None
    gas: int | None = None
    gas_price: int | None = None
    value: int | None = None
    data: bytes | None = None

    @classmethod
    def from_json(cls, data: dict) -> "CallOpts":
        return cls(
            from_address=_bytes(data.get("from"), 20),
            to=_bytes(data.get("to"), 20),
            gas=_int(data.get("gas"), None),
            gas_price=_int(data.get("gasPrice"), None),
            value=_int(data.get("value"), None),
            data=_bytes(data.get("data")),
        )

    def to_json(self) -> dict:
        out: dict[str, str] = {}
        for key, val in (("from", self.from_address), ("to", self.to), ("data", self.data)):
            if val is not None:
                out[key] = _hex(val)
        for key, num in (("gas", self.gas), ("gasPrice", self.gas_price), ("value", self.value)):
            if num is not None:
                out[key] = hex(num)
        return out

    def __repr__(self) -> str:
        def show(v):
            return None if v is None else _hex(v)

        return (
            f"CallOpts(from={show(self.from_address)}, to={show(self.to)}, "
            f"value={self.value}, data={(self.data or b'').hex()})"
        )