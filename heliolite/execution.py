"""Verified access to execution-layer data through an untrusted RPC."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from . import rlp
from .errors import (
    BlockNotFoundError,
    CodeHashMismatch,
    ExecutionError,
    IncorrectRpcNetwork,
    InvalidAccountProof,
    InvalidStorageProof,
    MissingLog,
    NoReceiptForTransaction,
    ReceiptRootMismatch,
    TooManyLogsToProve,
)
from .proof import encode_account, keccak256, verify_proof
from .rpc import ExecutionRpc
from .state import State
from .types import Account, Block, BlockTag, Filter, Log, Receipt, Transaction

# Logs are proven one receipt set at a time, so the count is capped
# to keep a single request from blocking the client for too long.
MAX_SUPPORTED_LOGS_NUMBER = 5

KECCAK_EMPTY = bytes.fromhex(
    "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
)


def _hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _nibbles(key: bytes) -> tuple[int, ...]:
    return tuple(n for byte in key for n in (byte >> 4, byte & 0xF))


def _hex_prefix(nibbles: Sequence[int], leaf: bool) -> bytes:
    flag = 2 if leaf else 0
    if len(nibbles) % 2:
        packed = (flag + 1, *nibbles)
    else:
        packed = (flag, 0, *nibbles)
    return bytes(hi << 4 | lo for hi, lo in zip(packed[::2], packed[1::2]))


def _common_prefix_length(keys: list[tuple[int, ...]]) -> int:
    length = 0
    for column in zip(*keys):
        if any(n != column[0] for n in column):
            break
        length += 1
    return length


def _reference(node: Any) -> Any:
    encoded = rlp.encode(node)
    return node if len(encoded) < 32 else keccak256(encoded)


def _build(pairs: list[tuple[tuple[int, ...], bytes]], depth: int) -> list:
    if len(pairs) == 1:
        key, value = pairs[0]
        return [_hex_prefix(key[depth:], True), value]
    shared = _common_prefix_length([key[depth:] for key, _ in pairs])
    if shared:
        child = _build(pairs, depth + shared)
        return [_hex_prefix(pairs[0][0][depth : depth + shared], False), _reference(child)]
    branch: list[Any] = [b""] * 17
    groups: dict[int, list[tuple[tuple[int, ...], bytes]]] = {}
    for key, value in pairs:
        if len(key) == depth:
            branch[16] = value
        else:
            groups.setdefault(key[depth], []).append((key, value))
    for nibble, group in groups.items():
        branch[nibble] = _reference(_build(group, depth + 1))
    return branch


def ordered_trie_root(items: Sequence[bytes]) -> bytes:
    """Root of the Merkle-Patricia trie keyed by the RLP of each item's index."""
    pairs = sorted(
        (_nibbles(rlp.encode(index)), bytes(item)) for index, item in enumerate(items)
    )
    if not pairs:
        return keccak256(rlp.encode(b""))
    return keccak256(rlp.encode(_build(pairs, 0)))


def encode_receipt(receipt: Receipt) -> bytes:
    """Consensus encoding of a receipt, typed receipts prefixed by their type."""
    if receipt.status is None:
        raise ValueError("receipt has no status")
    if receipt.transaction_type is None:
        raise ValueError("receipt has no transaction type")
    logs = [[log.address, list(log.topics), log.data] for log in receipt.logs]
    encoded = rlp.encode(
        [receipt.status, receipt.cumulative_gas_used, receipt.logs_bloom, logs]
    )
    if receipt.transaction_type == 0:
        return encoded
    return bytes([receipt.transaction_type & 0xFF]) + encoded


class ExecutionClient:
    """Checks everything an untrusted RPC returns against verified block headers."""

    def __init__(self, rpc: ExecutionRpc, state: State) -> None:
        self.rpc = rpc
        self.state = state

    async def check_rpc(self, chain_id: int) -> None:
        """Raise IncorrectRpcNetwork unless the RPC serves chain_id."""
        if await self.rpc.chain_id() != chain_id:
            raise IncorrectRpcNetwork()

    def _require_block(self, tag: BlockTag) -> Block:
        block = self.state.get_block(tag)
        if block is None:
            raise BlockNotFoundError(tag)
        return block

    async def get_account(
        self, address: bytes, slots: Sequence[bytes] | None, tag: BlockTag
    ) -> Account:
        """Fetch an account and the requested storage slots, verifying every proof."""
        slots = list(slots or [])
        block = self._require_block(tag)
        proof = await self.rpc.get_proof(address, slots, block.number)

        if not verify_proof(
            proof.account_proof,
            block.state_root,
            keccak256(address),
            encode_account(proof),
        ):
            raise InvalidAccountProof(address)

        slot_map: dict[bytes, int] = {}
        for storage_proof in proof.storage_proof:
            if not verify_proof(
                storage_proof.proof,
                proof.storage_hash,
                keccak256(storage_proof.key),
                rlp.encode(storage_proof.value),
            ):
                raise InvalidStorageProof(address, storage_proof.key)
            slot_map[storage_proof.key] = storage_proof.value

        if proof.code_hash == KECCAK_EMPTY:
            code = b""
        else:
            code = await self.rpc.get_code(address, block.number)
            code_hash = keccak256(code)
            if code_hash != proof.code_hash:
                raise CodeHashMismatch(address, _hex(code_hash), _hex(proof.code_hash))

        return Account(
            balance=proof.balance,
            nonce=proof.nonce,
            code=code,
            code_hash=proof.code_hash,
            storage_hash=proof.storage_hash,
            slots=slot_map,
        )

    async def send_raw_transaction(self, data: bytes) -> bytes:
        return await self.rpc.send_raw_transaction(data)

    async def get_block(self, tag: BlockTag, full_tx: bool) -> Block:
        block = self._require_block(tag)
        return block if full_tx else block.with_hashes_only()

    async def get_block_by_hash(self, block_hash: bytes, full_tx: bool) -> Block:
        block = self.state.get_block_by_hash(block_hash)
        if block is None:
            raise BlockNotFoundError(_hex(block_hash))
        return block if full_tx else block.with_hashes_only()

    async def get_transaction_by_block_hash_and_index(
        self, block_hash: bytes, index: int
    ) -> Transaction | None:
        return self.state.get_transaction_by_block_and_index(block_hash, index)

    async def _fetch_receipt(self, tx_hash: bytes) -> Receipt:
        receipt = await self.rpc.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise NoReceiptForTransaction(_hex(tx_hash))
        return receipt

    async def get_transaction_receipt(self, tx_hash: bytes) -> Receipt | None:
        """A receipt proven against its block's receipts root, or None if unseen."""
        receipt = await self.rpc.get_transaction_receipt(tx_hash)
        if receipt is None:
            return None
        if receipt.block_number is None:
            raise ValueError("receipt has no block number")

        block = self.state.get_block(BlockTag("number", receipt.block_number))
        if block is None:
            return None

        receipts = await asyncio.gather(
            *(self._fetch_receipt(h) for h in block.transaction_hashes())
        )
        expected_root = ordered_trie_root([encode_receipt(r) for r in receipts])
        if expected_root != block.receipts_root or receipt not in receipts:
            raise ReceiptRootMismatch(_hex(tx_hash))
        return receipt

    async def get_transaction(self, tx_hash: bytes) -> Transaction | None:
        return self.state.get_transaction(tx_hash)

    def _bounded(self, log_filter: Filter) -> Filter:
        """Stop an open-ended filter at the newest block the state has seen."""
        if log_filter.to_block is not None or log_filter.block_hash is not None:
            return log_filter
        latest = self.state.latest_block_number()
        if latest is None:
            raise BlockNotFoundError(BlockTag.LATEST)
        tag = BlockTag("number", latest)
        from_block = log_filter.from_block if log_filter.from_block is not None else tag
        return replace(log_filter, to_block=tag, from_block=from_block)

    async def _checked_logs(self, logs: list[Log]) -> list[Log]:
        if len(logs) > MAX_SUPPORTED_LOGS_NUMBER:
            raise TooManyLogsToProve(len(logs), MAX_SUPPORTED_LOGS_NUMBER)
        await self._verify_logs(logs)
        return logs

    async def get_logs(self, log_filter: Filter) -> list[Log]:
        logs = await self.rpc.get_logs(self._bounded(log_filter))
        return await self._checked_logs(logs)

    async def get_filter_changes(self, filter_id: int) -> list[Log]:
        logs = await self.rpc.get_filter_changes(filter_id)
        return await self._checked_logs(logs)

    async def uninstall_filter(self, filter_id: int) -> bool:
        return await self.rpc.uninstall_filter(filter_id)

    async def get_new_filter(self, log_filter: Filter) -> int:
        return await self.rpc.get_new_filter(self._bounded(log_filter))

    async def get_new_block_filter(self) -> int:
        return await self.rpc.get_new_block_filter()

    async def get_new_pending_transaction_filter(self) -> int:
        return await self.rpc.get_new_pending_transaction_filter()

    async def _verify_logs(self, logs: list[Log]) -> None:
        for log in logs:
            if log.transaction_hash is None:
                raise ExecutionError("tx hash not found in log")
            tx_hash = log.transaction_hash
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is None:
                raise NoReceiptForTransaction(_hex(tx_hash))
            if log.rlp_bytes() not in [entry.rlp_bytes() for entry in receipt.logs]:
                raise MissingLog(_hex(tx_hash), log.log_index)