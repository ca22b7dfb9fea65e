"""Proof-checked state cache that serves an EVM call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from itertools import islice
from typing import Union

from .errors import EvmGenericError, EvmRpcError
from .execution import ExecutionClient
from .proof import keccak256
from .types import ZERO_ADDRESS, AccessListItem, Account, BlockTag, CallOpts

PARALLEL_QUERY_BATCH_SIZE = 20

_LAST_PRECOMPILE = 9

logger = logging.getLogger(__name__)


@dataclass
class AccountInfo:
    """Balance, nonce and code of an account as the EVM sees it."""

    balance: int = 0
    nonce: int = 0
    code: bytes = b""
    code_hash: bytes = field(init=False)

    def __post_init__(self) -> None:
        self.code_hash = keccak256(self.code)

    @classmethod
    def from_account(cls, account: Account) -> "AccountInfo":
        return cls(account.balance, account.nonce, account.code)


class StateMissing(LookupError):
    """The requested state is not cached yet; it is recorded for fetching."""


@dataclass(frozen=True)
class _BasicAccess:
    address: bytes


@dataclass(frozen=True)
class _StorageAccess:
    address: bytes
    slot: int


@dataclass(frozen=True)
class _BlockHashAccess:
    number: int


_Access = Union[_BasicAccess, _StorageAccess, _BlockHashAccess]


def _batches(items: Iterable[AccessListItem], size: int) -> Iterator[list[AccessListItem]]:
    iterator = iter(items)
    while batch := list(islice(iterator, size)):
        yield batch


def is_precompile(address: bytes) -> bool:
    """True for the precompiled contract addresses 0x01 to 0x09."""
    return 0 < int.from_bytes(address, "big") <= _LAST_PRECOMPILE


class EvmState:
    """Cache of verified accounts, storage and block hashes for one block."""

    def __init__(self, execution: ExecutionClient, block: BlockTag) -> None:
        self.execution = execution
        self.block = block
        self.basic: dict[bytes, AccountInfo] = {}
        self.block_hash: dict[int, bytes] = {}
        self.storage: dict[bytes, dict[int, int]] = {}
        self.access: _Access | None = None

    async def update_state(self) -> None:
        """Fetch and verify the last piece of state that was found missing."""
        access, self.access = self.access, None
        match access:
            case None:
                return
            case _BasicAccess(address=address):
                account = await self.execution.get_account(address, None, self.block)
                self.basic[address] = AccountInfo.from_account(account)
            case _StorageAccess(address=address, slot=slot):
                key = slot.to_bytes(32, "big")
                account = await self.execution.get_account(address, [key], self.block)
                self.storage.setdefault(address, {})[slot] = account.slots[key]
            case _BlockHashAccess(number=number):
                block = await self.execution.get_block(BlockTag("number", number), False)
                self.block_hash[number] = block.hash

    def needs_update(self) -> bool:
        return self.access is not None

    def get_basic(self, address: bytes) -> AccountInfo:
        account = self.basic.get(address)
        if account is None:
            self.access = _BasicAccess(address)
            raise StateMissing("state missing")
        return replace(account)

    def get_storage(self, address: bytes, slot: int) -> int:
        slots = self.storage.setdefault(address, {})
        if slot not in slots:
            self.access = _StorageAccess(address, slot)
            raise StateMissing("state missing")
        return slots[slot]

    def get_block_hash(self, number: int) -> bytes:
        if number not in self.block_hash:
            self.access = _BlockHashAccess(number)
            raise StateMissing("state missing")
        return self.block_hash[number]

    async def prefetch_state(self, opts: CallOpts) -> None:
        """Load every account a call is expected to touch, in parallel batches."""
        try:
            items = list(await self.execution.rpc.create_access_list(opts, self.block))
        except Exception as exc:
            raise EvmRpcError(exc) from exc

        coinbase = (await self.execution.get_block(self.block, False)).miner
        sender = opts.from_address if opts.from_address is not None else ZERO_ADDRESS
        target = opts.to if opts.to is not None else ZERO_ADDRESS
        listed = {item.address for item in items}
        items.extend(
            AccessListItem(address)
            for address in (sender, target, coinbase)
            if address not in listed
        )

        accounts: dict[bytes, Account] = {}
        for batch in _batches(items, PARALLEL_QUERY_BATCH_SIZE):
            results = await asyncio.gather(
                *(
                    self.execution.get_account(item.address, item.storage_keys, self.block)
                    for item in batch
                ),
                return_exceptions=True,
            )
            for item, result in zip(batch, results):
                if isinstance(result, Account):
                    accounts[item.address] = result
                elif not isinstance(result, Exception):
                    raise result
                else:
                    logger.debug(
                        "skipping account 0x%s: %s", item.address.hex(), result
                    )

        for address, account in accounts.items():
            self.basic[address] = AccountInfo.from_account(account)
            slots = self.storage.setdefault(address, {})
            for key, value in account.slots.items():
                slots[int.from_bytes(key, "big")] = value


class ProofDB:
    """State lookups for the EVM, answered only from verified data."""

    def __init__(self, tag: BlockTag, execution: ExecutionClient) -> None:
        self.execution = execution
        self.state = EvmState(execution, tag)

    def basic(self, address: bytes) -> AccountInfo:
        if is_precompile(address):
            return AccountInfo()
        logger.debug("fetch basic evm state for address=0x%s", address.hex())
        return self.state.get_basic(address)

    def block_hash(self, number: int) -> bytes:
        logger.debug("fetch block hash for block=%d", number)
        return self.state.get_block_hash(number)

    def storage(self, address: bytes, slot: int) -> int:
        logger.debug("fetch evm state for address=0x%s, slot=%d", address.hex(), slot)
        return self.state.get_storage(address, slot)

    def code_by_hash(self, code_hash: bytes) -> bytes:
        raise EvmGenericError("code is loaded with its account, never by hash")