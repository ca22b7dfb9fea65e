"""In-memory store of recent verified blocks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from .types import Block, BlockTag, Transaction


@dataclass(frozen=True)
class _TxLocation:
    block: int
    index: int


class State:
    """Keeps the last history_length blocks and the latest finalized block."""

    def __init__(self, history_length: int = 64) -> None:
        self.history_length = history_length
        self._blocks: dict[int, Block] = {}
        self._finalized: Block | None = None
        self._hashes: dict[bytes, int] = {}
        self._txs: dict[bytes, _TxLocation] = {}

    def push_block(self, block: Block) -> None:
        self._hashes[block.hash] = block.number
        for i, tx_hash in enumerate(block.transaction_hashes()):
            self._txs[tx_hash] = _TxLocation(block.number, i)
        self._blocks[block.number] = block
        while len(self._blocks) > self.history_length:
            self._remove_block(min(self._blocks))

    def push_finalized_block(self, block: Block) -> None:
        self._finalized = block
        old = self._blocks.get(block.number)
        if old is None:
            self.push_block(block)
        elif old.hash != block.hash:
            self._remove_block(old.number)
            self.push_block(block)

    def _remove_block(self, number: int) -> None:
        block = self._blocks.pop(number, None)
        if block is None:
            return
        self._hashes.pop(block.hash, None)
        for tx_hash in block.transaction_hashes():
            self._txs.pop(tx_hash, None)

    def get_block(self, tag: BlockTag) -> Block | None:
        if tag.kind == "latest":
            return self._blocks[max(self._blocks)] if self._blocks else None
        if tag.kind == "finalized":
            return self._finalized
        return self._blocks.get(tag.number)

    def get_block_by_hash(self, block_hash: bytes) -> Block | None:
        number = self._hashes.get(block_hash)
        return None if number is None else self._blocks.get(number)

    @staticmethod
    def _tx_at(block: Block | None, index: int) -> Transaction | None:
        if block is None or not 0 <= index < len(block.transactions):
            return None
        tx = block.transactions[index]
        return tx if isinstance(tx, Transaction) else None

    def get_transaction(self, tx_hash: bytes) -> Transaction | None:
        loc = self._txs.get(tx_hash)
        return None if loc is None else self._tx_at(self._blocks.get(loc.block), loc.index)

    def get_transaction_by_block_and_index(
        self, block_hash: bytes, index: int
    ) -> Transaction | None:
        return self._tx_at(self.get_block_by_hash(block_hash), index)

    def get_state_root(self, tag: BlockTag) -> bytes | None:
        block = self.get_block(tag)
        return None if block is None else block.state_root

    def get_receipts_root(self, tag: BlockTag) -> bytes | None:
        block = self.get_block(tag)
        return None if block is None else block.receipts_root

    def get_base_fee(self, tag: BlockTag) -> int | None:
        block = self.get_block(tag)
        return None if block is None else block.base_fee_per_gas

    def get_coinbase(self, tag: BlockTag) -> bytes | None:
        block = self.get_block(tag)
        return None if block is None else block.miner

    def latest_block_number(self) -> int | None:
        return max(self._blocks) if self._blocks else None

    def oldest_block_number(self) -> int | None:
        return min(self._blocks) if self._blocks else None

    async def listen(
        self, block_queue: asyncio.Queue, finalized_queue: asyncio.Queue
    ) -> None:
        """Feed blocks from the two queues into the state until cancelled."""
        block_get: asyncio.Future | None = None
        final_get: asyncio.Future | None = None
        try:
            while True:
                if block_get is None:
                    block_get = asyncio.ensure_future(block_queue.get())
                if final_get is None:
                    final_get = asyncio.ensure_future(finalized_queue.get())
                done, _ = await asyncio.wait(
                    {block_get, final_get}, return_when=asyncio.FIRST_COMPLETED
                )
                if block_get in done:
                    block = block_get.result()
                    block_get = None
                    if block is not None:
                        self.push_block(block)
                    block_queue.task_done()
                if final_get in done:
                    block = final_get.result()
                    final_get = None
                    if block is not None:
                        self.push_finalized_block(block)
                    finalized_queue.task_done()
        finally:
            for pending in (block_get, final_get):
                if pending is not None:
                    pending.cancel()