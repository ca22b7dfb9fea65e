"""Execution RPC backed by an HTTP JSON-RPC endpoint."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Sequence
from typing import Any

import httpx

from .errors import RpcError
from .rpc import ExecutionRpc, _fee_history_from_json, _quantity
from .types import (
    ZERO_ADDRESS,
    AccessListItem,
    BlockTag,
    CallOpts,
    Filter,
    Log,
    ProofResponse,
    Receipt,
    Transaction,
)

_DEFAULT_CALL_GAS = 100_000_000
_MAX_BACKOFF_SECONDS = 10.0
_RATE_LIMIT_CODES = {429, -32005, -32016}


def _hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _to_bytes(value: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    if len(text) % 2:
        text = "0" + text
    return bytes.fromhex(text)


def _topic_json(topic: Any) -> Any:
    if topic is None:
        return None
    if isinstance(topic, (list, tuple)):
        return [_hex(t) for t in topic]
    return _hex(topic)


def _filter_json(log_filter: Filter) -> dict:
    out: dict[str, Any] = {}
    if log_filter.block_hash is not None:
        out["blockHash"] = _hex(log_filter.block_hash)
    else:
        if log_filter.from_block is not None:
            out["fromBlock"] = str(log_filter.from_block)
        if log_filter.to_block is not None:
            out["toBlock"] = str(log_filter.to_block)
    if log_filter.address:
        addresses = [_hex(a) for a in log_filter.address]
        out["address"] = addresses[0] if len(addresses) == 1 else addresses
    if log_filter.topics:
        out["topics"] = [_topic_json(t) for t in log_filter.topics]
    return out


def _is_rate_limited(error: dict) -> bool:
    if error.get("code") in _RATE_LIMIT_CODES:
        return True
    return "rate limit" in str(error.get("message", "")).lower()


class HttpRpc(ExecutionRpc):
    """JSON-RPC over HTTP with retries on rate limiting."""

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 100,
        initial_backoff_ms: int = 50,
        timeout: float = 30.0,
    ) -> None:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid rpc url: {url!r}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValueError(f"invalid rpc url: {url!r}")
        self.url = url
        self.max_retries = max_retries
        self.initial_backoff_ms = initial_backoff_ms
        self._client = httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "HttpRpc":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    def _backoff(self, attempt: int) -> float:
        return min(self.initial_backoff_ms * (2**attempt) / 1000, _MAX_BACKOFF_SECONDS)

    async def _request(self, label: str, method: str, params: list) -> Any:
        for attempt in range(self.max_retries + 1):
            payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
            try:
                response = await self._client.post(self.url, json=payload)
            except httpx.HTTPError as exc:
                raise RpcError(label, exc) from exc
            retry_left = attempt < self.max_retries
            if response.status_code == 429 and retry_left:
                await asyncio.sleep(self._backoff(attempt))
                continue
            try:
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPStatusError, ValueError) as exc:
                raise RpcError(label, exc) from exc
            if not isinstance(body, dict):
                raise RpcError(label, f"malformed response: {body!r}")
            error = body.get("error")
            if error is not None:
                if isinstance(error, dict) and _is_rate_limited(error) and retry_left:
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                if isinstance(error, dict):
                    raise RpcError(label, f"({error.get('code')}) {error.get('message')}")
                raise RpcError(label, error)
            return body.get("result")
        raise RpcError(label, "rate limited")

    async def get_proof(
        self, address: bytes, slots: Sequence[bytes], block: int
    ) -> ProofResponse:
        result = await self._request(
            "get_proof", "eth_getProof", [_hex(address), [_hex(s) for s in slots], hex(block)]
        )
        return ProofResponse.from_json(result)

    async def create_access_list(
        self, opts: CallOpts, block: BlockTag
    ) -> list[AccessListItem]:
        tx: dict[str, str] = {
            "type": "0x2",
            "to": _hex(opts.to if opts.to is not None else ZERO_ADDRESS),
            "gas": hex(opts.gas if opts.gas is not None else _DEFAULT_CALL_GAS),
            "maxFeePerGas": "0x0",
            "maxPriorityFeePerGas": "0x0",
        }
        if opts.from_address is not None:
            tx["from"] = _hex(opts.from_address)
        if opts.value is not None:
            tx["value"] = hex(opts.value)
        if opts.data is not None:
            tx["data"] = _hex(opts.data)
        result = await self._request(
            "create_access_list", "eth_createAccessList", [tx, str(block)]
        )
        if not isinstance(result, dict):
            raise RpcError("create_access_list", f"malformed result: {result!r}")
        return [AccessListItem.from_json(item) for item in result.get("accessList") or []]

    async def get_code(self, address: bytes, block: int) -> bytes:
        result = await self._request("get_code", "eth_getCode", [_hex(address), hex(block)])
        return _to_bytes(result)

    async def send_raw_transaction(self, data: bytes) -> bytes:
        result = await self._request(
            "send_raw_transaction", "eth_sendRawTransaction", [_hex(data)]
        )
        return _to_bytes(result)

    async def get_transaction_receipt(self, tx_hash: bytes) -> Receipt | None:
        result = await self._request(
            "get_transaction_receipt", "eth_getTransactionReceipt", [_hex(tx_hash)]
        )
        return None if result is None else Receipt.from_json(result)

    async def get_transaction(self, tx_hash: bytes) -> Transaction | None:
        result = await self._request(
            "get_transaction", "eth_getTransactionByHash", [_hex(tx_hash)]
        )
        return None if result is None else Transaction.from_json(result)

    async def get_logs(self, log_filter: Filter) -> list[Log]:
        result = await self._request("get_logs", "eth_getLogs", [_filter_json(log_filter)])
        return [Log.from_json(entry) for entry in result or []]

    async def get_filter_changes(self, filter_id: int) -> list[Log]:
        result = await self._request(
            "get_filter_changes", "eth_getFilterChanges", [hex(filter_id)]
        )
        return [Log.from_json(entry) for entry in result or []]

    async def uninstall_filter(self, filter_id: int) -> bool:
        result = await self._request(
            "uninstall_filter", "eth_uninstallFilter", [hex(filter_id)]
        )
        return bool(result)

    async def get_new_filter(self, log_filter: Filter) -> int:
        result = await self._request(
            "get_new_filter", "eth_newFilter", [_filter_json(log_filter)]
        )
        return _quantity(result)

    async def get_new_block_filter(self) -> int:
        result = await self._request("get_new_block_filter", "eth_newBlockFilter", [])
        return _quantity(result)

    async def get_new_pending_transaction_filter(self) -> int:
        result = await self._request(
            "get_new_pending_transactions", "eth_newPendingTransactionFilter", []
        )
        return _quantity(result)

    async def chain_id(self) -> int:
        result = await self._request("chain_id", "eth_chainId", [])
        return _quantity(result)

    async def get_fee_history(
        self, block_count: int, last_block: int, reward_percentiles: Sequence[float]
    ) -> dict:
        result = await self._request(
            "fee_history",
            "eth_feeHistory",
            [hex(block_count), hex(last_block), list(reward_percentiles)],
        )
        if not isinstance(result, dict):
            raise RpcError("fee_history", f"malformed result: {result!r}")
        return _fee_history_from_json(result)