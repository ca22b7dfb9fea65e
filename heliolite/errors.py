"""Errors raised while verifying execution-layer data."""

from __future__ import annotations


def _fmt(value: object) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


class ExecutionError(Exception):
    """Base class for execution verification failures."""


class InvalidAccountProof(ExecutionError):
    def __init__(self, address: bytes) -> None:
        self.address = address
        super().__init__(f"invalid account proof for address: {_fmt(address)}")


class InvalidStorageProof(ExecutionError):
    def __init__(self, address: bytes, slot: bytes) -> None:
        self.address = address
        self.slot = slot
        super().__init__(
            f"invalid storage proof for address: {_fmt(address)}, slot: {_fmt(slot)}"
        )


class CodeHashMismatch(ExecutionError):
    def __init__(self, address: bytes, found: str, expected: str) -> None:
        self.address = address
        self.found = found
        self.expected = expected
        super().__init__(
            f"code hash mismatch for address: {_fmt(address)}, "
            f"found: {found}, expected: {expected}"
        )


class ReceiptRootMismatch(ExecutionError):
    def __init__(self, tx: str) -> None:
        self.tx = tx
        super().__init__(f"receipt root mismatch for tx: {tx}")


class MissingTransaction(ExecutionError):
    def __init__(self, tx: str) -> None:
        self.tx = tx
        super().__init__(f"missing transaction for tx: {tx}")


class NoReceiptForTransaction(ExecutionError):
    def __init__(self, tx: str) -> None:
        self.tx = tx
        super().__init__(f"could not prove receipt for tx: {tx}")


class MissingLog(ExecutionError):
    def __init__(self, tx: str, index: int) -> None:
        self.tx = tx
        self.index = index
        super().__init__(f"missing log for transaction: {tx}, index: {index}")


class TooManyLogsToProve(ExecutionError):
    def __init__(self, count: int, limit: int) -> None:
        self.count = count
        self.limit = limit
        super().__init__(f"too many logs to prove: {count}, current limit is: {limit}")


class IncorrectRpcNetwork(ExecutionError):
    def __init__(self) -> None:
        super().__init__("execution rpc is for the incorect network")


class InvalidBaseGasFee(ExecutionError):
    def __init__(self, ours: int, theirs: int, block: int) -> None:
        self.ours, self.theirs, self.block = ours, theirs, block
        super().__init__(
            f"Invalid base gas fee helios {ours} vs rpc endpoint {theirs} at block {block}"
        )


class InvalidGasUsedRatio(ExecutionError):
    def __init__(self, ours: float, theirs: float, block: int) -> None:
        self.ours, self.theirs, self.block = ours, theirs, block
        super().__init__(
            f"Invalid gas used ratio of helios {ours} vs rpc endpoint {theirs} at block {block}"
        )


class BlockNotFoundError(ExecutionError):
    def __init__(self, block: object) -> None:
        self.block = block
        super().__init__(f"Block {block} not found")


class EmptyExecutionPayload(ExecutionError):
    def __init__(self) -> None:
        super().__init__("Helios Execution Payload is empty")


class InvalidBlockRange(ExecutionError):
    def __init__(self, requested: int, oldest: int) -> None:
        self.requested = requested
        self.oldest = oldest
        super().__init__(
            f"User query for block {requested} but helios oldest block is {oldest}"
        )


class RpcError(Exception):
    """A call to a remote RPC endpoint failed."""

    def __init__(self, method: str, cause: object) -> None:
        self.method = method
        self.cause = cause
        super().__init__(f"{method} rpc error: {cause}")


class EvmError(Exception):
    """Base class for errors raised while running a call."""


class EvmRevert(EvmError):
    def __init__(self, data: bytes | None = None) -> None:
        self.data = data
        shown = "None" if data is None else f"Some(0x{data.hex()})"
        super().__init__(f"execution reverted: {shown}")

    @property
    def reason(self) -> str | None:
        return None if self.data is None else decode_revert_reason(self.data)


class EvmGenericError(EvmError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"evm error: {message!r}")


class EvmRpcError(EvmError):
    def __init__(self, cause: object) -> None:
        self.cause = cause
        super().__init__(f"rpc error: {cause!r}")


def decode_revert_reason(data: bytes) -> str | None:
    """Decode an ABI-encoded revert string, skipping the 4-byte selector."""
    data = bytes(data)
    if len(data) < 4:
        return None
    body = data[4:]
    if len(body) < 64:
        return None
    offset = int.from_bytes(body[:32], "big")
    if offset + 32 > len(body):
        return None
    length = int.from_bytes(body[offset : offset + 32], "big")
    start = offset + 32
    if start + length > len(body):
        return None
    try:
        return body[start : start + length].decode("utf-8")
    except UnicodeDecodeError:
        return None