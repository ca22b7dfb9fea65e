import json
from pathlib import Path

import pytest

from heliolite import rlp
from heliolite.errors import (
    BlockNotFoundError,
    CodeHashMismatch,
    ExecutionError,
    IncorrectRpcNetwork,
    InvalidAccountProof,
    InvalidStorageProof,
    MissingLog,
    ReceiptRootMismatch,
    RpcError,
    TooManyLogsToProve,
)
from heliolite.execution import ExecutionClient, encode_receipt, ordered_trie_root
from heliolite.proof import keccak256, verify_proof
from heliolite.rpc import MockRpc
from heliolite.state import State
from heliolite.types import Block, BlockTag, Filter, Receipt, Transaction

EMPTY_ROOT = bytes.fromhex(
    "56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421"
)
TX_RAW = bytes.fromhex(
    "02f8b20583623355849502f900849502f91082ea6094326c977e6efc84e512bb9c30f76e30c160ed06fb"
    "80b844a9059cbb0000000000000000000000007daccf9b3c1ae2fa5c55f1c978aeef700bc83be00000"
    "000000000000000000000000000000000000000000001158e460913d00000c080a0e1445466b058b6f"
    "883c0222f1b1f3e2ad9bee7b5f688813d86e3fa8f93aa868ca0786d6e7f3aefa8fe73857c65c32e48"
    "84d8ba38d0ecfb947fbffb82e8ee80c167"
)
TX_HASH = bytes.fromhex("2dac1b27ab58b493f902dda8b63979a112398d747f1761c0891777c0983e591f")
BLOCK_HASH = bytes.fromhex("6663f197e991f5a0bb235f33ec554b9bd48c37b4f5002d7ac2abdfa99f86ac14")
BLOCK_NUMBER = 7530933
ADDRESS = bytes.fromhex("14f9D4aF749609c1438528C0Cce1cC3f6D411c47")

LOG_JSON = {
    "address": "0x326c977e6efc84e512bb9c30f76e30c160ed06fb",
    "topics": ["0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"],
    "data": "0x" + "00" * 31 + "01",
    "transactionHash": "0x" + TX_HASH.hex(),
    "logIndex": "0x0",
    "blockNumber": hex(BLOCK_NUMBER),
}


def _write(directory: Path, name: str, data) -> None:
    (directory / name).write_text(json.dumps(data))


def _leaf(key_hash: bytes, value: bytes) -> bytes:
    return rlp.encode([b"\x20" + key_hash, value])


def _write_proof(directory, address, *, balance, nonce=0, code=b"", slot=None):
    storage_hash = EMPTY_ROOT
    storage_proofs = []
    if slot is not None:
        key, value = slot
        node = _leaf(keccak256(key), rlp.encode(value))
        storage_hash = keccak256(node)
        storage_proofs = [
            {"key": "0x" + key.hex(), "value": hex(value), "proof": ["0x" + node.hex()]}
        ]
    code_hash = keccak256(code)
    account = rlp.encode([nonce, balance, storage_hash, code_hash])
    node = _leaf(keccak256(address), account)
    _write(
        directory,
        "proof.json",
        {
            "address": "0x" + address.hex(),
            "balance": hex(balance),
            "codeHash": "0x" + code_hash.hex(),
            "nonce": hex(nonce),
            "storageHash": "0x" + storage_hash.hex(),
            "accountProof": ["0x" + node.hex()],
            "storageProof": storage_proofs,
        },
    )
    _write(directory, "code.json", "0x" + code.hex())
    return keccak256(node)


def _client_with_root(directory, state_root):
    state = State(64)
    state.push_block(Block(state_root=state_root))
    return ExecutionClient(MockRpc(directory), state)


def _receipt_json(tx_type="0x2"):
    return {
        "transactionHash": "0x" + TX_HASH.hex(),
        "transactionIndex": "0x0",
        "blockHash": "0x" + BLOCK_HASH.hex(),
        "blockNumber": hex(BLOCK_NUMBER),
        "cumulativeGasUsed": "0xea60",
        "gasUsed": "0xea60",
        "logs": [LOG_JSON],
        "status": "0x1",
        "logsBloom": "0x" + "00" * 256,
        "type": tx_type,
    }


def _receipt_client(directory, *, valid_root=True, rpc_cls=MockRpc):
    receipt_data = _receipt_json()
    _write(directory, "receipt.json", receipt_data)
    _write(directory, "logs.json", [LOG_JSON])
    root = (
        ordered_trie_root([encode_receipt(Receipt.from_json(receipt_data))])
        if valid_root
        else b"\x00" * 32
    )
    block = Block(
        number=BLOCK_NUMBER,
        hash=BLOCK_HASH,
        receipts_root=root,
        transactions=[Transaction.decode(TX_RAW)],
    )
    state = State(64)
    state.push_block(block)
    return ExecutionClient(rpc_cls(directory), state)


class _RecordingRpc(MockRpc):
    def __init__(self, path):
        super().__init__(path)
        self.filters = []

    async def get_logs(self, log_filter):
        self.filters.append(log_filter)
        return await super().get_logs(log_filter)


class _ChainRpc(MockRpc):
    async def chain_id(self):
        return 1


def test_ordered_trie_root_of_nothing_is_empty_root():
    assert ordered_trie_root([]) == EMPTY_ROOT


def test_ordered_trie_root_single_item_verifies_as_leaf():
    item = b"receipt-bytes-long-enough-to-hash" * 2
    root = ordered_trie_root([item])
    leaf = rlp.encode([b"\x20\x80", item])
    assert root == keccak256(leaf)
    assert verify_proof([leaf], root, b"\x80", item)


def test_ordered_trie_root_depends_on_order():
    items = [bytes([n]) * 40 for n in range(1, 20)]
    root = ordered_trie_root(items)
    assert len(root) == 32
    assert root == ordered_trie_root(list(items))
    assert root != ordered_trie_root(list(reversed(items)))


def test_encode_receipt_legacy_and_typed():
    legacy = Receipt.from_json(_receipt_json("0x0"))
    typed = Receipt.from_json(_receipt_json("0x2"))
    legacy_bytes = encode_receipt(legacy)
    decoded = rlp.decode(legacy_bytes)
    assert decoded[0] == b"\x01"
    assert decoded[1] == (0xEA60).to_bytes(2, "big")
    assert decoded[2] == b"\x00" * 256
    assert len(decoded[3]) == 1
    assert encode_receipt(typed) == b"\x02" + legacy_bytes


def test_encode_receipt_needs_type():
    receipt = Receipt(transaction_hash=TX_HASH, status=1)
    with pytest.raises(ValueError):
        encode_receipt(receipt)


@pytest.mark.asyncio
async def test_get_account(tmp_path):
    root = _write_proof(tmp_path, ADDRESS, balance=0x48C27395000)
    execution = _client_with_root(tmp_path, root)
    account = await execution.get_account(ADDRESS, None, BlockTag.LATEST)
    assert account.balance == int("48c27395000", 16)
    assert account.code == b""


@pytest.mark.asyncio
async def test_get_account_bad_proof(tmp_path):
    _write_proof(tmp_path, ADDRESS, balance=0x48C27395000)
    execution = _client_with_root(tmp_path, b"\x00" * 32)
    with pytest.raises(InvalidAccountProof):
        await execution.get_account(ADDRESS, None, BlockTag.LATEST)


@pytest.mark.asyncio
async def test_get_account_without_block(tmp_path):
    _write_proof(tmp_path, ADDRESS, balance=1)
    execution = ExecutionClient(MockRpc(tmp_path), State(64))
    with pytest.raises(BlockNotFoundError):
        await execution.get_account(ADDRESS, None, BlockTag.LATEST)


@pytest.mark.asyncio
async def test_get_account_with_storage_and_code(tmp_path):
    key = (3).to_bytes(32, "big")
    root = _write_proof(
        tmp_path, ADDRESS, balance=7, nonce=2, code=b"\x60\x01", slot=(key, 5)
    )
    execution = _client_with_root(tmp_path, root)
    account = await execution.get_account(ADDRESS, [key], BlockTag.LATEST)
    assert account.slots == {key: 5}
    assert account.code == b"\x60\x01"
    assert account.nonce == 2


@pytest.mark.asyncio
async def test_get_account_bad_storage_proof(tmp_path):
    key = (3).to_bytes(32, "big")
    root = _write_proof(tmp_path, ADDRESS, balance=7, slot=(key, 5))
    proof = json.loads((tmp_path / "proof.json").read_text())
    proof["storageProof"][0]["value"] = "0x6"
    _write(tmp_path, "proof.json", proof)
    execution = _client_with_root(tmp_path, root)
    with pytest.raises(InvalidStorageProof):
        await execution.get_account(ADDRESS, [key], BlockTag.LATEST)


@pytest.mark.asyncio
async def test_get_account_code_hash_mismatch(tmp_path):
    root = _write_proof(tmp_path, ADDRESS, balance=7, code=b"\x60\x01")
    _write(tmp_path, "code.json", "0x6002")
    execution = _client_with_root(tmp_path, root)
    with pytest.raises(CodeHashMismatch):
        await execution.get_account(ADDRESS, None, BlockTag.LATEST)


@pytest.mark.asyncio
async def test_get_tx(tmp_path):
    state = State(64)
    tx = Transaction.decode(TX_RAW)
    state.push_block(Block(transactions=[tx]))
    execution = ExecutionClient(MockRpc(tmp_path), state)
    found = await execution.get_transaction(tx.hash)
    assert found.hash == TX_HASH


@pytest.mark.asyncio
async def test_get_tx_not_included(tmp_path):
    state = State(64)
    state.push_block(Block())
    execution = ExecutionClient(MockRpc(tmp_path), state)
    assert await execution.get_transaction(TX_HASH) is None


@pytest.mark.asyncio
async def test_get_logs(tmp_path):
    execution = _receipt_client(tmp_path)
    logs = await execution.get_logs(Filter())
    assert len(logs) == 1
    assert logs[0].transaction_hash == TX_HASH


@pytest.mark.asyncio
async def test_get_logs_bounds_open_filter(tmp_path):
    execution = _receipt_client(tmp_path, rpc_cls=_RecordingRpc)
    original = Filter()
    await execution.get_logs(original)
    sent = execution.rpc.filters[0]
    assert sent.to_block == BlockTag("number", BLOCK_NUMBER)
    assert sent.from_block == BlockTag("number", BLOCK_NUMBER)
    assert original.to_block is None


@pytest.mark.asyncio
async def test_get_logs_keeps_explicit_range(tmp_path):
    execution = _receipt_client(tmp_path, rpc_cls=_RecordingRpc)
    explicit = Filter(from_block=BlockTag("number", 1), to_block=BlockTag("number", 5))
    await execution.get_logs(explicit)
    assert execution.rpc.filters[0] == explicit


@pytest.mark.asyncio
async def test_get_logs_too_many(tmp_path):
    execution = _receipt_client(tmp_path)
    _write(tmp_path, "logs.json", [LOG_JSON] * 6)
    with pytest.raises(TooManyLogsToProve):
        await execution.get_logs(Filter())


@pytest.mark.asyncio
async def test_get_logs_missing_from_receipt(tmp_path):
    execution = _receipt_client(tmp_path)
    _write(tmp_path, "logs.json", [dict(LOG_JSON, data="0x02")])
    with pytest.raises(MissingLog):
        await execution.get_logs(Filter())


@pytest.mark.asyncio
async def test_get_logs_without_tx_hash(tmp_path):
    execution = _receipt_client(tmp_path)
    entry = {k: v for k, v in LOG_JSON.items() if k != "transactionHash"}
    _write(tmp_path, "logs.json", [entry])
    with pytest.raises(ExecutionError):
        await execution.get_logs(Filter())


@pytest.mark.asyncio
async def test_get_filter_changes(tmp_path):
    execution = _receipt_client(tmp_path)
    logs = await execution.get_filter_changes(1)
    assert [log.transaction_hash for log in logs] == [TX_HASH]


@pytest.mark.asyncio
async def test_get_new_filter_unsupported_by_mock(tmp_path):
    execution = _receipt_client(tmp_path)
    with pytest.raises(RpcError):
        await execution.get_new_filter(Filter())


@pytest.mark.asyncio
async def test_get_receipt(tmp_path):
    execution = _receipt_client(tmp_path)
    receipt = await execution.get_transaction_receipt(TX_HASH)
    assert receipt.transaction_hash == TX_HASH


@pytest.mark.asyncio
async def test_get_receipt_bad_proof(tmp_path):
    execution = _receipt_client(tmp_path, valid_root=False)
    with pytest.raises(ReceiptRootMismatch):
        await execution.get_transaction_receipt(TX_HASH)


@pytest.mark.asyncio
async def test_get_receipt_not_included(tmp_path):
    _write(tmp_path, "receipt.json", _receipt_json())
    execution = ExecutionClient(MockRpc(tmp_path), State(64))
    assert await execution.get_transaction_receipt(TX_HASH) is None


@pytest.mark.asyncio
async def test_get_receipt_unknown(tmp_path):
    _write(tmp_path, "receipt.json", None)
    execution = ExecutionClient(MockRpc(tmp_path), State(64))
    assert await execution.get_transaction_receipt(TX_HASH) is None


@pytest.mark.asyncio
async def test_get_block(tmp_path):
    state = State(64)
    state.push_block(Block(number=12345))
    execution = ExecutionClient(MockRpc(tmp_path), state)
    block = await execution.get_block(BlockTag.LATEST, False)
    assert block.number == 12345


@pytest.mark.asyncio
async def test_get_block_hashes_or_full(tmp_path):
    execution = _receipt_client(tmp_path)
    short = await execution.get_block(BlockTag("number", BLOCK_NUMBER), False)
    full = await execution.get_block(BlockTag("number", BLOCK_NUMBER), True)
    assert short.transactions == [TX_HASH]
    assert full.transactions[0].hash == TX_HASH


@pytest.mark.asyncio
async def test_get_block_missing(tmp_path):
    execution = ExecutionClient(MockRpc(tmp_path), State(64))
    with pytest.raises(BlockNotFoundError):
        await execution.get_block(BlockTag.LATEST, False)


@pytest.mark.asyncio
async def test_get_block_by_hash(tmp_path):
    execution = _receipt_client(tmp_path)
    block = await execution.get_block_by_hash(BLOCK_HASH, False)
    assert block.number == BLOCK_NUMBER
    with pytest.raises(BlockNotFoundError):
        await execution.get_block_by_hash(b"\x01" * 32, False)


@pytest.mark.asyncio
async def test_get_tx_by_block_hash_and_index(tmp_path):
    execution = _receipt_client(tmp_path)
    tx = await execution.get_transaction_by_block_hash_and_index(BLOCK_HASH, 0)
    assert tx.hash == TX_HASH
    assert await execution.get_transaction_by_block_hash_and_index(BLOCK_HASH, 1) is None


@pytest.mark.asyncio
async def test_check_rpc(tmp_path):
    execution = ExecutionClient(_ChainRpc(tmp_path), State(64))
    assert await execution.check_rpc(1) is None
    with pytest.raises(IncorrectRpcNetwork):
        await execution.check_rpc(5)