# heliolite

heliolite is the execution layer of an Ethereum light client. It takes an
untrusted JSON-RPC endpoint and checks its answers against block headers you
already trust:

- account balances, nonces, code and storage slots are checked against the
  block's state root with Merkle-Patricia proofs;
- receipts are checked against the block's receipts root;
- logs are checked against proven receipts.

## Installation

```
pip install heliolite
```

With the test dependencies:

```
pip install "heliolite[test]"
```

## Overview

- `heliolite.state.State` stores a bounded history of trusted blocks. The
  default is 64, and the oldest block is dropped first. It also stores the
  latest finalized block. You fill it with `push_block` and
  `push_finalized_block`. You can also run `State.listen(block_queue,
  finalized_queue)`, which reads blocks from two `asyncio.Queue`s until it is
  cancelled. Lookups work by `BlockTag`, by block hash, by transaction hash, and
  by block hash plus index.
- `heliolite.execution.ExecutionClient(rpc, state)` joins a `State` to an RPC
  backend and checks each answer before returning it:
  - `get_account` verifies the account proof, every storage proof and the code
    hash.
  - `get_transaction_receipt` fetches every receipt of the block and rebuilds
    its receipts trie. It returns `None` when the RPC does not know the
    receipt, or when the receipt's block is not in the state.
  - `get_logs` and `get_filter_changes` prove each log through its receipt. A
    query may return at most 5 logs; if it returns more, the call raises
    `TooManyLogsToProve`. A filter with no end block is capped at the newest
    block in the state.
  - `get_block`, `get_block_by_hash`, `get_transaction` and
    `get_transaction_by_block_hash_and_index` answer from the state alone.
  - `check_rpc(chain_id)` raises `IncorrectRpcNetwork` if the endpoint serves a
    different chain.
- `heliolite.http_rpc.HttpRpc(url)` is an `ExecutionRpc` that talks to a node
  over HTTP with httpx. When it is rate limited it retries with exponential
  backoff. Close it with `aclose()`, or use it as an `async with` block.
- `heliolite.rpc.ExecutionRpc` is the abstract backend interface.
  `heliolite.rpc.MockRpc(path)` implements it from the JSON files in a
  directory: `proof.json`, `code.json`, `receipt.json`, `transaction.json`,
  `logs.json` and `fee_history.json`. Its other methods raise `RpcError`.
- `heliolite.evm_state` holds `ProofDB` and `EvmState`, which answer an EVM's
  state lookups (`basic`, `storage`, `block_hash`) from verified data only. A
  lookup that is not cached raises `StateMissing` and records what was missing.
  `EvmState.update_state()` then fetches and proves that entry.
  `EvmState.prefetch_state(opts)` loads the access list of a call in batches of
  20 accounts. Precompile addresses 0x01 to 0x09 return an empty account.
- `heliolite.proof` provides `verify_proof`, `keccak256` and `encode_account`.
  `heliolite.rlp` provides `encode`, `decode` and `decode_list`.
  `heliolite.types` provides `BlockTag`, `Block`, `Transaction`, `Receipt`,
  `Log`, `Filter`, `ProofResponse`, `Account`, `CallOpts` and the rest.
- `heliolite.errors` holds the exceptions. These include `InvalidAccountProof`,
  `InvalidStorageProof`, `CodeHashMismatch`, `ReceiptRootMismatch`,
  `BlockNotFoundError`, `RpcError` and the `EvmError` family.
  `decode_revert_reason` extracts the message from ABI-encoded revert data.

## Example

```python
from heliolite.execution import ExecutionClient
from heliolite.http_rpc import HttpRpc
from heliolite.state import State
from heliolite.types import BlockTag


async def balance(block, address):
    state = State(history_length=64)
    state.push_block(block)  # a header obtained from a trusted source
    async with HttpRpc("http://localhost:8545") as rpc:
        client = ExecutionClient(rpc, state)
        account = await client.get_account(address, None, BlockTag.LATEST)
        return account.balance
```

If the node returns data that does not match the trusted header, the call
raises an error from `heliolite.errors` and returns no data.

## What it does not do

- It does not follow the consensus layer. You supply the trusted blocks.
- It has no EVM interpreter. `ProofDB` supplies verified state to one, but
  heliolite does not execute calls or estimate gas itself.
- It has no command-line program, no local RPC server and no persistent
  storage. All state is kept in memory.