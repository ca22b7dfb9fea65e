"""Proof-verifying execution layer for an Ethereum light client: block state, RLP, Merkle-Patricia proofs, RPC backends and verified queries."""

__version__ = "0.1.0"