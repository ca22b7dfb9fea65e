"""Merkle-Patricia proof verification."""

from __future__ import annotations

from collections.abc import Sequence

from Crypto.Hash import keccak

from . import rlp

_EMPTY_STORAGE_HASH = bytes.fromhex(
    "56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421"
)
_EMPTY_CODE_HASH = bytes.fromhex(
    "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
)
_EMPTY_ACCOUNT = rlp.encode([b"", b"", _EMPTY_STORAGE_HASH, _EMPTY_CODE_HASH])


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest of data."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def _nibble(path: bytes, offset: int) -> int:
    byte = path[offset // 2]
    return byte >> 4 if offset % 2 == 0 else byte & 0xF


def _skip_length(node: bytes) -> int:
    if not node:
        return 0
    return {0: 2, 1: 1, 2: 2, 3: 1}.get(_nibble(node, 0), 0)


def _paths_match(p1: bytes, s1: int, p2: bytes, s2: int) -> bool:
    len1 = len(p1) * 2 - s1
    len2 = len(p2) * 2 - s2
    if len1 != len2:
        return False
    return all(_nibble(p1, s1 + i) == _nibble(p2, s2 + i) for i in range(len1))


def _is_empty_value(value: bytes) -> bool:
    return value == b"\x80" or value == _EMPTY_ACCOUNT


def shared_prefix_length(path: bytes, path_offset: int, node_path: bytes) -> int:
    """Number of nibbles path (from path_offset) shares with a node's path."""
    skip = _skip_length(node_path)
    length = min(len(node_path) * 2 - skip, len(path) * 2 - path_offset)
    prefix = 0
    for i in range(length):
        if _nibble(path, i + path_offset) != _nibble(node_path, i + skip):
            break
        prefix += 1
    return prefix


def verify_proof(
    proof: Sequence[bytes], root: bytes, path: bytes, value: bytes
) -> bool:
    """Check an inclusion or exclusion proof of value at path under root."""
    expected = bytes(root)
    offset = 0
    last = len(proof) - 1
    for i, node in enumerate(proof):
        node = bytes(node)
        if expected != keccak256(node):
            return False
        items = rlp.decode_list(node)
        if len(items) == 17:
            child = items[_nibble(path, offset)]
            if i == last:
                if not child and _is_empty_value(value):
                    return True
            else:
                expected = child
                offset += 1
        elif len(items) == 2:
            node_path = items[0]
            skip = _skip_length(node_path)
            if i == last:
                matches = _paths_match(node_path, skip, path, offset)
                if not matches and _is_empty_value(value):
                    return True
                if items[1] == value:
                    return matches
            else:
                prefix = shared_prefix_length(path, offset, node_path)
                if prefix < len(node_path) * 2 - skip:
                    return False
                offset += prefix
                expected = items[1]
        else:
            return False
    return False


def encode_account(proof) -> bytes:
    """RLP encoding of the account described by a proof response."""
    return rlp.encode([proof.nonce, proof.balance, proof.storage_hash, proof.code_hash])