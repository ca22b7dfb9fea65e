"""Recursive length prefix encoding."""

from __future__ import annotations

from typing import Union

Item = Union[bytes, list]


class RlpError(ValueError):
    """Malformed RLP data."""


def _length_prefix(length: int, offset: int) -> bytes:
    if length < 56:
        return bytes([offset + length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([offset + 55 + len(encoded)]) + encoded


def encode_uint(value: int) -> bytes:
    """Encode a non-negative integer as a minimal big-endian string."""
    if value < 0:
        raise ValueError("RLP cannot encode negative integers")
    if value == 0:
        return b"\x80"
    return encode(value.to_bytes((value.bit_length() + 7) // 8, "big"))


def encode(item) -> bytes:
    """Encode bytes, integers and (nested) lists."""
    if isinstance(item, bool):
        raise TypeError("cannot RLP-encode bool")
    if isinstance(item, int):
        return encode_uint(item)
    if isinstance(item, (bytes, bytearray, memoryview)):
        data = bytes(item)
        if len(data) == 1 and data[0] < 0x80:
            return data
        return _length_prefix(len(data), 0x80) + data
    if isinstance(item, (list, tuple)):
        payload = b"".join(encode(sub) for sub in item)
        return _length_prefix(len(payload), 0xC0) + payload
    raise TypeError(f"cannot RLP-encode {type(item).__name__}")


def _split(data: bytes, pos: int) -> tuple[bool, int, int]:
    """Return (is_list, payload_start, end) for the item at pos."""
    if pos >= len(data):
        raise RlpError("unexpected end of data")
    prefix = data[pos]
    if prefix < 0x80:
        return False, pos, pos + 1
    if prefix <= 0xB7:
        is_list, start, length = False, pos + 1, prefix - 0x80
    elif prefix <= 0xBF:
        size = prefix - 0xB7
        is_list, start = False, pos + 1 + size
        length = int.from_bytes(data[pos + 1 : start], "big")
    elif prefix <= 0xF7:
        is_list, start, length = True, pos + 1, prefix - 0xC0
    else:
        size = prefix - 0xF7
        is_list, start = True, pos + 1 + size
        length = int.from_bytes(data[pos + 1 : start], "big")
    end = start + length
    if start > len(data) or end > len(data):
        raise RlpError("item length exceeds data")
    return is_list, start, end


def _children(data: bytes, start: int, end: int):
    pos = start
    while pos < end:
        is_list, s, e = _split(data, pos)
        if e > end:
            raise RlpError("list item exceeds list bounds")
        yield is_list, pos, s, e
        pos = e


def _decode_at(data: bytes, pos: int) -> tuple[Item, int]:
    is_list, start, end = _split(data, pos)
    if not is_list:
        return data[start:end], end
    return [_decode_at(data, p)[0] for _, p, _, _ in _children(data, start, end)], end


def decode(data: bytes) -> Item:
    """Decode one complete RLP item into bytes and nested lists."""
    data = bytes(data)
    item, end = _decode_at(data, 0)
    if end != len(data):
        raise RlpError("trailing bytes after RLP item")
    return item


def decode_list(data: bytes) -> list[bytes]:
    """Decode a list into its items; nested lists are kept in encoded form."""
    data = bytes(data)
    is_list, start, end = _split(data, 0)
    if not is_list:
        raise RlpError("expected an RLP list")
    if end != len(data):
        raise RlpError("trailing bytes after RLP list")
    return [
        data[p:e] if sub_list else data[s:e]
        for sub_list, p, s, e in _children(data, start, end)
    ]