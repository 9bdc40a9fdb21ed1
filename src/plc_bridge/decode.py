"""Decode raw Modbus words and bits into typed tag values."""

import struct
from collections.abc import Sequence

from .types import DataType, TagDef, Value


def to_int16(word: int) -> int:
    """Two's-complement interpretation of a 16-bit word."""
    word &= 0xFFFF
    return word - 0x10000 if word >= 0x8000 else word


def to_float32(high: int, low: int) -> float:
    """IEEE-754 single from two words, big-endian word order (first word is the high half)."""
    return struct.unpack(">f", struct.pack(">HH", high & 0xFFFF, low & 0xFFFF))[0]


def encode_float32(value: float) -> tuple[int, int]:
    """Split a float into (high, low) words; inverse of to_float32."""
    high, low = struct.unpack(">HH", struct.pack(">f", value))
    return high, low


def decode_register(tag: TagDef, registers: Sequence[int], offset: int) -> Value:
    """
    Decode the tag at ``offset`` within a bulk register response.

    Raises IndexError if the response is too short for the tag's width.
    """
    word = int(registers[offset])
    if tag.data_type == DataType.FLOAT32:
        return to_float32(word, int(registers[offset + 1]))
    if tag.data_type == DataType.INT16:
        return to_int16(word)
    if tag.data_type == DataType.BOOL:
        return word != 0
    return word & 0xFFFF


def decode_bit(bits: Sequence[bool], offset: int) -> bool:
    """Decode a coil/discrete tag at ``offset`` within a bulk bit response."""
    return bool(bits[offset])
