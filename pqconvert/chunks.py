"""Encoding of a day's chunks into the per-day chunk columns."""

from __future__ import annotations

import struct
from typing import Iterable, Sequence

from pqconvert.merge import ChunkMeta

CHUNK_COLUMNS_PER_DAY = 3
CHUNK_COLUMN_LENGTH_HOURS = 24 // CHUNK_COLUMNS_PER_DAY

# Chunk payloads hold plain big-endian (int64 timestamp, float64 value) pairs.
ENCODING_PLAIN = 1

_HEADER = struct.Struct(">IQQI")
_SAMPLE = struct.Struct(">qd")
_MILLIS_PER_HOUR = 3_600_000
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1


def zigzag_encode(value: int) -> int:
    """Map a signed 64-bit integer onto an unsigned one, small magnitudes first."""
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value {value} does not fit in 64 signed bits")
    return ((value << 1) ^ (value >> 63)) & _UINT64_MASK


def zigzag_decode(value: int) -> int:
    """Invert :func:`zigzag_encode`."""
    if not 0 <= value <= _UINT64_MASK:
        raise ValueError(f"value {value} does not fit in 64 unsigned bits")
    return (value >> 1) ^ -(value & 1)


def _column_index(min_time: int) -> int:
    hour = (min_time // _MILLIS_PER_HOUR) % 24
    return (hour // CHUNK_COLUMN_LENGTH_HOURS) % CHUNK_COLUMNS_PER_DAY


def _encode_payload(chunk: ChunkMeta) -> bytes:
    return b"".join(_SAMPLE.pack(t, v) for t, v in chunk.samples)


def collect_chunks(chunks: Iterable[ChunkMeta]) -> tuple[bytes, ...]:
    """Encode one day's chunks into one byte string per chunk column.

    Chunks are ordered by their start time and placed in the column that
    covers the UTC hour they start in; chunks without samples are dropped.
    """
    columns = [bytearray() for _ in range(CHUNK_COLUMNS_PER_DAY)]
    for chunk in sorted(chunks, key=lambda c: c.min_time):
        if chunk.num_samples == 0:
            continue
        payload = _encode_payload(chunk)
        column = columns[_column_index(chunk.min_time)]
        column += _HEADER.pack(
            ENCODING_PLAIN,
            zigzag_encode(chunk.min_time),
            zigzag_encode(chunk.max_time),
            len(payload),
        )
        column += payload
    return tuple(bytes(column) for column in columns)


def decode_chunk_column(data: bytes) -> list[ChunkMeta]:
    """Decode the chunks held in one chunk column."""
    chunks: list[ChunkMeta] = []
    view = memoryview(data)
    offset = 0
    while offset < len(view):
        if len(view) - offset < _HEADER.size:
            raise ValueError("truncated chunk header")
        encoding, min_zz, max_zz, length = _HEADER.unpack_from(view, offset)
        offset += _HEADER.size
        if encoding != ENCODING_PLAIN:
            raise ValueError(f"unknown chunk encoding {encoding}")
        if len(view) - offset < length:
            raise ValueError("truncated chunk payload")
        if length % _SAMPLE.size:
            raise ValueError("chunk payload is not a whole number of samples")
        payload = view[offset : offset + length]
        offset += length
        chunks.append(
            ChunkMeta(
                min_time=zigzag_decode(min_zz),
                max_time=zigzag_decode(max_zz),
                samples=tuple(_SAMPLE.iter_unpack(payload)),
            )
        )
    return chunks


def all_chunks_empty(columns: Sequence[bytes]) -> bool:
    """True if no chunk column holds any bytes."""
    return not any(columns)