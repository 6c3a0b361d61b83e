"""Binary float32 vector encoding for the embeddings table."""

from __future__ import annotations

import struct

from sqlite_vec import serialize_float32


def encode_vector(vector: list[float]) -> bytes:
    """Pack *vector* as little-endian float32 (the sqlite-vec wire format)."""
    if not vector:
        raise ValueError("cannot encode an empty vector")
    return serialize_float32(vector)


def decode_vector(blob: bytes, dim: int | None = None) -> list[float]:
    """Unpack a float32 BLOB written by encode_vector().

    Args:
        blob: Raw bytes from the ``embeddings.vector`` column.
        dim: Expected dimension; derived from the blob length when omitted.

    Raises:
        ValueError: If the blob length does not match *dim*.
    """
    count = len(blob) // 4
    if dim is not None and dim != count:
        raise ValueError(f"vector blob holds {count} floats, expected {dim}")
    return list(struct.unpack(f"<{count}f", blob))
