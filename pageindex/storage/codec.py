"""Binary and per-record encodings for embedding vectors.

Bulk layout: an 8-byte big-endian header ``(count: uint32, dimension: uint32)``
followed by ``count * dimension`` big-endian float32 values, one vector after
another.
"""

from __future__ import annotations

import struct
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..errors import DecodeError

HEADER = struct.Struct(">II")
FLOAT_DTYPE = np.dtype(">f4")
DEFAULT_DIMENSION = 384


def encode_vectors(vectors: Sequence[Sequence[float]], *, dimension: int = DEFAULT_DIMENSION) -> bytes:
    """Serialise equal-length vectors into the bulk binary layout.

    ``dimension`` is only used for the header of an empty list; otherwise the
    vectors' own length is written.
    """
    if not vectors:
        return HEADER.pack(0, dimension)
    matrix = _as_matrix(vectors)
    count, width = matrix.shape
    return HEADER.pack(count, width) + matrix.astype(FLOAT_DTYPE).tobytes()


def decode_vectors(data: bytes) -> List[np.ndarray]:
    """Parse the bulk binary layout back into float32 vectors."""
    if len(data) < HEADER.size:
        raise DecodeError(f"Vector data too short for header: {len(data)} bytes")
    count, dimension = HEADER.unpack_from(data, 0)
    expected = HEADER.size + count * dimension * FLOAT_DTYPE.itemsize
    if len(data) != expected:
        raise DecodeError(
            f"Vector data length mismatch: header declares {count}x{dimension} "
            f"({expected} bytes), got {len(data)} bytes"
        )
    if count == 0:
        return []
    values = np.frombuffer(data, dtype=FLOAT_DTYPE, offset=HEADER.size)
    matrix = values.reshape(count, dimension).astype(np.float32)
    return [row.copy() for row in matrix]


def encode_record(
    vector: Sequence[float],
    *,
    chunk_index: int,
    page_id: str,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """Return the JSON-ready record used to persist a single chunk vector."""
    return {
        "embedding": [float(value) for value in np.asarray(vector, dtype=np.float32)],
        "chunkIndex": chunk_index,
        "pageId": page_id,
        "timestamp": timestamp if timestamp is not None else int(time.time() * 1000),
    }


def decode_record(payload: Mapping[str, Any]) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Parse a per-chunk record into ``(vector, metadata)``.

    ``embedding`` may be a list or a mapping keyed by stringified positions, which
    is how typed arrays end up after a naive JSON round trip.
    """
    if not isinstance(payload, Mapping):
        raise DecodeError(f"Embedding record must be a mapping, got {type(payload).__name__}")
    raw = payload.get("embedding")
    if isinstance(raw, list):
        values = raw
    elif isinstance(raw, Mapping):
        try:
            positions = {int(key): value for key, value in raw.items()}
        except (TypeError, ValueError) as exc:
            raise DecodeError("Embedding mapping keys must be integer positions") from exc
        if len(positions) != len(raw) or set(positions) != set(range(len(positions))):
            raise DecodeError(
                f"Embedding mapping keys must be exactly 0..{len(raw) - 1}, got {sorted(positions)}"
            )
        values = [positions[index] for index in range(len(positions))]
    else:
        raise DecodeError(f"Invalid embedding data type: {type(raw).__name__}")
    try:
        vector = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Embedding values are not numeric: {exc}") from exc
    if vector.ndim != 1:
        raise DecodeError("Embedding must be a flat list of numbers")
    metadata = {key: value for key, value in payload.items() if key != "embedding"}
    return vector, metadata


def _as_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    lengths = {len(vector) for vector in vectors}
    if len(lengths) != 1:
        raise ValueError(f"All vectors must share one dimension, got {sorted(lengths)}")
    return np.asarray([np.asarray(vector, dtype=np.float32) for vector in vectors], dtype=np.float32)


__all__ = [
    "DEFAULT_DIMENSION",
    "decode_record",
    "decode_vectors",
    "encode_record",
    "encode_vectors",
]
