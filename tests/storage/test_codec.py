"""Tests for the binary vector layout and per-chunk records."""

from __future__ import annotations

import struct

import numpy as np
import pytest

from pageindex.errors import DecodeError
from pageindex.storage import decode_record, decode_vectors, encode_record, encode_vectors


def test_encode_writes_big_endian_header_and_values() -> None:
    data = encode_vectors([[1.0, 2.0], [3.0, -0.5]])

    assert data[:8] == b"\x00\x00\x00\x02\x00\x00\x00\x02"
    assert data[8:12] == b"\x3f\x80\x00\x00"
    assert len(data) == 8 + 4 * 4
    assert struct.unpack(">4f", data[8:]) == (1.0, 2.0, 3.0, -0.5)


def test_round_trip_preserves_float32_values() -> None:
    rng = np.random.default_rng(7)
    vectors = [rng.standard_normal(384).astype(np.float32) for _ in range(3)]

    decoded = decode_vectors(encode_vectors(vectors))

    assert len(decoded) == 3
    for original, restored in zip(vectors, decoded):
        assert restored.dtype == np.float32
        np.testing.assert_array_equal(original, restored)


def test_empty_list_encodes_header_only() -> None:
    data = encode_vectors([])

    assert data == struct.pack(">II", 0, 384)
    assert decode_vectors(data) == []


def test_ragged_vectors_are_rejected() -> None:
    with pytest.raises(ValueError, match="share one dimension"):
        encode_vectors([[1.0, 2.0], [3.0]])


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x00\x00\x00\x01",
        struct.pack(">II", 2, 2) + b"\x00" * 12,
        struct.pack(">II", 1, 1) + b"\x00" * 8,
    ],
)
def test_decode_rejects_truncated_or_padded_data(data: bytes) -> None:
    with pytest.raises(DecodeError):
        decode_vectors(data)


def test_record_carries_vector_and_metadata() -> None:
    record = encode_record([0.25, 0.5], chunk_index=3, page_id="page_a", timestamp=1700)

    assert record == {"embedding": [0.25, 0.5], "chunkIndex": 3, "pageId": "page_a", "timestamp": 1700}
    vector, metadata = decode_record(record)
    np.testing.assert_array_equal(vector, np.array([0.25, 0.5], dtype=np.float32))
    assert metadata == {"chunkIndex": 3, "pageId": "page_a", "timestamp": 1700}


def test_record_accepts_position_keyed_embedding() -> None:
    vector, _ = decode_record({"embedding": {"1": 2.0, "0": 1.0, "3": 4.0, "2": 3.0}})

    assert vector.tolist() == [1.0, 2.0, 3.0, 4.0]


@pytest.mark.parametrize(
    "embedding",
    [
        {"0": 1.0, "1": 2.0, "2": 3.0, "10": 4.0},
        {"1": 1.0, "2": 2.0},
        {"0": 1.0, "00": 2.0},
    ],
)
def test_record_rejects_position_keys_with_gaps(embedding: dict) -> None:
    with pytest.raises(DecodeError, match="exactly 0.."):
        decode_record({"embedding": embedding})


@pytest.mark.parametrize(
    "payload",
    [
        {"embedding": "1,2,3"},
        {"embedding": {"a": 1.0}},
        {"embedding": [[1.0], [2.0]]},
        {},
        [1.0, 2.0],
    ],
)
def test_record_rejects_invalid_embedding(payload: object) -> None:
    with pytest.raises(DecodeError):
        decode_record(payload)  # type: ignore[arg-type]
