"""Vector serialisation formats."""

from .codec import decode_record, decode_vectors, encode_record, encode_vectors

__all__ = ["decode_record", "decode_vectors", "encode_record", "encode_vectors"]
