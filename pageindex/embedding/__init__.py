"""Encoder sessions and the embedding engine."""

from .engine import EmbeddingBatch, EmbeddingEngine, inference_inputs, mean_pool
from .session import Encoder, OnnxEncoder

__all__ = [
    "EmbeddingBatch",
    "EmbeddingEngine",
    "Encoder",
    "OnnxEncoder",
    "inference_inputs",
    "mean_pool",
]
