"""Similarity search over embedding vectors."""

from .ranker import Candidate, cosine_similarity, rank

__all__ = ["Candidate", "cosine_similarity", "rank"]
