"""Persistent stores for indexed pages."""

from .page_store import PageStore, generate_page_id, is_valid_page_id

__all__ = ["PageStore", "generate_page_id", "is_valid_page_id"]
