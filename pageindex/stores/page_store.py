"""On-disk store for indexed pages, their chunks, and their vectors."""

from __future__ import annotations

import hashlib
import json
import os
import re
import shutil
import tempfile
import threading
import time
from dataclasses import asdict
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

import numpy as np

from ..errors import DecodeError
from ..logging import get_logger
from ..models import Chunk, IndexedDocument, PageRecord
from ..search.ranker import Candidate
from ..storage.codec import decode_record, decode_vectors, encode_record, encode_vectors
from ..text.tokenizer import estimate_token_count

_STORE_VERSION = 1
_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_-]")

logger = get_logger("store")


class PageStore:
    """Persists pages under ``root``.

    Layout::

        pages.json                              page metadata and URL index
        chunks/<page>/chunks.json               chunk text and token windows
        vectors/<page>/vectors.bin              bulk binary vectors
        embeddings/<page>_chunk_<i>.json        one record per chunk vector

    One store may be shared between threads; every read or write of the page
    index and the files under ``root`` happens under a re-entrant lock.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._lock = threading.RLock()
        self._pages: Dict[str, PageRecord] = {}
        self._url_index: Dict[str, str] = {}
        self._load()

    # ------------------------------------------------------------------
    # Page metadata

    def add_page(
        self,
        document: IndexedDocument,
        *,
        url: str,
        title: str,
        page_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> PageRecord:
        """Persist a processed document and return its page record.

        A page previously stored for the same URL is replaced. Caller-supplied
        ids may only contain letters, digits, ``_`` and ``-``, since they double
        as file names.
        """
        if len(document.embeddings) != len(document.chunks):
            raise ValueError(
                f"Embedding count mismatch: {len(document.embeddings)} embeddings "
                f"for {len(document.chunks)} chunks"
            )
        if page_id and not is_valid_page_id(page_id):
            raise ValueError(f"Invalid page id {page_id!r}: use only letters, digits, '_' and '-'")
        stamp = timestamp if timestamp is not None else _now_ms()
        page_id = page_id or generate_page_id(url, timestamp=stamp)

        with self._lock:
            for stale in dict.fromkeys((self._url_index.get(url), page_id)):
                if stale is not None and stale in self._pages:
                    logger.info("Replacing previously indexed page %s", stale)
                    self.delete_page(stale)

            record = PageRecord(
                page_id=page_id,
                url=url,
                title=title,
                timestamp=stamp,
                chunk_count=len(document.chunks),
                dimensions=document.dimensions,
                degraded_chunks=document.failed_indexes,
            )
            self._write_chunks(record.page_id, document.chunks)
            self._write_vectors(record.page_id, document.embeddings, document.dimensions)
            self._write_records(record.page_id, document.embeddings, stamp)

            self._pages[record.page_id] = record
            self._url_index[url] = record.page_id
            self.persist()
        logger.info(
            "Stored page %s (%d chunks, %d degraded)",
            record.page_id,
            record.chunk_count,
            len(record.degraded_chunks),
        )
        return record

    def get_page(self, page_id: str) -> Optional[PageRecord]:
        with self._lock:
            return self._pages.get(page_id)

    def page_for_url(self, url: str) -> Optional[PageRecord]:
        with self._lock:
            page_id = self._url_index.get(url)
            return self._pages.get(page_id) if page_id else None

    def pages(self) -> List[PageRecord]:
        """All pages, most recently indexed first."""
        with self._lock:
            return sorted(self._pages.values(), key=lambda page: page.timestamp, reverse=True)

    def delete_page(self, page_id: str) -> bool:
        with self._lock:
            record = self._pages.pop(page_id, None)
            if record is None:
                return False
            if self._url_index.get(record.url) == page_id:
                del self._url_index[record.url]
            name = _safe_name(page_id)
            shutil.rmtree(self.root / "chunks" / name, ignore_errors=True)
            shutil.rmtree(self.root / "vectors" / name, ignore_errors=True)
            for record_path in self._record_paths(page_id):
                record_path.unlink(missing_ok=True)
            self.persist()
            return True

    def clear(self) -> None:
        with self._lock:
            self._pages.clear()
            self._url_index.clear()
            for directory in ("chunks", "vectors", "embeddings"):
                shutil.rmtree(self.root / directory, ignore_errors=True)
            self.persist()

    # ------------------------------------------------------------------
    # Chunk and vector access

    def load_chunks(self, page_id: str) -> List[Chunk]:
        path = self.root / "chunks" / _safe_name(page_id) / "chunks.json"
        try:
            with self._lock:
                payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load chunks for page %s: %s", page_id, exc)
            return []
        if not isinstance(payload, list):
            return []
        chunks = [_chunk_from_dict(item) for item in payload]
        return [chunk for chunk in chunks if chunk is not None]

    def load_vectors(self, page_id: str) -> List[np.ndarray]:
        """Read the bulk vectors, falling back to per-chunk records."""
        path = self.root / "vectors" / _safe_name(page_id) / "vectors.bin"
        with self._lock:
            if path.exists():
                return decode_vectors(path.read_bytes())
            return self.load_embedding_records(page_id)

    def load_embedding_records(self, page_id: str) -> List[np.ndarray]:
        vectors: List[np.ndarray] = []
        with self._lock:
            for record_path in self._record_paths(page_id):
                try:
                    payload = json.loads(record_path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as exc:
                    raise DecodeError(f"Unreadable embedding record {record_path.name}: {exc}") from exc
                vector, _ = decode_record(payload)
                vectors.append(vector)
        return vectors

    def candidates(self) -> Iterator[Candidate]:
        """Yield every stored chunk vector, page by page."""
        for page in self.pages():
            for chunk_index, vector in enumerate(self.load_vectors(page.page_id)):
                yield Candidate(source_id=page.page_id, chunk_index=chunk_index, vector=vector)

    # ------------------------------------------------------------------
    # Maintenance

    def export(self, settings: Mapping[str, Any] | None = None) -> Dict[str, Any]:
        return {
            "pages": [asdict(page) for page in self.pages()],
            "settings": dict(settings or {}),
            "exportDate": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "version": _STORE_VERSION,
        }

    def storage_usage(self) -> int:
        """Total bytes stored under the root directory."""
        with self._lock:
            if not self.root.exists():
                return 0
            return sum(path.stat().st_size for path in self.root.rglob("*") if path.is_file())

    def persist(self) -> None:
        with self._lock:
            payload = {
                "version": _STORE_VERSION,
                "pages": {page_id: asdict(page) for page_id, page in self._pages.items()},
                "url_index": dict(self._url_index),
            }
            self._write_json(self.root / "pages.json", payload)

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self) -> None:
        path = self.root / "pages.json"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable page index %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            return
        pages = data.get("pages")
        if isinstance(pages, dict):
            for page_id, raw in pages.items():
                record = _page_from_dict(raw)
                if record is not None and record.page_id == page_id:
                    self._pages[page_id] = record
        url_index = data.get("url_index")
        if isinstance(url_index, dict):
            self._url_index = {
                str(url): str(page_id)
                for url, page_id in url_index.items()
                if page_id in self._pages
            }

    def _write_chunks(self, page_id: str, chunks: List[Chunk]) -> None:
        payload = [_chunk_to_dict(chunk) for chunk in chunks]
        self._write_json(self.root / "chunks" / _safe_name(page_id) / "chunks.json", payload)

    def _write_vectors(self, page_id: str, vectors: List[np.ndarray], dimensions: int) -> None:
        path = self.root / "vectors" / _safe_name(page_id) / "vectors.bin"
        _write_atomic(path, encode_vectors(vectors, dimension=dimensions or 384))

    def _write_records(self, page_id: str, vectors: List[np.ndarray], timestamp: int) -> None:
        directory = self.root / "embeddings"
        for index, vector in enumerate(vectors):
            record = encode_record(vector, chunk_index=index, page_id=page_id, timestamp=timestamp)
            self._write_json(directory / _record_name(page_id, index), record)

    def _record_paths(self, page_id: str) -> Iterator[Path]:
        directory = self.root / "embeddings"
        index = 0
        while True:
            path = directory / _record_name(page_id, index)
            if not path.exists():
                return
            yield path
            index += 1

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        _write_atomic(path, json.dumps(payload).encode("utf-8"))


def _write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=str(path.parent), prefix=f".{path.name}.", delete=False) as handle:
        try:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        except OSError:
            handle.close()
            Path(handle.name).unlink(missing_ok=True)
            raise
        temp_name = handle.name
    os.replace(temp_name, path)


def generate_page_id(url: str, *, timestamp: Optional[int] = None) -> str:
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]
    return f"page_{digest}_{timestamp if timestamp is not None else _now_ms()}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_valid_page_id(page_id: str) -> bool:
    """Return whether ``page_id`` can be used unchanged as a file name."""
    return bool(page_id) and _UNSAFE_NAME.search(page_id) is None


def _safe_name(page_id: str) -> str:
    return _UNSAFE_NAME.sub("_", page_id) if page_id else "unknown"


def _record_name(page_id: str, index: int) -> str:
    return f"{_safe_name(page_id)}_chunk_{index}.json"


def _chunk_to_dict(chunk: Chunk) -> Dict[str, object]:
    return {
        "id": chunk.id,
        "index": chunk.index,
        "text": chunk.text,
        "tokens": list(chunk.tokens),
        "tokenCount": chunk.token_count,
        "startIndex": chunk.start_token_index,
        "endIndex": chunk.end_token_index,
    }


def _chunk_from_dict(payload: object) -> Optional[Chunk]:
    if not isinstance(payload, dict):
        return None
    index = payload.get("index")
    text = payload.get("text")
    if not isinstance(index, int) or not isinstance(text, str):
        return None
    tokens = payload.get("tokens")
    if not isinstance(tokens, list):
        tokens = []
    token_count = payload.get("tokenCount")
    if not isinstance(token_count, int) or token_count <= 0:
        token_count = len(tokens) or estimate_token_count(text)
    start = payload.get("startIndex")
    end = payload.get("endIndex")
    return Chunk(
        index=index,
        tokens=[int(token) for token in tokens],
        token_count=token_count,
        text=text,
        start_token_index=start if isinstance(start, int) else 0,
        end_token_index=end if isinstance(end, int) else 0,
    )


def _page_from_dict(payload: object) -> Optional[PageRecord]:
    if not isinstance(payload, dict):
        return None
    page_id = payload.get("page_id")
    url = payload.get("url")
    title = payload.get("title")
    if not isinstance(page_id, str) or not isinstance(url, str) or not isinstance(title, str):
        return None
    degraded = payload.get("degraded_chunks")
    return PageRecord(
        page_id=page_id,
        url=url,
        title=title,
        timestamp=int(payload.get("timestamp") or 0),
        chunk_count=int(payload.get("chunk_count") or 0),
        dimensions=int(payload.get("dimensions") or 0),
        degraded_chunks=[int(index) for index in degraded] if isinstance(degraded, list) else [],
    )


__all__ = ["PageStore", "generate_page_id", "is_valid_page_id"]
