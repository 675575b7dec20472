"""FastAPI application exposing indexing and search as typed endpoints."""

from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, List, Optional, TypeVar

try:  # pragma: no cover - optional dependency
    from fastapi import Depends, FastAPI, HTTPException
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel

    _FASTAPI_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - service mode optional
    FastAPI = None  # type: ignore[assignment]
    Depends = None  # type: ignore[assignment]
    HTTPException = None  # type: ignore[assignment]
    JSONResponse = None  # type: ignore[assignment]
    BaseModel = object  # type: ignore[assignment]
    _FASTAPI_AVAILABLE = False

from ..config import load_config
from ..errors import InitializationError, PageIndexError
from ..logging import get_logger
from ..pipeline import Pipeline
from ..stores import PageStore, is_valid_page_id

_T = TypeVar("_T")

logger = get_logger("service")


class IndexRequest(BaseModel):
    text: str
    url: str
    title: str = ""
    page_id: Optional[str] = None


class IndexResponse(BaseModel):
    page_id: str
    chunk_count: int
    dimensions: int
    degraded_chunks: List[int] = []


class EmbedRequest(BaseModel):
    text: str


class EmbedResponse(BaseModel):
    embedding: List[float]
    dimensions: int


class SearchRequest(BaseModel):
    query: str
    limit: Optional[int] = None


class SearchHit(BaseModel):
    page_id: str
    url: str
    title: str
    chunk_index: int
    chunk_text: str
    score: float


class SearchResponse(BaseModel):
    results: List[SearchHit]


class PageSummary(BaseModel):
    page_id: str
    url: str
    title: str
    timestamp: int
    chunk_count: int
    degraded_chunks: List[int] = []


class PagesResponse(BaseModel):
    pages: List[PageSummary]


class StatusResponse(BaseModel):
    status: str


def _default_pipeline() -> Pipeline:
    pipeline = Pipeline(load_config(Path.cwd()))
    pipeline.initialize_from_config()
    return pipeline


def _default_store() -> PageStore:
    return PageStore(load_config(Path.cwd()).storage.root)


def create_app(
    pipeline_factory: Callable[[], Pipeline] = _default_pipeline,
    store_factory: Callable[[], PageStore] = _default_store,
) -> FastAPI:
    """Create the FastAPI application exposing pageindex operations.

    The pipeline and store are built once, on first use, and shared across
    requests; concurrent first requests wait for the same construction. The
    pipeline is closed when the application shuts down.
    """

    if not _FASTAPI_AVAILABLE:  # pragma: no cover - validated via unit tests
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install pageindex[service]`."
        )

    shared: dict[str, Any] = {}
    build_lock = threading.Lock()

    def _build(key: str, factory: Callable[[], _T]) -> _T:
        with build_lock:
            if key not in shared:
                logger.debug("Building shared %s", key)
                shared[key] = factory()
            return shared[key]

    @asynccontextmanager
    async def lifespan(_: Any) -> AsyncIterator[None]:
        yield
        with build_lock:
            pipeline = shared.pop("pipeline", None)
            shared.pop("store", None)
        if pipeline is not None:
            logger.info("Closing pipeline")
            pipeline.close()

    app = FastAPI(title="PageIndex Service", version="1.0.0", lifespan=lifespan)

    async def get_pipeline() -> Pipeline:
        pipeline = shared.get("pipeline")
        if pipeline is None:
            pipeline = await _run_blocking(lambda: _build("pipeline", pipeline_factory))
        return pipeline

    async def get_store() -> PageStore:
        store = shared.get("store")
        if store is None:
            store = await _run_blocking(lambda: _build("store", store_factory))
        return store

    @app.get("/health", response_model=StatusResponse)
    async def health() -> StatusResponse:
        return StatusResponse(status="ok")

    @app.post("/index", response_model=IndexResponse)
    async def index_page(
        payload: IndexRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        store: PageStore = Depends(get_store),
    ) -> IndexResponse:
        if payload.page_id and not is_valid_page_id(payload.page_id):
            raise HTTPException(
                status_code=422,
                detail=f"Invalid page id {payload.page_id!r}: use only letters, digits, '_' and '-'",
            )

        def _run_index() -> IndexResponse:
            document = pipeline.index_document(payload.text)
            record = store.add_page(
                document,
                url=payload.url,
                title=payload.title or payload.url,
                page_id=payload.page_id,
            )
            return IndexResponse(
                page_id=record.page_id,
                chunk_count=record.chunk_count,
                dimensions=record.dimensions,
                degraded_chunks=record.degraded_chunks,
            )

        return await _run_blocking(_run_index)

    @app.post("/embed", response_model=EmbedResponse)
    async def embed_query(
        payload: EmbedRequest,
        pipeline: Pipeline = Depends(get_pipeline),
    ) -> EmbedResponse:
        vector = await _run_blocking(lambda: pipeline.embed_query(payload.text))
        return EmbedResponse(embedding=[float(value) for value in vector], dimensions=int(vector.shape[0]))

    @app.post("/search", response_model=SearchResponse)
    async def search(
        payload: SearchRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        store: PageStore = Depends(get_store),
    ) -> SearchResponse:
        hits = await _run_blocking(lambda: pipeline.search_store(store, payload.query, payload.limit))
        return SearchResponse(
            results=[
                SearchHit(
                    page_id=hit.page_id,
                    url=hit.url,
                    title=hit.title,
                    chunk_index=hit.chunk_index,
                    chunk_text=hit.chunk_text,
                    score=hit.score,
                )
                for hit in hits
            ]
        )

    @app.get("/pages", response_model=PagesResponse)
    async def list_pages(store: PageStore = Depends(get_store)) -> PagesResponse:
        return PagesResponse(
            pages=[
                PageSummary(
                    page_id=page.page_id,
                    url=page.url,
                    title=page.title,
                    timestamp=page.timestamp,
                    chunk_count=page.chunk_count,
                    degraded_chunks=page.degraded_chunks,
                )
                for page in store.pages()
            ]
        )

    @app.delete("/pages/{page_id}", response_model=StatusResponse)
    async def delete_page(page_id: str, store: PageStore = Depends(get_store)) -> StatusResponse:
        if not await _run_blocking(lambda: store.delete_page(page_id)):
            raise HTTPException(status_code=404, detail=f"Unknown page {page_id}")
        return StatusResponse(status="deleted")

    @app.exception_handler(InitializationError)
    async def initialization_error_handler(
        _: Any, exc: InitializationError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(PageIndexError)
    async def pageindex_error_handler(
        _: Any, exc: PageIndexError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


async def _run_blocking(func: Callable[[], _T]) -> _T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def run_service(
    host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    if not _FASTAPI_AVAILABLE:
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install pageindex[service]`."
        )

    try:
        import uvicorn
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "uvicorn is required to run the service. Install it with `pip install uvicorn`."
        ) from exc

    logger.info("Starting service on %s:%d", host, port)
    app = create_app()
    uvicorn.run(app, host=host, port=port)
