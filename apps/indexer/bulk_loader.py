# Chunked bulk indexing. One es.bulk call per chunk, chunks written strictly in order.
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from elastic_transport import TransportError
from elasticsearch import ApiError, Elasticsearch
from pydantic import BaseModel, Field

from apps.common.log import get_logger
from apps.common.metrics import c_chunks, c_indexed, g_count
from apps.ingest.models import NormalizedDocument

logger = get_logger("indexer.bulk")

CHUNK_SIZE = 10_000


class ChunkResult(BaseModel):
    chunk: int                  # 0-based chunk number
    size: int                   # documents sent in this chunk
    ok: bool                    # the bulk call itself returned
    error: Optional[str] = None
    # items the sink reported as failed, verbatim from the bulk response
    item_errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def indexed(self) -> int:
        return self.size - len(self.item_errors) if self.ok else 0


class LoadReport(BaseModel):
    index: str
    documents: int = 0
    chunks: List[ChunkResult] = Field(default_factory=list)
    total_count: Optional[int] = None  # es.count after the load; observability only

    @property
    def failed_chunks(self) -> int:
        return sum(1 for c in self.chunks if not c.ok)

    @property
    def indexed(self) -> int:
        return sum(c.indexed for c in self.chunks)

    @property
    def item_error_count(self) -> int:
        return sum(len(c.item_errors) for c in self.chunks)

    @property
    def ok(self) -> bool:
        return self.failed_chunks == 0 and self.item_error_count == 0


def iter_chunks(docs: Sequence[NormalizedDocument], size: int = CHUNK_SIZE) -> Iterator[Sequence[NormalizedDocument]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(docs), size):
        yield docs[start:start + size]


def to_bulk_operations(index: str, docs: Iterable[NormalizedDocument]) -> List[Dict[str, Any]]:
    ops: List[Dict[str, Any]] = []
    for doc in docs:
        ops.append({"index": {"_index": index}})
        ops.append(doc)
    return ops


def failed_items(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    if not response.get("errors"):
        return []
    out = []
    for item in response.get("items", []):
        # each item is {"<op>": {...}}
        result = next(iter(item.values()), {})
        if "error" in result:
            out.append(item)
    return out


def flush_chunk(
    es: Elasticsearch,
    index: str,
    n: int,
    chunk: Sequence[NormalizedDocument],
    refresh: Any = "wait_for",
    request_timeout: float = 120,
) -> ChunkResult:
    try:
        resp = es.options(request_timeout=request_timeout).bulk(
            operations=to_bulk_operations(index, chunk),
            refresh=refresh,
        )
    except (ApiError, TransportError) as e:
        c_chunks.labels(outcome="failed").inc()
        logger.error("bulk chunk failed", extra={"index": index, "chunk": n, "size": len(chunk), "error": repr(e)})
        return ChunkResult(chunk=n, size=len(chunk), ok=False, error=repr(e))

    body = resp.body if hasattr(resp, "body") else resp
    errs = failed_items(body)
    c_chunks.labels(outcome="ok").inc()
    c_indexed.inc(len(chunk) - len(errs))
    if errs:
        logger.warning("bulk item errors", extra={"index": index, "chunk": n, "failed": len(errs)})
    return ChunkResult(chunk=n, size=len(chunk), ok=True, item_errors=errs)


def count_documents(es: Elasticsearch, index: str) -> Optional[int]:
    try:
        count = int(es.count(index=index)["count"])
    except (ApiError, TransportError) as e:
        logger.warning("count failed", extra={"index": index, "error": repr(e)})
        return None
    g_count.set(count)
    return count


def load(
    es: Elasticsearch,
    index: str,
    documents: Sequence[NormalizedDocument],
    chunk_size: int = CHUNK_SIZE,
    refresh: Any = "wait_for",
    request_timeout: float = 120,
) -> LoadReport:
    """
    Write `documents` into `index` in consecutive chunks of at most `chunk_size`.

    A chunk whose bulk call raises is recorded and the next chunk is still
    attempted. Item-level failures reported by the sink are passed through
    untouched. The final count is informational only.
    """
    report = LoadReport(index=index, documents=len(documents))
    for n, chunk in enumerate(iter_chunks(documents, chunk_size)):
        report.chunks.append(flush_chunk(es, index, n, chunk, refresh, request_timeout))
    report.total_count = count_documents(es, index)
    logger.info(
        "load finished",
        extra={
            "index": index,
            "documents": report.documents,
            "chunks": len(report.chunks),
            "failed_chunks": report.failed_chunks,
            "item_errors": report.item_error_count,
            "total_count": report.total_count,
        },
    )
    return report
