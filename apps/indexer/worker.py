"""
Source -> normalize -> ensure index -> chunked bulk load, repeated by the poller.

    python -m apps.indexer.worker --url http://127.0.0.1:8080/v2/transactions/pending --mappings algorand-txn
    python -m apps.indexer.worker --file ./node.log --mappings log-lines --every 30 --times -1

- Argument problems exit 2 and config problems exit 1, both before any
  network or file access.
- One Elasticsearch client is built per process and handed to every stage.
- Per-item and per-chunk failures are absorbed into the LoadReport. Source
  and provisioning failures propagate out of run_pipeline and are counted
  by the poller.
"""
import argparse
import signal
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from elastic_transport import TransportError
from elasticsearch import ApiError, Elasticsearch

from apps.common.config import Settings, load_settings
from apps.common.errors import ConfigError, IngestError
from apps.common.log import get_logger
from apps.common.metrics import c_runs, start_metrics_server
from apps.ingest.models import FieldSelector
from apps.ingest.normalizer import normalize, utc_now
from apps.ingest.sources import EndpointSource, FileSource, Source
from apps.poller.scheduler import Poller, RunSummary, StopReason
from .bulk_loader import CHUNK_SIZE, LoadReport, load
from .clients import get_es
from .mappings import PROFILES, MappingProfile
from .provisioner import ensure_index

logger = get_logger("indexer")


@dataclass(frozen=True)
class PipelineOptions:
    index: str
    schema: Dict[str, dict]
    selector: FieldSelector = None
    record_key: Optional[str] = None
    root_fields: Tuple[str, ...] = ()
    chunk_size: int = CHUNK_SIZE
    refresh: Any = "wait_for"
    bulk_timeout: float = 120
    probe_query: Optional[str] = None


@dataclass
class PipelineResult:
    raw_items: int
    documents: int
    index_created: bool
    report: LoadReport

    @property
    def dropped(self) -> int:
        return self.raw_items - self.documents


def probe(es: Elasticsearch, index: str, query: str, size: int = 5) -> Optional[int]:
    """Ad-hoc search against the freshly loaded index; logs the hit count."""
    try:
        res = es.search(index=index, query={"simple_query_string": {"query": query}}, size=size)
    except (ApiError, TransportError) as e:
        logger.warning("probe query failed", extra={"index": index, "query": query, "error": repr(e)})
        return None
    total = res["hits"]["total"]
    hits = int(total["value"]) if isinstance(total, dict) else int(total)
    logger.info("probe query", extra={"index": index, "query": query, "hits": hits})
    return hits


def run_pipeline(
    source: Source,
    es: Elasticsearch,
    opts: PipelineOptions,
    now: Callable[[], datetime] = utc_now,
) -> PipelineResult:
    try:
        raw = source.fetch_all()
        docs = normalize(raw, opts.selector, opts.record_key, opts.root_fields, now)
        created = ensure_index(es, opts.index, opts.schema)
        report = load(es, opts.index, docs, opts.chunk_size, opts.refresh, opts.bulk_timeout)
    except IngestError as e:
        c_runs.labels(outcome=type(e).__name__).inc()
        logger.error("pipeline failed", extra={"source": repr(source), "kind": type(e).__name__, "error": str(e)})
        raise
    except Exception as e:
        c_runs.labels(outcome="error").inc()
        logger.error("pipeline crashed", extra={"source": repr(source), "kind": type(e).__name__, "error": repr(e)})
        raise
    c_runs.labels(outcome="ok" if report.ok else "partial").inc()
    if opts.probe_query:
        probe(es, opts.index, opts.probe_query)
    return PipelineResult(raw_items=len(raw), documents=len(docs), index_created=created, report=report)


def _fields(value: str) -> Tuple[str, ...]:
    fields = tuple(f.strip() for f in value.split(",") if f.strip())
    if not fields:
        raise argparse.ArgumentTypeError("expected a comma separated list of field names")
    return fields


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="txn-indexer", description="Load records from an endpoint or log file into Elasticsearch.")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--url", help="endpoint returning a JSON object with the record array")
    src.add_argument("--file", help="local log file, one JSON record per line")
    p.add_argument("--mappings", required=True, choices=sorted(PROFILES), help="mapping profile for index creation")
    p.add_argument("--index", help="target index (default: $ES_INDEX)")
    p.add_argument("--fields", type=_fields, help="comma separated fields to keep (default: all)")
    rk = p.add_mutually_exclusive_group()
    rk.add_argument("--record-key", help="nested object holding the record fields (overrides the profile)")
    rk.add_argument("--whole-record", action="store_true", help="read fields from the whole item")
    p.add_argument("--collection-key", help="top-level array in the endpoint response (default: $COLLECTION_KEY)")
    p.add_argument("--every", type=int, help="seconds between runs (default: $POLL_INTERVAL_SEC)")
    p.add_argument("--times", type=int, help="number of runs, -1 runs until stopped (default: $POLL_TIMES)")
    p.add_argument("--stop-on-error", action="store_true", default=None, help="stop polling after the first failed run")
    p.add_argument("--probe-query", help="search run against the index after each load")
    return p


def build_source(args: argparse.Namespace, settings: Settings) -> Source:
    if args.file:
        return FileSource(args.file)
    return EndpointSource(
        args.url,
        collection_key=args.collection_key or settings.collection_key,
        headers=settings.source_headers(),
        timeout=(settings.http_connect_timeout, settings.http_read_timeout),
    )


def build_options(args: argparse.Namespace, settings: Settings) -> PipelineOptions:
    profile: MappingProfile = PROFILES[args.mappings]
    if args.whole_record:
        record_key = None
    else:
        record_key = args.record_key or profile.record_key
    return PipelineOptions(
        index=args.index or settings.es_index,
        schema=profile.schema,
        selector=args.fields,
        record_key=record_key,
        root_fields=profile.root_fields,
        refresh=settings.es_refresh,
        bulk_timeout=settings.es_bulk_timeout,
        probe_query=args.probe_query,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings("url" if args.url else "file")
    except ConfigError as e:
        logger.error("invalid configuration", extra={"error": str(e)})
        return 1

    every = args.every if args.every is not None else settings.poll_interval_sec
    times = args.times if args.times is not None else settings.poll_times
    stop_on_error = settings.stop_on_error if args.stop_on_error is None else args.stop_on_error
    try:
        runner = Poller().every(every).times(times)
    except ValueError as e:
        logger.error("invalid schedule", extra={"error": str(e)})
        return 1

    source = build_source(args, settings)
    opts = build_options(args, settings)
    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)

    logger.info("starting", extra={"source": repr(source), "index": opts.index, "es": settings.es_url,
                                   "every": every, "times": times})
    es = get_es(settings)

    handle = runner.start(lambda: run_pipeline(source, es, opts), stop_on_error=stop_on_error)

    def _graceful(*_):  # ctrl+c, docker stop
        logger.info("shutdown signal")
        handle.cancel()

    previous = {sig: signal.signal(sig, _graceful) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        summary: RunSummary = handle.wait()
    finally:
        for sig, h in previous.items():
            signal.signal(sig, h)

    logger.info("finished", extra={"attempts": summary.attempts, "failures": summary.failures,
                                   "reason": summary.stop_reason.value})
    if summary.stop_reason == StopReason.FAILED or summary.failures:
        return 1
    return 0


def cli() -> None:
    try:
        sys.exit(main())
    except Exception as e:
        logger.exception("FATAL", extra={"error": repr(e)})
        sys.exit(1)


if __name__ == "__main__":
    cli()
