# Idempotent index setup: create with mappings if absent, leave alone if present.
from typing import Dict

from elastic_transport import TransportError
from elasticsearch import ApiError, Elasticsearch

from apps.common.errors import SinkUnavailable
from apps.common.log import get_logger
from .mappings import index_body

logger = get_logger("indexer.provisioner")

ALREADY_EXISTS = "resource_already_exists_exception"


def _is_already_exists(e: ApiError) -> bool:
    return e.status_code == 400 and e.error == ALREADY_EXISTS


def index_exists(es: Elasticsearch, index: str) -> bool:
    try:
        return bool(es.indices.exists(index=index))
    except (ApiError, TransportError) as e:
        raise SinkUnavailable(f"exists check for {index!r} failed: {e}") from e


def ensure_index(es: Elasticsearch, index: str, schema: Dict[str, dict]) -> bool:
    """
    Create `index` with `schema` unless it already exists. Returns True if this call created it.

    The schema is never diffed against a live index. A create that loses a
    race against another writer counts as success.
    """
    if index_exists(es, index):
        logger.debug("index present", extra={"index": index})
        return False
    try:
        es.indices.create(index=index, **index_body(schema))
    except ApiError as e:
        if _is_already_exists(e):
            logger.info("index created concurrently", extra={"index": index})
            return False
        raise SinkUnavailable(f"create {index!r} failed: {e}") from e
    except TransportError as e:
        raise SinkUnavailable(f"create {index!r} failed: {e}") from e
    logger.info("created index", extra={"index": index, "fields": len(schema)})
    return True
