# Turns raw items into flat documents: field projection, key case-folding, date + id stamping.
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from apps.common.errors import ItemParseFailure
from apps.common.log import get_logger
from apps.common.metrics import c_dropped
from .models import FieldSelector, NormalizedDocument, RawItem

logger = get_logger("ingest.normalizer")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_item(raw: RawItem) -> Dict[str, Any]:
    """Return the item as a JSON object, parsing text lines when needed."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ItemParseFailure(f"not utf-8: {e}") from e
    if not isinstance(raw, str):
        raise ItemParseFailure(f"unsupported item type {type(raw).__name__}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ItemParseFailure(e.msg) from e
    if not isinstance(parsed, dict):
        raise ItemParseFailure(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def field_source(item: Dict[str, Any], record_key: Optional[str]) -> Dict[str, Any]:
    """The object whose keys get projected: the item itself or item[record_key]."""
    if record_key is None:
        return item
    nested = item.get(record_key)
    if not isinstance(nested, dict):
        raise ItemParseFailure(f"missing {record_key!r} object")
    return nested


def build_document(
    item: Dict[str, Any],
    position: int,
    stamped_at: datetime,
    selector: FieldSelector = None,
    record_key: Optional[str] = None,
    root_fields: Sequence[str] = (),
) -> NormalizedDocument:
    src = field_source(item, record_key)
    keys = list(selector) if selector is not None else list(src.keys())

    doc: NormalizedDocument = {}
    for key in keys:
        doc[key.lower()] = src.get(key)
    for key in root_fields:
        doc[key.lower()] = item.get(key)

    doc["date"] = stamped_at.isoformat()
    doc["id"] = str(position)
    return doc


def normalize(
    raw_items: Iterable[RawItem],
    selector: FieldSelector = None,
    record_key: Optional[str] = None,
    root_fields: Sequence[str] = (),
    now: Callable[[], datetime] = utc_now,
) -> List[NormalizedDocument]:
    """
    Map raw items 1:1 onto normalized documents, dropping the ones that don't parse.

    `id` is the item's position in `raw_items`, so dropped items leave gaps.
    Missing selected fields are written as None; nothing outside the
    selector (plus root_fields, date and id) reaches the document.
    """
    docs: List[NormalizedDocument] = []
    dropped = 0
    for i, raw in enumerate(raw_items):
        try:
            item = parse_item(raw)
            docs.append(build_document(item, i, now(), selector, record_key, root_fields))
        except ItemParseFailure as e:
            dropped += 1
            logger.debug("dropped item", extra={"position": i, "reason": str(e)})
    if dropped:
        c_dropped.inc(dropped)
        logger.info("normalized", extra={"documents": len(docs), "dropped": dropped})
    return docs
