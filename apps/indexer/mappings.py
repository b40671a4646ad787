import os
from typing import Dict, NamedTuple, Optional, Tuple

SETTINGS = {
    "number_of_shards": int(os.getenv("ES_SHARDS", "1")),
    "number_of_replicas": int(os.getenv("ES_REPLICAS", "0")),
    "refresh_interval": os.getenv("ES_REFRESH_INTERVAL", "1s"),
}


class MappingProfile(NamedTuple):
    schema: Dict[str, dict]       # field -> {"type": ...}; applied only when the index is first created
    record_key: Optional[str]     # nested object holding the record fields, None = whole item
    root_fields: Tuple[str, ...]  # extra top-level fields copied next to the record fields


ALGORAND_TXN = {
    "arcv": {"type": "text"},
    "sig": {"type": "text"},
    "fee": {"type": "integer"},
    "fv": {"type": "integer"},
    "gen": {"type": "text"},
    "gh": {"type": "text"},
    "lv": {"type": "integer"},
    "note": {"type": "text"},
    "snd": {"type": "text"},
    "type": {"type": "keyword"},  # axfer, pay, appl, ...
    "xaid": {"type": "integer"},
    "date": {"type": "date"},
    "id": {"type": "text"},
}

LOG_LINES = {
    "timestamp": {"type": "date"},
    "level": {"type": "keyword"},
    "logger": {"type": "keyword"},
    "message": {"type": "text"},
    "date": {"type": "date"},
    "id": {"type": "keyword"},
}

PROFILES: Dict[str, MappingProfile] = {
    "algorand-txn": MappingProfile(ALGORAND_TXN, record_key="txn", root_fields=("sig",)),
    "log-lines": MappingProfile(LOG_LINES, record_key=None, root_fields=()),
}


def index_body(schema: Dict[str, dict]) -> dict:
    return {"settings": SETTINGS, "mappings": {"properties": schema}}
