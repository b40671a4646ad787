from typing import Any, Dict, List

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import BadRequestError
from elasticsearch import ConnectionError as ESConnectionError


def api_error(cls, status: int, error_type: str):
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return cls(message=error_type, meta=meta, body={"error": {"type": error_type}, "status": status})


class FakeIndices:
    def __init__(self, es: "FakeES"):
        self.es = es
        self.create_calls: List[Dict[str, Any]] = []

    def exists(self, index):
        self.es.calls.append(("exists", index))
        if self.es.fail_exists:
            raise ESConnectionError("exists down")
        if self.es.hide_existing:
            # simulates another writer creating the index between exists() and create()
            return False
        return index in self.es.created or index in self.es.docs

    def create(self, index, **body):
        self.es.calls.append(("create", index))
        self.create_calls.append({"index": index, **body})
        if self.es.create_error is not None:
            raise self.es.create_error
        if index in self.es.created:
            raise api_error(BadRequestError, 400, "resource_already_exists_exception")
        self.es.created[index] = body
        self.es.docs.setdefault(index, [])


class FakeES:
    """In-memory stand-in for the bits of the Elasticsearch client the pipeline uses."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.created: Dict[str, dict] = {}
        self.docs: Dict[str, List[dict]] = {}
        self.bulk_calls: List[List[dict]] = []
        self.indices = FakeIndices(self)
        self.fail_exists = False
        self.hide_existing = False
        self.create_error = None
        self.fail_chunks = set()   # chunk numbers whose bulk call raises
        self.reject_ids = set()    # document ids the sink reports as failed items
        self.fail_count = False
        self.searches: List[dict] = []

    def options(self, **_):
        return self

    def bulk(self, operations, refresh=None):
        n = len(self.bulk_calls)
        self.bulk_calls.append(operations)
        self.calls.append(("bulk", n))
        if n in self.fail_chunks:
            raise ESConnectionError("bulk down")
        index = operations[0]["index"]["_index"]
        stored = self.docs.setdefault(index, [])
        items = []
        for doc in operations[1::2]:
            if doc.get("id") in self.reject_ids:
                items.append({"index": {"_index": index, "status": 400,
                                        "error": {"type": "mapper_parsing_exception"}}})
            else:
                stored.append(doc)
                items.append({"index": {"_index": index, "status": 201, "result": "created"}})
        return {"errors": any("error" in i["index"] for i in items), "items": items}

    def count(self, index):
        self.calls.append(("count", index))
        if self.fail_count:
            raise ESConnectionError("count down")
        return {"count": len(self.docs.get(index, []))}

    def search(self, index, query, size=10):
        self.searches.append({"index": index, "query": query, "size": size})
        hits = self.docs.get(index, [])
        return {"hits": {"total": {"value": len(hits), "relation": "eq"}, "hits": hits[:size]}}


@pytest.fixture
def es():
    return FakeES()


@pytest.fixture
def make_api_error():
    return api_error
