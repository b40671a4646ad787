import pytest
from elasticsearch import BadRequestError

from apps.common.errors import SinkUnavailable
from apps.indexer.mappings import ALGORAND_TXN
from apps.indexer.provisioner import ensure_index, index_exists


def test_ensure_index_is_idempotent(es):
    assert ensure_index(es, "algorand-final", ALGORAND_TXN) is True
    assert ensure_index(es, "algorand-final", ALGORAND_TXN) is False
    assert [c for c in es.calls if c[0] == "create"] == [("create", "algorand-final")]


def test_create_carries_schema_as_properties(es):
    ensure_index(es, "idx", ALGORAND_TXN)
    body = es.indices.create_calls[0]
    assert body["mappings"]["properties"]["fee"] == {"type": "integer"}
    assert body["mappings"]["properties"]["date"] == {"type": "date"}
    assert "settings" in body


def test_existing_index_is_left_alone(es):
    es.docs["idx"] = [{"id": "0"}]
    assert ensure_index(es, "idx", {"other": {"type": "keyword"}}) is False
    assert es.indices.create_calls == []


def test_concurrent_creation_counts_as_success(es):
    es.created["idx"] = {}
    es.hide_existing = True
    assert ensure_index(es, "idx", ALGORAND_TXN) is False
    assert len(es.indices.create_calls) == 1


def test_other_create_errors_raise(es, make_api_error):
    es.create_error = make_api_error(BadRequestError, 400, "mapper_parsing_exception")
    with pytest.raises(SinkUnavailable):
        ensure_index(es, "idx", ALGORAND_TXN)


def test_exists_failure_is_sink_unavailable(es):
    es.fail_exists = True
    with pytest.raises(SinkUnavailable):
        index_exists(es, "idx")
    with pytest.raises(SinkUnavailable):
        ensure_index(es, "idx", ALGORAND_TXN)
    assert es.indices.create_calls == []
