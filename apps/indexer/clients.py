import backoff
from elasticsearch import Elasticsearch
from elasticsearch.exceptions import ConnectionError as ESConnectionError

from apps.common.config import Settings
from apps.common.log import get_logger

logger = get_logger("indexer.clients")


@backoff.on_exception(backoff.expo, ESConnectionError, max_time=60)
def get_es(settings: Settings) -> Elasticsearch:
    """One shared client per process; every component receives it explicitly."""
    es = Elasticsearch(
        settings.es_url,
        basic_auth=(settings.es_username, settings.es_password),
        request_timeout=settings.es_request_timeout,
    )
    es.info()  # ping/verify
    logger.info("connected", extra={"es": settings.es_url})
    return es
