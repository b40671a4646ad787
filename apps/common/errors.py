# Error kinds shared by the ingest, indexer and poller services.


class IngestError(Exception):
    """Base class for every pipeline failure."""


class ConfigError(IngestError):
    """Missing or invalid runtime configuration."""


class SourceUnavailable(IngestError):
    """Endpoint could not be reached or the file could not be opened."""


class UnexpectedShape(IngestError):
    """Endpoint answered, but without the expected top-level collection."""


class ItemParseFailure(IngestError):
    """A single raw item is not a usable JSON object. Always recovered per item."""


class SinkUnavailable(IngestError):
    """Elasticsearch call (exists/create/bulk/count) failed."""
