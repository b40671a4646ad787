# Raw record acquisition: a single GET against an API endpoint, or a local log file.
# Both variants satisfy the Source protocol (fetch_all); they share no base class.
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

import requests

from apps.common.errors import SourceUnavailable, UnexpectedShape
from apps.common.log import get_logger
from .models import RawItem

logger = get_logger("ingest.sources")

TIMEOUT = (5, 30)  # connect, read seconds


class Source(Protocol):
    def fetch_all(self) -> List[RawItem]: ...


class EndpointSource:
    """Pull the full record set from `url` in one request and return `collection_key`."""

    def __init__(
        self,
        url: str,
        collection_key: str = "top-transactions",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        timeout: Tuple[float, float] = TIMEOUT,
    ):
        self.url = url
        self.collection_key = collection_key
        self.headers = headers or {}
        self.params = params
        self.body = body  # sent as the request body when the endpoint expects one
        self.timeout = timeout

    def fetch_all(self) -> List[RawItem]:
        try:
            r = requests.get(
                self.url, headers=self.headers, params=self.params, data=self.body, timeout=self.timeout
            )
            r.raise_for_status()
            payload = r.json()
        except requests.RequestException as e:
            # JSON decode errors from requests are RequestExceptions too
            raise SourceUnavailable(f"GET {self.url} failed: {e}") from e
        except ValueError as e:
            raise SourceUnavailable(f"GET {self.url} returned a non-JSON body: {e}") from e

        if not isinstance(payload, dict) or self.collection_key not in payload:
            raise UnexpectedShape(f"response from {self.url} has no top-level {self.collection_key!r}")
        items = payload[self.collection_key]
        if items is None:
            # the node answers null when nothing is pending
            items = []
        if not isinstance(items, list):
            raise UnexpectedShape(
                f"{self.collection_key!r} from {self.url} is {type(items).__name__}, expected a list"
            )
        logger.info("fetched", extra={"url": self.url, "items": len(items)})
        return items

    def __repr__(self) -> str:
        return f"EndpointSource(url={self.url!r}, collection_key={self.collection_key!r})"


class FileSource:
    """
    Read a whole log file; one raw line per item, trailing empty line included.

    Undecodable bytes are replaced rather than raised so a single bad line is
    dropped by the normalizer instead of failing the whole read.
    """

    def __init__(self, path: Union[str, Path], encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding

    def fetch_all(self) -> List[RawItem]:
        try:
            text = self.path.read_text(encoding=self.encoding, errors="replace")
        except OSError as e:
            raise SourceUnavailable(f"cannot read {self.path}: {e}") from e
        lines = text.split("\n")
        logger.info("read file", extra={"path": str(self.path), "items": len(lines)})
        return lines

    def __repr__(self) -> str:
        return f"FileSource(path={str(self.path)!r})"
