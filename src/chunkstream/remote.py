from __future__ import annotations

from typing import Optional

import requests
from requests import Response, Session

from .log import get_logger
from .sinks import COPY_CHUNK_SIZE
from .stream import Chunk, Writer

"""
HTTP body chunk
- GET <url> with a timeout, streaming the body into the writer
- Non-2xx raises requests.HTTPError before anything is written
- The response is always closed; no retries (a retry after a partial
  body would duplicate output)
"""

_LOG = get_logger(__name__)
DEFAULT_TIMEOUT = 5.0


class UrlChunk:
    def __init__(
        self,
        address: str,
        *,
        session: Optional[Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = COPY_CHUNK_SIZE,
    ) -> None:
        self.address = address
        self.session = session
        self.timeout = timeout
        self.chunk_size = chunk_size

    def __repr__(self) -> str:
        return f"UrlChunk({self.address!r})"

    def __call__(self, w: Writer) -> int:
        s = self.session or requests.Session()
        _LOG.debug("GET %s (timeout=%s)", self.address, self.timeout)
        try:
            resp: Response = s.get(self.address, timeout=self.timeout, stream=True)
            with resp:
                resp.raise_for_status()
                n = 0
                for block in resp.iter_content(chunk_size=self.chunk_size):
                    n += w.write(block)
                return n
        finally:
            if self.session is None:  # only close sessions we opened
                s.close()


# This function constructs a chunk that copies the body of an HTTP GET response.
def url(
    address: str,
    *,
    session: Optional[Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = COPY_CHUNK_SIZE,
) -> Chunk:
    return UrlChunk(address, session=session, timeout=timeout, chunk_size=chunk_size)


__all__ = ["DEFAULT_TIMEOUT", "UrlChunk", "url"]
