"""HTTPS artifact fetcher backed by requests.

requests is blocking, so each download runs in a worker thread. A cancelled
fetch signals the thread, which stops at the next chunk instead of writing
into a scratch directory that is already being removed.
"""

import asyncio
import logging
import threading
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "kube-components"


class FetchCancelled(Exception):
    """The awaiting coroutine went away mid-download."""


class RequestsFetcher:
    """
    Stream artifacts over HTTP(S) into local files.

    Implements ArtifactFetcherProtocol. Non-2xx responses raise
    ``requests.HTTPError``; transport failures raise the matching
    ``requests.RequestException``.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        session: requests.Session | None = None,
        chunk_size: int = 1024 * 1024,
    ):
        """Initialize fetcher.

        Args:
            connect_timeout: Seconds to wait for the TCP/TLS handshake
            read_timeout: Seconds to wait between received bytes
            session: Optional shared session (tests, proxies, custom CA bundles)
            chunk_size: Streaming chunk size in bytes
        """
        self.timeout = (connect_timeout, read_timeout)
        self.session = session
        self.chunk_size = chunk_size

    async def fetch(self, url: str, dest: Path) -> None:
        cancelled = threading.Event()
        try:
            await asyncio.to_thread(self._download, url, dest, cancelled)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    def _download(self, url: str, dest: Path, cancelled: threading.Event) -> None:
        logger.debug(f"GET {url}")
        if self.session is not None:
            self._stream(self.session, url, dest, cancelled)
            return
        with requests.Session() as session:
            self._stream(session, url, dest, cancelled)

    def _stream(self, session: requests.Session, url: str, dest: Path, cancelled: threading.Event) -> None:
        headers = {"User-Agent": USER_AGENT}
        with session.get(url, stream=True, timeout=self.timeout, allow_redirects=True, headers=headers) as response:
            response.raise_for_status()
            size = 0
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if cancelled.is_set():
                        raise FetchCancelled(url)
                    f.write(chunk)
                    size += len(chunk)
        logger.debug(f"Fetched {size} bytes from {url}")
