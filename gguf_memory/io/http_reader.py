"""
Remote byte source over HTTP range requests.

The first request asks for ``bytes=0-(n-1)``; later growth asks only for the
missing tail, so every byte crosses the wire once. Servers that ignore ``Range``
answer ``200 OK`` with the full body: that response is kept open and read
incrementally, and closed as soon as the caller stops needing bytes.
"""

from __future__ import annotations

import re
import threading
from typing import Iterator, List, Optional, Tuple

import httpx
from loguru import logger

from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig
from gguf_memory.errors import NetworkError, SourceUnavailable

from .base import ByteSource, ByteWindow

_CONTENT_RANGE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)


def parse_content_range(value: Optional[str]) -> Tuple[int, int, Optional[int]]:
    """Parse ``bytes start-end/total``; ``total`` is None when the server sends ``*``."""
    m = _CONTENT_RANGE.match(value or "")
    if not m:
        raise ValueError(f"Malformed Content-Range header: {value!r}")
    total = None if m.group(3) == "*" else int(m.group(3))
    return int(m.group(1)), int(m.group(2)), total


class RemoteByteSource(ByteSource):
    """HTTP(S) object read through range requests with its own connection pool."""

    def __init__(
        self,
        locator: str,
        config: EstimatorConfig = DEFAULT_CONFIG,
        cancel_event: Optional[threading.Event] = None,
    ):
        super().__init__(locator, config, cancel_event)
        self._client = httpx.Client(
            transport=self.config.transport,
            timeout=self.config.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
        )
        self._window = ByteWindow()
        self._size: Optional[int] = None
        # open body of a server that ignored Range
        self._stream: Optional[httpx.Response] = None
        self._stream_iter: Optional[Iterator[bytes]] = None
        self._stream_pos = 0
        self.requested_ranges: List[Tuple[int, int]] = []
        self.bytes_received = 0
        self._closed = False

    # -- transport ---------------------------------------------------------

    def _send(self, start: int, end: int) -> httpx.Response:
        self.check_cancelled()
        if self._closed:
            raise NetworkError(f"Source {self.locator} is closed", url=self.locator)
        self.requested_ranges.append((start, end))
        logger.debug("GET {url} Range: bytes={s}-{e}", url=self.locator, s=start, e=end)
        try:
            request = self._client.build_request(
                "GET", self.locator, headers={"Range": f"bytes={start}-{end}"}
            )
            response = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Timed out after {self.config.timeout_s}s requesting bytes={start}-{end} "
                f"of {self.locator}",
                url=self.locator,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(
                f"Transport error requesting bytes={start}-{end} of {self.locator}: {e}",
                url=self.locator,
            ) from e
        if self.cancel_event is not None and self.cancel_event.is_set():
            response.close()
            self.check_cancelled()
        if response.status_code not in (200, 206):
            response.close()
            raise NetworkError(
                f"Unexpected HTTP {response.status_code} for {self.locator} "
                f"(Range bytes={start}-{end})",
                url=self.locator,
                status=response.status_code,
            )
        return response

    def _chunks(self, it: Iterator[bytes]) -> Iterator[bytes]:
        """Yield body chunks, mapping transport failures and honoring cancellation."""
        while True:
            self.check_cancelled()
            try:
                chunk = next(it, None)
            except httpx.TimeoutException as e:
                raise NetworkError(
                    f"Timed out after {self.config.timeout_s}s reading {self.locator}",
                    url=self.locator,
                ) from e
            except httpx.HTTPError as e:
                raise NetworkError(f"Error reading body of {self.locator}: {e}", url=self.locator) from e
            if chunk is None:
                return
            self.bytes_received += len(chunk)
            yield chunk

    # -- ByteSource --------------------------------------------------------

    def size(self) -> int:
        if self._size is not None:
            return self._size
        if self._closed:
            raise SourceUnavailable(
                f"Server did not report a size for {self.locator}", url=self.locator
            )
        response = self._send(0, 0)
        try:
            self._size = self._total_from_headers(response)
        finally:
            response.close()
        if self._size is None:
            raise SourceUnavailable(
                f"Server did not report a size for {self.locator}", url=self.locator
            )
        return self._size

    def _total_from_headers(self, response: httpx.Response) -> Optional[int]:
        if response.status_code == 206:
            try:
                return parse_content_range(response.headers.get("Content-Range"))[2]
            except ValueError as e:
                raise NetworkError(f"{e} from {self.locator}", url=self.locator, status=206) from e
        length = response.headers.get("Content-Length")
        return int(length) if length and length.isdigit() else None

    def read_prefix(self, n: int) -> ByteWindow:
        self.check_cancelled()
        # servers may cap each range below what was asked; keep fetching the tail
        while len(self._window) < n and not self._window.eof:
            have = len(self._window)
            if self._size is not None and have >= self._size:
                self._window = self._window.extend(b"", eof=True, total_size=self._size)
            elif self._stream is not None:
                self._pull_stream(n)
            else:
                end = n - 1 if self._size is None else min(n, self._size) - 1
                self._fetch_range(have, end)
        return self._window

    def _fetch_range(self, start: int, end: int) -> None:
        response = self._send(start, end)
        if response.status_code == 200:
            self._size = self._total_from_headers(response)
            logger.info(
                "{url} ignored the Range header; streaming the body instead", url=self.locator
            )
            self._stream = response
            self._stream_iter = self._chunks(response.iter_bytes(self.config.chunk_size))
            self._stream_pos = 0
            self._pull_stream(end + 1)
            return

        try:
            try:
                first, _last, total = parse_content_range(response.headers.get("Content-Range"))
            except ValueError as e:
                raise NetworkError(f"{e} from {self.locator}", url=self.locator, status=206) from e
            if first != start:
                raise NetworkError(
                    f"{self.locator} returned a range starting at {first}, requested {start}",
                    url=self.locator,
                    status=206,
                )
            if total is not None:
                self._size = total
            limit = end - start + 1
            body = bytearray()
            for chunk in self._chunks(response.iter_bytes(self.config.chunk_size)):
                body += chunk
                if len(body) >= limit:
                    break
        finally:
            response.close()
        data = bytes(body[:limit])
        # with a known total, ``extend`` marks eof once it is reached
        eof = total is None and len(data) < limit
        if not data and not eof:
            raise NetworkError(
                f"{self.locator} returned an empty range at offset {start}",
                url=self.locator,
                status=206,
            )
        self._window = self._window.extend(data, eof=eof, total_size=self._size)

    def _pull_stream(self, n: int) -> None:
        if self._stream_iter is None:
            raise RuntimeError(f"No open response body for {self.locator}")
        have = len(self._window)
        fresh = bytearray()
        ended = False
        while have + len(fresh) < n:
            chunk = next(self._stream_iter, None)
            if chunk is None:
                ended = True
                break
            pos = self._stream_pos
            self._stream_pos += len(chunk)
            # the body restarts at offset 0; skip what the window already holds
            if self._stream_pos > have + len(fresh):
                fresh += chunk[max(0, have + len(fresh) - pos) :]
        if ended:
            self._close_stream()
            if self._size is None:
                self._size = have + len(fresh)
        self._window = self._window.extend(bytes(fresh), eof=ended, total_size=self._size)

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._stream_iter = None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_stream()
        self._client.close()
        logger.debug(
            "Closed {url} after {n} bytes in {r} request(s)",
            url=self.locator,
            n=self.bytes_received,
            r=len(self.requested_ranges),
        )
