# gguf_memory/io/base.py
"""
Byte source abstraction: size discovery, bounded prefix reads and the
grow-and-reparse loop used to pull metadata out of a file prefix.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig
from gguf_memory.errors import EstimationCancelled, FormatError
from gguf_memory.model_formats.gguf.gguf import Complete, ParseResult
from gguf_memory.observability import Timer


@dataclass(frozen=True)
class ByteWindow:
    """Immutable prefix of a source. Growing yields a new window over the same leading bytes."""

    data: bytes = b""
    eof: bool = False
    total_size: Optional[int] = None

    def __len__(self) -> int:
        return len(self.data)

    def extend(self, more: bytes, *, eof: bool, total_size: Optional[int]) -> "ByteWindow":
        grown = self.data + more
        if total_size is not None and len(grown) >= total_size:
            eof = True
        return ByteWindow(grown, eof, total_size)


class ByteSource(ABC):
    """A local file or remote object readable from offset 0."""

    def __init__(
        self,
        locator: str,
        config: EstimatorConfig = DEFAULT_CONFIG,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.locator = locator
        self.config = config
        self.cancel_event = cancel_event

    @abstractmethod
    def size(self) -> int:
        """Total size in bytes. Raises SourceUnavailable when it cannot be determined."""
        raise NotImplementedError

    @abstractmethod
    def read_prefix(self, n: int) -> ByteWindow:
        """Return a window of at least ``n`` bytes, or a shorter one with ``eof`` set."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any handle or connection. Safe to call twice."""

    def __enter__(self) -> "ByteSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.close()
            raise EstimationCancelled(f"Cancelled while reading {self.locator}")

    def scan(self, parse: Callable[[bytes], ParseResult]) -> Complete:
        """Feed growing prefixes to ``parse`` until it completes.

        The prefix starts at ``initial_prefix_bytes`` and grows to the larger of
        what the parser asked for and twice the current window, never beyond
        ``max_scan_bytes``. The source is closed as soon as parsing ends.

        Raises:
            FormatError: the metadata is truncated or exceeds the scan cap.
        """
        cap = self.config.max_scan_bytes
        target = self.config.initial_prefix_bytes
        attempt = 0
        try:
            while True:
                self.check_cancelled()
                window = self.read_prefix(target)
                attempt += 1
                with Timer(f"parse attempt {attempt} over {len(window)} bytes"):
                    result = parse(window.data)
                if isinstance(result, Complete):
                    logger.debug(
                        "Metadata of {src} complete after {n} attempt(s), {size} bytes read",
                        src=self.locator,
                        n=attempt,
                        size=len(window),
                    )
                    return result

                required = len(window) + result.additional
                if window.eof:
                    raise FormatError(
                        f"Truncated GGUF metadata in {self.locator}: entry at offset "
                        f"{result.offset} needs {required} bytes, source has {len(window)}"
                    )
                if required > cap:
                    raise FormatError(
                        f"metadata exceeds maximum scan size ({cap} bytes) in {self.locator}: "
                        f"entry at offset {result.offset} needs {required} bytes"
                    )
                target = min(max(required, 2 * len(window)), cap)
                if window.total_size is not None:
                    target = min(target, window.total_size)
                logger.debug(
                    "Need {more} more bytes at offset {off}; growing window {old} -> {new}",
                    more=result.additional,
                    off=result.offset,
                    old=len(window),
                    new=target,
                )
        finally:
            self.close()
