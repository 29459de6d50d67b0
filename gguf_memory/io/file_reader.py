"""
Local file byte source with bounded, append-only prefix reads.
"""

from __future__ import annotations

import os
import threading
from typing import Optional

from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig
from gguf_memory.errors import SourceUnavailable

from .base import ByteSource, ByteWindow


class LocalFileSource(ByteSource):
    """Reads a local file from offset 0 without mapping or loading the rest of it.

    Attributes:
        locator: Path to the local file.
    """

    def __init__(
        self,
        locator: str,
        config: EstimatorConfig = DEFAULT_CONFIG,
        cancel_event: Optional[threading.Event] = None,
    ):
        super().__init__(locator, config, cancel_event)
        self._size: Optional[int] = None
        self._window = ByteWindow()

    def size(self) -> int:
        if self._size is None:
            try:
                self._size = os.path.getsize(self.locator)
            except OSError as e:
                raise SourceUnavailable(
                    f"Cannot stat {self.locator}: {e.strerror or e}", url=self.locator
                ) from e
        return self._size

    def read_prefix(self, n: int) -> ByteWindow:
        self.check_cancelled()
        size = self.size()
        want = min(n, size)
        have = len(self._window)
        if have >= want:
            if want == size and not self._window.eof:
                self._window = self._window.extend(b"", eof=True, total_size=size)
            return self._window
        try:
            with open(self.locator, "rb") as f:
                f.seek(have)
                more = f.read(want - have)
        except OSError as e:
            raise SourceUnavailable(
                f"Cannot read {self.locator}: {e.strerror or e}", url=self.locator
            ) from e
        self._window = self._window.extend(more, eof=len(more) < want - have, total_size=size)
        return self._window
