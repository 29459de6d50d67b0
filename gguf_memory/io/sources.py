"""
Pick the byte source implementation for a model locator.
"""

from __future__ import annotations

import threading
from typing import Optional
from urllib.parse import urlsplit

from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig

from .base import ByteSource
from .file_reader import LocalFileSource
from .http_reader import RemoteByteSource


def is_remote(locator: str) -> bool:
    return urlsplit(locator).scheme.lower() in ("http", "https")


def open_source(
    locator: str,
    config: EstimatorConfig = DEFAULT_CONFIG,
    cancel_event: Optional[threading.Event] = None,
) -> ByteSource:
    """Return a remote source for http(s) URLs and a local one otherwise."""
    cls = RemoteByteSource if is_remote(locator) else LocalFileSource
    return cls(locator, config, cancel_event)
