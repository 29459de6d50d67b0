# gguf_memory/config.py
"""
Runtime configuration for the estimation pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from gguf_memory.errors import ValidationError

KIB = 1024
MIB = 1024 * KIB


@dataclass(frozen=True)
class EstimatorConfig:
    """Knobs for fetching and scanning model files.

    Attributes:
        timeout_s: Per-request timeout for remote sources, in seconds.
        initial_prefix_bytes: First prefix requested from a source.
        max_scan_bytes: Hard cap on bytes scanned while looking for metadata.
        max_workers: Thread pool size for concurrent shard size discovery.
        chunk_size: Read size when streaming a response body.
        user_agent: User-Agent header sent with remote requests.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    timeout_s: float = 30.0
    initial_prefix_bytes: int = 256 * KIB
    max_scan_bytes: int = 256 * MIB
    max_workers: int = 8
    chunk_size: int = 64 * KIB
    user_agent: str = "ggufmem"
    transport: Optional[httpx.BaseTransport] = None

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValidationError(f"timeout_s must be positive, got {self.timeout_s}")
        if self.initial_prefix_bytes <= 0:
            raise ValidationError(
                f"initial_prefix_bytes must be positive, got {self.initial_prefix_bytes}"
            )
        if self.max_scan_bytes < self.initial_prefix_bytes:
            raise ValidationError(
                f"max_scan_bytes ({self.max_scan_bytes}) must be >= "
                f"initial_prefix_bytes ({self.initial_prefix_bytes})"
            )
        if self.max_workers <= 0:
            raise ValidationError(f"max_workers must be positive, got {self.max_workers}")
        if self.chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {self.chunk_size}")


DEFAULT_CONFIG = EstimatorConfig()
