# gguf_memory/analysis/base.py
"""
Result models: architecture parameters, shard descriptors and the memory estimate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from gguf_memory.errors import ValidationError
from gguf_memory.model_formats.gguf.gguf_quantization import QuantizationProfile
from gguf_memory.observability import to_dict

# Decimal units only.
BYTES_PER_MB = 1_000_000
BYTES_PER_GB = 1_000_000_000


def to_mb(n_bytes: int) -> float:
    return n_bytes / BYTES_PER_MB


def to_gb(n_bytes: int) -> float:
    return n_bytes / BYTES_PER_GB


@dataclass(frozen=True)
class ArchitectureParams:
    """Transformer shape read from the authoritative shard."""

    n_layers: int
    d_model: int
    n_heads: int
    n_heads_kv: Optional[int] = None  # None means standard multi-head attention

    @property
    def effective_heads_kv(self) -> int:
        return self.n_heads if self.n_heads_kv is None else self.n_heads_kv

    def validate(self) -> None:
        for name in ("n_layers", "d_model", "n_heads"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValidationError(f"{name} must be a positive integer, got {value!r}")
        if self.n_heads_kv is not None:
            if not isinstance(self.n_heads_kv, int) or not 0 < self.n_heads_kv <= self.n_heads:
                raise ValidationError(
                    f"n_heads_kv must be in 1..{self.n_heads}, got {self.n_heads_kv!r}"
                )


@dataclass(frozen=True)
class ShardDescriptor:
    """One file of a (possibly split) model."""

    index: int  # 1-based
    total: int
    byte_size: int
    locator: str

    def __post_init__(self) -> None:
        if not 1 <= self.index <= self.total:
            raise ValidationError(
                f"Shard index {self.index} out of range 1..{self.total} for {self.locator}"
            )
        if self.byte_size < 0:
            raise ValidationError(f"Negative size {self.byte_size} for shard {self.locator}")


@dataclass(frozen=True)
class MemoryEstimate:
    """Itemized peak-memory estimate. All byte counts are decimal-unit exact integers."""

    model_bytes: int
    kv_bytes: int
    overhead_bytes: int
    total_bytes: int
    assumptions: Tuple[str, ...] = ()
    architecture: Optional[ArchitectureParams] = None
    profile: Optional[QuantizationProfile] = None
    context_length: int = 0
    parameter_count_b: float = 0.0
    shards: Tuple[ShardDescriptor, ...] = field(default_factory=tuple)

    @property
    def model_mb(self) -> float:
        return to_mb(self.model_bytes)

    @property
    def kv_mb(self) -> float:
        return to_mb(self.kv_bytes)

    @property
    def overhead_mb(self) -> float:
        return to_mb(self.overhead_bytes)

    @property
    def total_mb(self) -> float:
        return to_mb(self.total_bytes)

    @property
    def model_gb(self) -> float:
        return to_gb(self.model_bytes)

    @property
    def kv_gb(self) -> float:
        return to_gb(self.kv_bytes)

    @property
    def overhead_gb(self) -> float:
        return to_gb(self.overhead_bytes)

    @property
    def total_gb(self) -> float:
        return to_gb(self.total_bytes)

    def to_dict(self) -> Dict[str, Any]:
        d = to_dict(self)
        for part in ("model", "kv", "overhead", "total"):
            n = getattr(self, f"{part}_bytes")
            d[f"{part}_mb"] = to_mb(n)
            d[f"{part}_gb"] = to_gb(n)
        return d
