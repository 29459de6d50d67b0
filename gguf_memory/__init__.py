# gguf_memory/__init__.py
"""
gguf_memory
===========

Estimate the peak memory needed to serve a quantized GGUF model from its
metadata alone: local files or remote URLs (HTTP range requests), split
models, KV cache precision and context length, with an auditable assumption log.
"""
from __future__ import annotations

from importlib.metadata import version as _pkg_version

try:
    # Read version dynamically from installed package metadata
    __version__: str = _pkg_version("ggufmem")
except Exception:  # pragma: no cover - fallback for development environments
    __version__ = "0.0.0-dev"

from gguf_memory.analysis.base import ArchitectureParams, MemoryEstimate, ShardDescriptor
from gguf_memory.analysis.estimator import Estimator, estimate_memory
from gguf_memory.config import EstimatorConfig
from gguf_memory.errors import (
    EstimationCancelled,
    EstimationError,
    FormatError,
    InconsistentShardCountError,
    MissingRequiredKeyError,
    NetworkError,
    SourceUnavailable,
    ValidationError,
)
from gguf_memory.model_formats.gguf.gguf_quantization import KVCacheType, QuantizationProfile

__all__ = [
    "__version__",
    "ArchitectureParams",
    "EstimationCancelled",
    "EstimationError",
    "Estimator",
    "EstimatorConfig",
    "FormatError",
    "InconsistentShardCountError",
    "KVCacheType",
    "MemoryEstimate",
    "MissingRequiredKeyError",
    "NetworkError",
    "QuantizationProfile",
    "ShardDescriptor",
    "SourceUnavailable",
    "ValidationError",
    "estimate_memory",
]
