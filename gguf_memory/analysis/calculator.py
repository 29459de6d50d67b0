# gguf_memory/analysis/calculator.py
"""
Memory calculator: model weights + KV cache + runtime overhead.

    kv_bytes       = bytes_per_kv_pair × d_model × (head_count_kv / head_count) × n_layers × context
    overhead_bytes = (0.02 × P + 0.15) × 10^9        (P = parameters in billions)
    total_bytes    = model_bytes + kv_bytes + overhead_bytes

Arithmetic is exact; each component is rounded up to a whole byte once and
the total is the exact sum of the three components.
"""

from __future__ import annotations

import math
from decimal import ROUND_CEILING, Decimal
from fractions import Fraction
from typing import Iterable

from gguf_memory.analysis.base import BYTES_PER_GB, ArchitectureParams, MemoryEstimate, ShardDescriptor
from gguf_memory.errors import ValidationError
from gguf_memory.model_formats.gguf.gguf_quantization import QuantizationProfile

OVERHEAD_GB_PER_BILLION = Decimal("0.02")
OVERHEAD_GB_BASE = Decimal("0.15")


def validate_context_length(context_length: int) -> None:
    if isinstance(context_length, bool) or not isinstance(context_length, int) or context_length <= 0:
        raise ValidationError(f"context_length must be a positive integer, got {context_length!r}")


def validate_parameter_count(parameter_count_b: "float | Decimal") -> None:
    if (
        isinstance(parameter_count_b, bool)
        or not isinstance(parameter_count_b, (int, float, Decimal))
        or not math.isfinite(parameter_count_b)
        or parameter_count_b < 0
    ):
        raise ValidationError(
            f"parameter count must be a non-negative number of billions, got {parameter_count_b!r}"
        )


def kv_cache_bytes(
    architecture: ArchitectureParams, context_length: int, profile: QuantizationProfile
) -> int:
    """KV cache size for ``context_length`` tokens, scaled for grouped-query attention."""
    exact = (
        Fraction(profile.bytes_per_kv_pair)
        * architecture.d_model
        * Fraction(architecture.effective_heads_kv, architecture.n_heads)
        * architecture.n_layers
        * context_length
    )
    return math.ceil(exact)


def overhead_bytes(parameter_count_b: "float | Decimal") -> int:
    """Runtime overhead (compute buffers, scratch) in decimal gigabytes, as bytes."""
    # str() keeps a float's shortest repr, so 0.013 stays 0.013
    p = parameter_count_b if isinstance(parameter_count_b, Decimal) else Decimal(str(parameter_count_b))
    gb = OVERHEAD_GB_PER_BILLION * p + OVERHEAD_GB_BASE
    return int((gb * BYTES_PER_GB).to_integral_value(rounding=ROUND_CEILING))


def calculate_memory(
    architecture: ArchitectureParams,
    model_bytes: int,
    context_length: int,
    profile: QuantizationProfile,
    parameter_count_b: "float | Decimal",
    assumptions: Iterable[str] = (),
    shards: Iterable[ShardDescriptor] = (),
) -> MemoryEstimate:
    """Combine weights, KV cache and overhead into an itemized estimate.

    Raises:
        ValidationError: non-positive context length or architecture fields,
            negative model size or parameter count.
    """
    validate_context_length(context_length)
    architecture.validate()
    if isinstance(model_bytes, bool) or not isinstance(model_bytes, int) or model_bytes < 0:
        raise ValidationError(f"model_bytes must be a non-negative integer, got {model_bytes!r}")
    validate_parameter_count(parameter_count_b)

    notes = list(assumptions)
    if architecture.n_heads_kv is not None and architecture.n_heads_kv != architecture.n_heads:
        notes.append(
            "Grouped-query attention: KV cache scaled by head_count_kv/head_count = "
            f"{architecture.n_heads_kv}/{architecture.n_heads}"
        )

    kv = kv_cache_bytes(architecture, context_length, profile)
    overhead = overhead_bytes(parameter_count_b)
    return MemoryEstimate(
        model_bytes=model_bytes,
        kv_bytes=kv,
        overhead_bytes=overhead,
        total_bytes=model_bytes + kv + overhead,
        assumptions=tuple(notes),
        architecture=architecture,
        profile=profile,
        context_length=context_length,
        parameter_count_b=float(parameter_count_b),
        shards=tuple(shards),
    )
