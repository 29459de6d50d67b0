# gguf_memory/model_formats/gguf/gguf_quantization.py
"""
KV-cache precision profiles.

The registry is a closed, read-only table built at import time and shared by
every estimation running in the process.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from gguf_memory.errors import ValidationError


class KVCacheType(str, Enum):
    """Precisions supported for the KV cache."""

    FP32 = "FP32"
    FP16 = "FP16"
    INT8 = "INT8"
    Q6 = "Q6"
    Q5 = "Q5"
    Q4 = "Q4"


@dataclass(frozen=True)
class QuantizationProfile:
    """Storage cost of one cached value and of one key/value pair."""

    name: str
    bytes_per_value: float
    bytes_per_kv_pair: float


QUANTIZATION_PROFILES: Mapping[KVCacheType, QuantizationProfile] = MappingProxyType(
    {
        KVCacheType.FP32: QuantizationProfile("FP32", 4.0, 8.0),
        KVCacheType.FP16: QuantizationProfile("FP16/BF16", 2.0, 4.0),
        KVCacheType.INT8: QuantizationProfile("INT8", 1.0, 2.0),
        KVCacheType.Q6: QuantizationProfile("Q6", 0.75, 1.5),
        KVCacheType.Q5: QuantizationProfile("Q5", 0.625, 1.25),
        KVCacheType.Q4: QuantizationProfile("Q4", 0.5, 1.0),
    }
)

# Spellings accepted from users, llama.cpp cache-type flags included.
_ALIASES: Mapping[str, KVCacheType] = MappingProxyType(
    {
        "fp32": KVCacheType.FP32,
        "f32": KVCacheType.FP32,
        "fp16": KVCacheType.FP16,
        "f16": KVCacheType.FP16,
        "bf16": KVCacheType.FP16,
        "fp16/bf16": KVCacheType.FP16,
        "int8": KVCacheType.INT8,
        "q8": KVCacheType.INT8,
        "q8_0": KVCacheType.INT8,
        "q6": KVCacheType.Q6,
        "q6_k": KVCacheType.Q6,
        "q5": KVCacheType.Q5,
        "q5_0": KVCacheType.Q5,
        "q5_1": KVCacheType.Q5,
        "q5_k": KVCacheType.Q5,
        "q4": KVCacheType.Q4,
        "q4_0": KVCacheType.Q4,
        "q4_1": KVCacheType.Q4,
        "q4_k": KVCacheType.Q4,
    }
)


def get_profile(cache_type: "str | KVCacheType") -> QuantizationProfile:
    """Look up a profile by enum member or case-insensitive name."""
    if isinstance(cache_type, KVCacheType):
        return QUANTIZATION_PROFILES[cache_type]
    kind = _ALIASES.get(str(cache_type).strip().lower())
    if kind is None:
        choices = ", ".join(k.value for k in KVCacheType)
        raise ValidationError(f"Unknown KV cache type {cache_type!r}; expected one of {choices}")
    return QUANTIZATION_PROFILES[kind]


def cache_type_names() -> list[str]:
    """Names accepted on the command line, canonical ones first."""
    canonical = [k.value.lower() for k in KVCacheType]
    return canonical + sorted(a for a in _ALIASES if a not in canonical)
