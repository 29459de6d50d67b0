# gguf_memory/analysis/estimator.py
"""
Estimator: resolves shards, scans the authoritative metadata and runs the calculator.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from loguru import logger

from gguf_memory.analysis.base import ArchitectureParams, MemoryEstimate, ShardDescriptor
from gguf_memory.analysis.calculator import (
    calculate_memory,
    validate_context_length,
    validate_parameter_count,
)
from gguf_memory.analysis.shards import ShardResolver, total_model_bytes
from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig
from gguf_memory.io.sources import open_source
from gguf_memory.model_formats.gguf.gguf import MetadataStore
from gguf_memory.model_formats.gguf.gguf_quantization import KVCacheType, get_profile
from gguf_memory.model_formats.gguf.gguf_rules import resolve_architecture, resolve_parameter_count
from gguf_memory.model_formats.gguf.gguf_versions import parse_gguf_metadata
from gguf_memory.observability import Timer


@dataclass(frozen=True)
class ModelInspection:
    """Everything learned about a model before any user inputs are applied."""

    locator: str
    shards: Tuple[ShardDescriptor, ...]
    model_bytes: int
    metadata: MetadataStore
    architecture: ArchitectureParams
    assumptions: Tuple[str, ...]


class Estimator:
    """Runs the fetch → parse → resolve pipeline for one model locator."""

    def __init__(
        self,
        locator: str,
        config: Optional[EstimatorConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.locator = locator
        self.config = config or DEFAULT_CONFIG
        self.cancel_event = cancel_event

    def inspect(self) -> ModelInspection:
        """Scan shard 1's metadata and total up every shard's size."""
        resolver = ShardResolver(self.locator, self.config, self.cancel_event)

        with Timer("metadata scan"):
            with open_source(resolver.metadata_locator, self.config, self.cancel_event) as src:
                store = src.scan(parse_gguf_metadata).store
                first = ShardDescriptor(
                    index=1, total=resolver.total, byte_size=src.size(), locator=src.locator
                )
        logger.debug("Parsed {store} from {src}", store=store, src=first.locator)

        assumptions: List[str] = resolver.check_metadata(store)
        with Timer("shard sizes"):
            shards = resolver.discover(known=[first])
        architecture, notes = resolve_architecture(store)
        assumptions.extend(notes)

        return ModelInspection(
            locator=self.locator,
            shards=tuple(shards),
            model_bytes=total_model_bytes(shards),
            metadata=store,
            architecture=architecture,
            assumptions=tuple(assumptions),
        )

    def run(
        self,
        context_length: int,
        cache_type: "str | KVCacheType",
        parameter_count_b: Optional[float] = None,
    ) -> MemoryEstimate:
        """Estimate peak memory; any failure aborts with one ``EstimationError``."""
        # cheap input checks before any I/O
        validate_context_length(context_length)
        if parameter_count_b is not None:
            validate_parameter_count(parameter_count_b)
        profile = get_profile(cache_type)

        inspection = self.inspect()
        p_billions, p_note = resolve_parameter_count(inspection.metadata, parameter_count_b)

        with Timer("calculate"):
            estimate = calculate_memory(
                inspection.architecture,
                inspection.model_bytes,
                context_length,
                profile,
                p_billions,
                assumptions=inspection.assumptions + (p_note,),
                shards=inspection.shards,
            )
        logger.debug(
            "Estimate for {loc}: total={total} bytes ({gb:.3f} GB)",
            loc=self.locator,
            total=estimate.total_bytes,
            gb=estimate.total_gb,
        )
        return estimate


def estimate_memory(
    locator: str,
    context_length: int,
    cache_type: "str | KVCacheType",
    parameter_count_b: Optional[float] = None,
    *,
    config: Optional[EstimatorConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MemoryEstimate:
    """Estimate the memory needed to serve the GGUF model at ``locator``.

    Args:
        locator: Local path or http(s) URL of the model (any shard of a split model).
        context_length: Tokens of context the KV cache must hold.
        cache_type: KV cache precision, e.g. ``"fp16"``, ``"q8_0"``, ``KVCacheType.Q4``.
        parameter_count_b: Total parameters in billions; read from
            ``general.size_label`` when omitted.
        config: Fetch and scan settings.
        cancel_event: Set it from another thread to abort the estimation.
    """
    return Estimator(locator, config, cancel_event).run(context_length, cache_type, parameter_count_b)
