# gguf_memory/observability.py
"""
Observability helpers: stage timers and dataclass → JSON-ready dict conversion.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from typing import Any, Mapping

from loguru import logger


@dataclass
class Timer:
    """Context manager that measures a stage in milliseconds and logs it at debug level."""

    name: str
    start: float = 0.0
    duration_ms: float = 0.0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.duration_ms = (time.perf_counter() - self.start) * 1000.0
        outcome = "failed" if exc_type else "done"
        logger.debug("{stage} {outcome} in {ms:.2f}ms", stage=self.name, outcome=outcome, ms=self.duration_ms)


def to_dict(obj: Any) -> Any:
    """Recursively convert dataclasses, enums and containers to plain JSON types."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [to_dict(x) for x in obj]
    if isinstance(obj, Mapping):
        return {str(k): to_dict(v) for k, v in obj.items()}
    return obj
