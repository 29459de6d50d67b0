# gguf_memory/reporting/json_reporter.py
"""
JSON reporting utilities for memory estimates.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Dict

from gguf_memory.analysis.base import MemoryEstimate


def to_json_dict(estimate: MemoryEstimate) -> Dict[str, Any]:
    """Convert a MemoryEstimate to a JSON-serializable dict with MB/GB views."""
    d = estimate.to_dict()
    d["units"] = "decimal (1 MB = 1,000,000 bytes; 1 GB = 1,000,000,000 bytes)"
    return d


def write_json(estimate: MemoryEstimate, path: str) -> None:
    """Write the estimate as pretty JSON; ``-`` writes to stdout."""
    payload = to_json_dict(estimate)
    if path == "-":
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
