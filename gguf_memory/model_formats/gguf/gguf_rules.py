"""
GGUF metadata key registry and resolution rules.
This file maps architecture-namespaced keys onto the parameters memory estimation needs.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from gguf_memory.analysis.base import ArchitectureParams
from gguf_memory.errors import FormatError, MissingRequiredKeyError, ValidationError

from .gguf import GGUFValueType, INTEGER_TYPES, MetadataStore

ARCHITECTURE_KEY = "general.architecture"
SIZE_LABEL_KEY = "general.size_label"
NAME_KEY = "general.name"
SPLIT_COUNT_KEY = "split.count"
SPLIT_INDEX_KEY = "split.no"

# Keys resolved under the "<architecture>." namespace.
ARCHITECTURE_KEYS: Dict[str, Dict[str, Any]] = {
    "block_count": {"field": "n_layers", "required": True},
    "embedding_length": {"field": "d_model", "required": True},
    "attention.head_count": {"field": "n_heads", "required": True},
    "attention.head_count_kv": {"field": "n_heads_kv", "required": False},
}

_NON_ARCH_PREFIXES = ("general.", "tokenizer.", "split.")

# "7B", "1.5B", "135M", "8x7B", "1T"
_SIZE_LABEL = re.compile(r"^\s*(?:(\d+)x)?(\d+(?:\.\d+)?)([KMBT])\s*$", re.IGNORECASE)
_SIZE_SCALE_B = {
    "K": Decimal("0.000001"),
    "M": Decimal("0.001"),
    "B": Decimal("1"),
    "T": Decimal("1000"),
}


def find_arch_key(store: MetadataStore, suffix: str) -> Optional[str]:
    """Return the full key for ``*.<suffix>``, or None when absent."""
    arch = store.value(ARCHITECTURE_KEY)
    if isinstance(arch, str) and arch:
        key = f"{arch}.{suffix}"
        return key if key in store else None
    matches = [
        k for k in store if k.endswith("." + suffix) and not k.startswith(_NON_ARCH_PREFIXES)
    ]
    if len(matches) > 1:
        raise FormatError(f"Ambiguous keys for *.{suffix}: {', '.join(matches)}")
    return matches[0] if matches else None


def read_int(store: MetadataStore, key: str) -> Tuple[int, Optional[str]]:
    """Read an integer key; per-layer arrays collapse to their maximum.

    Returns the value and, for arrays, a note describing the reduction.
    """
    item = store[key]
    if item.is_integer:
        return int(item.value), None
    if item.type == GGUFValueType.ARRAY and item.element_type in INTEGER_TYPES and item.value:
        values = item.value
        if len(set(values)) == 1:
            return int(values[0]), None
        peak = int(max(values))
        return peak, f"{key} varies per layer ({min(values)}..{peak}); using the maximum {peak}"
    raise FormatError(f"Metadata key {key} has type {item.type.name}, expected an integer")


def resolve_architecture(store: MetadataStore) -> Tuple[ArchitectureParams, List[str]]:
    """Extract architecture parameters and the assumptions made on the way.

    Raises:
        MissingRequiredKeyError: a required key is absent.
        FormatError: a key holds a non-integer value.
    """
    fields: Dict[str, Optional[int]] = {}
    assumptions: List[str] = []
    for suffix, rule in ARCHITECTURE_KEYS.items():
        key = find_arch_key(store, suffix)
        if key is None:
            if rule["required"]:
                arch = store.value(ARCHITECTURE_KEY, "*")
                raise MissingRequiredKeyError(f"{arch}.{suffix}")
            fields[rule["field"]] = None
            continue
        value, note = read_int(store, key)
        if note:
            assumptions.append(note)
        fields[rule["field"]] = value

    params = ArchitectureParams(**fields)
    if params.n_heads_kv is None:
        assumptions.append(
            "attention.head_count_kv not present; assuming standard multi-head attention "
            f"(head_count_kv = head_count = {params.n_heads})"
        )
        logger.warning("head_count_kv missing; falling back to head_count={n}", n=params.n_heads)
    return params, assumptions


def parse_size_label(label: str) -> Optional[Decimal]:
    """Parse a ``general.size_label`` into an exact count of billions, or None."""
    m = _SIZE_LABEL.match(label)
    if not m:
        return None
    experts = int(m.group(1)) if m.group(1) else 1
    return experts * Decimal(m.group(2)) * _SIZE_SCALE_B[m.group(3).upper()]


def resolve_parameter_count(
    store: MetadataStore, supplied_b: Optional[float] = None
) -> Tuple[Union[float, Decimal], str]:
    """Pick the total parameter count (billions) and describe where it came from.

    A caller-supplied value wins; otherwise ``general.size_label`` is parsed.
    """
    if supplied_b is not None:
        if supplied_b < 0:
            raise ValidationError(f"Parameter count must be non-negative, got {supplied_b}")
        return float(supplied_b), f"Parameter count {supplied_b}B supplied by caller"

    label = store.value(SIZE_LABEL_KEY)
    if isinstance(label, str):
        billions = parse_size_label(label)
        if billions is not None:
            return billions, (
                f"Parameter count {billions:g}B derived from {SIZE_LABEL_KEY}={label!r}"
            )
        logger.warning("Unparseable {key}: {label!r}", key=SIZE_LABEL_KEY, label=label)
    raise MissingRequiredKeyError(
        SIZE_LABEL_KEY,
        f"Cannot determine the parameter count: {SIZE_LABEL_KEY} is missing or unparseable; "
        "supply it explicitly",
    )
