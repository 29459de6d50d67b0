# gguf_memory/model_formats/gguf/gguf.py
"""
GGUF shared structures: typed metadata values, the metadata store and parse results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union


class GGUFValueType(IntEnum):
    """Type discriminants of GGUF metadata values."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12


INTEGER_TYPES = frozenset(
    {
        GGUFValueType.UINT8,
        GGUFValueType.INT8,
        GGUFValueType.UINT16,
        GGUFValueType.INT16,
        GGUFValueType.UINT32,
        GGUFValueType.INT32,
        GGUFValueType.UINT64,
        GGUFValueType.INT64,
    }
)


@dataclass(frozen=True)
class GGUFValue:
    """One decoded metadata value.

    ``element_type`` is only set for arrays, whose ``value`` is a tuple.
    """

    type: GGUFValueType
    value: Any
    element_type: Optional[GGUFValueType] = None
    offset_start: int = 0
    offset_end: int = 0

    @property
    def is_array(self) -> bool:
        return self.type == GGUFValueType.ARRAY

    @property
    def is_integer(self) -> bool:
        return self.type in INTEGER_TYPES


class MetadataStore(Mapping[str, GGUFValue]):
    """Read-only, insertion-ordered view of one file's key/value metadata."""

    __slots__ = ("_kv", "version", "endian", "n_tensors", "n_kv", "kv_end_offset")

    def __init__(
        self,
        kv: Dict[str, GGUFValue],
        *,
        version: int,
        endian: str,
        n_tensors: int,
        n_kv: int,
        kv_end_offset: int,
    ):
        self._kv = MappingProxyType(dict(kv))
        self.version = version
        self.endian = endian  # 'LE' or 'BE'
        self.n_tensors = n_tensors
        self.n_kv = n_kv
        self.kv_end_offset = kv_end_offset

    def __getitem__(self, key: str) -> GGUFValue:
        return self._kv[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._kv)

    def __len__(self) -> int:
        return len(self._kv)

    def value(self, key: str, default: Any = None) -> Any:
        """Return the decoded Python value for ``key`` or ``default``."""
        item = self._kv.get(key)
        return default if item is None else item.value

    def __repr__(self) -> str:
        return (
            f"MetadataStore(version={self.version}, endian={self.endian!r}, "
            f"n_kv={self.n_kv}, n_tensors={self.n_tensors})"
        )


@dataclass(frozen=True)
class Complete:
    """Metadata section fully decoded."""

    store: MetadataStore


@dataclass(frozen=True)
class NeedMoreBytes:
    """The buffer ended inside an entry; ``additional`` more bytes are required."""

    additional: int
    offset: int  # where decoding stopped


ParseResult = Union[Complete, NeedMoreBytes]
