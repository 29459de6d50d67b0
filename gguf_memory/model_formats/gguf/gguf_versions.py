# gguf_memory/model_formats/gguf/gguf_versions.py
"""
Version-aware, resumable GGUF metadata parsing with endianness detection (v1/v2/v3).

``parse_gguf_metadata`` is a pure function of the bytes it is given: it either
decodes the whole key/value section, reports how many more bytes it needs, or
raises ``FormatError``. Callers grow the prefix and call it again from offset 0.
The tensor info section that follows the key/value entries is never read.
"""

from __future__ import annotations

import struct
from typing import Dict, Tuple, Union

from gguf_memory.errors import FormatError

from .gguf import Complete, GGUFValue, GGUFValueType, MetadataStore, NeedMoreBytes, ParseResult

MAGIC = b"GGUF"
SUPPORTED_VERSIONS = (1, 2, 3)
HEADER_PREFIX_SIZE = 8  # magic + version

# struct codes of fixed-width scalars
SCALAR_FORMATS = {
    GGUFValueType.UINT8: "B",
    GGUFValueType.INT8: "b",
    GGUFValueType.UINT16: "H",
    GGUFValueType.INT16: "h",
    GGUFValueType.UINT32: "I",
    GGUFValueType.INT32: "i",
    GGUFValueType.FLOAT32: "f",
    GGUFValueType.BOOL: "?",
    GGUFValueType.UINT64: "Q",
    GGUFValueType.INT64: "q",
    GGUFValueType.FLOAT64: "d",
}

Buffer = Union[bytes, bytearray, memoryview]


class _Truncated(Exception):
    """Internal signal: decoding needs the buffer to reach ``needed_end``."""

    def __init__(self, needed_end: int, at: int):
        super().__init__(needed_end, at)
        self.needed_end = needed_end
        self.at = at


class _Reader:
    """Cursor over the buffer. v1 uses 32-bit lengths/counts, v2+ 64-bit."""

    __slots__ = ("buf", "off", "order", "wide")

    def __init__(self, buf: memoryview, off: int, endian: str, version: int):
        self.buf = buf
        self.off = off
        self.order = "<" if endian == "LE" else ">"
        self.wide = version >= 2

    def need(self, n: int) -> None:
        if self.off + n > len(self.buf):
            raise _Truncated(self.off + n, self.off)

    def unpack(self, fmt: str) -> tuple:
        fmt = self.order + fmt
        self.need(struct.calcsize(fmt))
        vals = struct.unpack_from(fmt, self.buf, self.off)
        self.off += struct.calcsize(fmt)
        return vals

    def i32(self) -> int:
        return self.unpack("i")[0]

    def length(self) -> int:
        return self.unpack("Q" if self.wide else "I")[0]

    def string(self) -> str:
        start = self.off
        n = self.length()
        self.need(n)
        raw = bytes(self.buf[self.off : self.off + n])
        self.off += n
        try:
            return raw.decode("utf-8", "strict")
        except UnicodeDecodeError as e:
            raise FormatError(f"Invalid UTF-8 string at offset {start}: {e.reason}") from e


def _value_type(code: int, at: int) -> GGUFValueType:
    try:
        return GGUFValueType(code)
    except ValueError:
        raise FormatError(f"Unknown GGUF value type {code} at offset {at}") from None


def _read_scalar(r: _Reader, vtype: GGUFValueType):
    if vtype == GGUFValueType.STRING:
        return r.string()
    if vtype == GGUFValueType.BOOL:
        return bool(r.unpack("B")[0])
    if vtype in SCALAR_FORMATS:
        return r.unpack(SCALAR_FORMATS[vtype])[0]
    raise FormatError(f"Value type {vtype.name} is not a scalar (offset {r.off})")


def _read_array(r: _Reader) -> Tuple[GGUFValueType, tuple]:
    at = r.off
    elem = _value_type(r.i32(), at)
    if elem == GGUFValueType.ARRAY:
        raise FormatError(f"Nested arrays are not supported (offset {at})")
    count = r.length()
    if elem == GGUFValueType.STRING:
        return elem, tuple(r.string() for _ in range(count))
    # fixed-width elements: the whole array is required at once
    fmt = "B" if elem == GGUFValueType.BOOL else SCALAR_FORMATS[elem]
    r.need(count * struct.calcsize(fmt))
    values = r.unpack(f"{count}{fmt}") if count else ()
    if elem == GGUFValueType.BOOL:
        values = tuple(bool(v) for v in values)
    return elem, tuple(values)


def _parse_kv(r: _Reader) -> Tuple[str, GGUFValue]:
    start = r.off
    key = r.string()
    type_at = r.off
    vtype = _value_type(r.i32(), type_at)
    if vtype == GGUFValueType.ARRAY:
        elem, values = _read_array(r)
        return key, GGUFValue(vtype, values, elem, offset_start=start, offset_end=r.off)
    value = _read_scalar(r, vtype)
    return key, GGUFValue(vtype, value, offset_start=start, offset_end=r.off)


def detect_version(buf: Buffer) -> Tuple[int, str]:
    """Return ``(version, endian)`` from the first 8 bytes or raise FormatError."""
    if bytes(buf[:4]) != MAGIC:
        raise FormatError(f"Invalid magic {bytes(buf[:4])!r} at offset 0; not a GGUF file")
    version_le = struct.unpack_from("<I", buf, 4)[0]
    version_be = struct.unpack_from(">I", buf, 4)[0]
    if version_le in SUPPORTED_VERSIONS:
        return version_le, "LE"
    if version_be in SUPPORTED_VERSIONS:
        return version_be, "BE"
    raise FormatError(
        f"Unsupported GGUF version field (LE={version_le}/BE={version_be}); "
        f"expected one of {SUPPORTED_VERSIONS}"
    )


def _parse_by_version(buf: memoryview, version: int, endian: str) -> MetadataStore:
    r = _Reader(buf, HEADER_PREFIX_SIZE, endian, version)
    if version == 1:
        n_tensors, n_kv = r.unpack("II")
    else:
        # v2/v3: 64-bit signed counts in practice
        n_tensors, n_kv = r.unpack("qq")
    if n_tensors < 0 or n_kv < 0:
        raise FormatError(f"Negative counts in header (n_tensors={n_tensors}, n_kv={n_kv})")

    kv: Dict[str, GGUFValue] = {}
    for _ in range(n_kv):
        key, item = _parse_kv(r)
        kv[key] = item  # a repeated key overwrites the earlier one

    return MetadataStore(
        kv,
        version=version,
        endian=endian,
        n_tensors=int(n_tensors),
        n_kv=int(n_kv),
        kv_end_offset=r.off,
    )


def parse_gguf_metadata(buf: Buffer) -> ParseResult:
    """Decode the GGUF header and key/value section from a byte prefix.

    Returns:
        ``Complete`` with the metadata store, or ``NeedMoreBytes`` with the
        exact number of additional bytes required to decode the element where
        the buffer ran out.

    Raises:
        FormatError: bad magic or version, unknown type codes, invalid UTF-8.
    """
    mv = memoryview(buf)
    head = bytes(mv[:4])
    if head != MAGIC[: len(head)]:
        # a wrong marker is fatal however short the buffer is
        raise FormatError(f"Invalid magic {head!r} at offset 0; not a GGUF file")
    if len(mv) < HEADER_PREFIX_SIZE:
        return NeedMoreBytes(additional=HEADER_PREFIX_SIZE - len(mv), offset=len(mv))

    version, endian = detect_version(mv)
    try:
        return Complete(_parse_by_version(mv, version, endian))
    except _Truncated as t:
        return NeedMoreBytes(additional=t.needed_end - len(mv), offset=t.at)
