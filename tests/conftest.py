"""Shared fixtures: an in-memory GGUF writer and a mock HTTP range server."""

from __future__ import annotations

import re
import struct
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import httpx
import pytest

from gguf_memory.config import EstimatorConfig
from gguf_memory.model_formats.gguf.gguf import GGUFValueType as T

_FORMATS = {
    T.UINT8: "B",
    T.INT8: "b",
    T.UINT16: "H",
    T.INT16: "h",
    T.UINT32: "I",
    T.INT32: "i",
    T.FLOAT32: "f",
    T.BOOL: "B",
    T.UINT64: "Q",
    T.INT64: "q",
    T.FLOAT64: "d",
}

# (key, type, value); arrays use value = (element_type, [values])
Entry = Tuple[str, T, object]


def _string(s: str, order: str, wide: bool) -> bytes:
    raw = s.encode("utf-8")
    return struct.pack(order + ("Q" if wide else "I"), len(raw)) + raw


def _scalar(vtype: T, value, order: str, wide: bool) -> bytes:
    if vtype == T.STRING:
        return _string(value, order, wide)
    return struct.pack(order + _FORMATS[vtype], value)


def build_gguf(
    entries: Sequence[Entry],
    *,
    version: int = 3,
    endian: str = "LE",
    n_tensors: int = 0,
    magic: bytes = b"GGUF",
    tail: bytes = b"",
) -> bytes:
    """Serialize a GGUF header and key/value section, followed by ``tail``."""
    order = "<" if endian == "LE" else ">"
    wide = version >= 2
    out = bytearray(magic)
    out += struct.pack(order + "I", version)
    out += struct.pack(order + ("qq" if wide else "II"), n_tensors, len(entries))
    for key, vtype, value in entries:
        out += _string(key, order, wide)
        out += struct.pack(order + "i", int(vtype))
        if vtype == T.ARRAY:
            elem, values = value
            out += struct.pack(order + "i", int(elem))
            out += struct.pack(order + ("Q" if wide else "I"), len(values))
            for v in values:
                out += _scalar(elem, v, order, wide)
        else:
            out += _scalar(vtype, value, order, wide)
    return bytes(out) + tail


def llama_entries(
    *,
    n_layers: int = 32,
    d_model: int = 4096,
    n_heads: int = 32,
    n_heads_kv: Optional[int] = None,
    size_label: Optional[str] = "7B",
    split_count: Optional[int] = None,
    split_no: Optional[int] = None,
) -> List[Entry]:
    entries: List[Entry] = [
        ("general.architecture", T.STRING, "llama"),
        ("general.name", T.STRING, "Test Llama"),
        ("llama.context_length", T.UINT32, 4096),
        ("llama.block_count", T.UINT32, n_layers),
        ("llama.embedding_length", T.UINT32, d_model),
        ("llama.attention.head_count", T.UINT32, n_heads),
        ("tokenizer.ggml.tokens", T.ARRAY, (T.STRING, ["<s>", "</s>", "hello", "world"])),
        ("tokenizer.ggml.scores", T.ARRAY, (T.FLOAT32, [0.0, 0.0, -1.5, -2.5])),
    ]
    if n_heads_kv is not None:
        entries.append(("llama.attention.head_count_kv", T.UINT32, n_heads_kv))
    if size_label is not None:
        entries.append(("general.size_label", T.STRING, size_label))
    if split_count is not None:
        entries.append(("split.count", T.UINT16, split_count))
    if split_no is not None:
        entries.append(("split.no", T.UINT16, split_no))
    return entries


@pytest.fixture
def llama_gguf() -> bytes:
    return build_gguf(llama_entries(), n_tensors=3, tail=b"\x00" * 1024)


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, data: bytes = b"", size: Optional[int] = None) -> str:
        path = tmp_path / name
        with open(path, "wb") as f:
            f.write(data)
            if size is not None:
                f.truncate(size)
        return str(path)

    return _write


class RangeServer:
    """httpx MockTransport handler serving byte blobs with optional Range support."""

    _RANGE = re.compile(r"bytes=(\d+)-(\d+)")

    def __init__(
        self,
        files: Dict[str, bytes],
        *,
        honor_range: bool = True,
        chunk: int = 64,
        max_range: Optional[int] = None,
    ):
        self.files = files
        self.honor_range = honor_range
        self.chunk = chunk
        # cap on bytes per 206 response, like CDNs that split large ranges
        self.max_range = max_range
        self.requests: List[Tuple[str, Optional[str]]] = []
        self.chunks_served = 0
        self.status_override: Dict[str, int] = {}

    def ranges_for(self, path: str) -> List[Tuple[int, int]]:
        out = []
        for p, header in self.requests:
            if p == path and header:
                m = self._RANGE.fullmatch(header)
                out.append((int(m.group(1)), int(m.group(2))))
        return out

    def _body(self, data: bytes) -> Iterator[bytes]:
        for i in range(0, len(data), self.chunk):
            self.chunks_served += 1
            yield data[i : i + self.chunk]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        header = request.headers.get("Range")
        self.requests.append((path, header))
        if path in self.status_override:
            return httpx.Response(self.status_override[path])
        data = self.files.get(path)
        if data is None:
            return httpx.Response(404)
        if not self.honor_range or header is None:
            return httpx.Response(
                200, headers={"Content-Length": str(len(data))}, content=self._body(data)
            )
        m = self._RANGE.fullmatch(header)
        start, end = int(m.group(1)), min(int(m.group(2)), len(data) - 1)
        if self.max_range is not None:
            end = min(end, start + self.max_range - 1)
        if start >= len(data):
            return httpx.Response(416, headers={"Content-Range": f"bytes */{len(data)}"})
        return httpx.Response(
            206,
            headers={"Content-Range": f"bytes {start}-{end}/{len(data)}"},
            content=data[start : end + 1],
        )

    def config(self, **kwargs) -> EstimatorConfig:
        return EstimatorConfig(transport=httpx.MockTransport(self), **kwargs)
