"""Tests for the resumable GGUF metadata parser."""

import struct

import pytest

from gguf_memory.errors import FormatError
from gguf_memory.model_formats.gguf.gguf import Complete, GGUFValueType as T, NeedMoreBytes
from gguf_memory.model_formats.gguf.gguf_versions import parse_gguf_metadata

from conftest import build_gguf, llama_entries


def test_complete_parse_decodes_typed_values(llama_gguf):
    result = parse_gguf_metadata(llama_gguf)
    assert isinstance(result, Complete)
    store = result.store
    assert store.version == 3
    assert store.endian == "LE"
    assert store.n_tensors == 3
    assert store.value("general.architecture") == "llama"
    assert store.value("llama.block_count") == 32
    assert store["llama.block_count"].type == T.UINT32
    tokens = store["tokenizer.ggml.tokens"]
    assert tokens.is_array and tokens.element_type == T.STRING
    assert tokens.value == ("<s>", "</s>", "hello", "world")
    assert store.value("tokenizer.ggml.scores") == (0.0, 0.0, -1.5, -2.5)


def test_tensor_section_is_not_read(llama_gguf):
    # garbage after the key/value section must not matter
    store = parse_gguf_metadata(llama_gguf).store
    corrupted = llama_gguf[: store.kv_end_offset] + b"\xff" * 64
    assert isinstance(parse_gguf_metadata(corrupted), Complete)


def test_parse_is_idempotent(llama_gguf):
    first = parse_gguf_metadata(llama_gguf).store
    second = parse_gguf_metadata(llama_gguf).store
    assert dict(first) == dict(second)
    half = llama_gguf[:40]
    assert parse_gguf_metadata(half) == parse_gguf_metadata(half)


def test_bad_magic_fails_regardless_of_length():
    for data in (b"X", b"GGUX", b"XXXX" + b"\x00" * 10_000):
        with pytest.raises(FormatError, match="magic"):
            parse_gguf_metadata(data)


def test_partial_magic_asks_for_header():
    assert parse_gguf_metadata(b"") == NeedMoreBytes(additional=8, offset=0)
    assert parse_gguf_metadata(b"GGU") == NeedMoreBytes(additional=5, offset=3)


def test_unsupported_version():
    data = build_gguf(llama_entries(), version=7)
    with pytest.raises(FormatError, match="version"):
        parse_gguf_metadata(data)


def test_need_more_bytes_is_exact_for_scalar_entry():
    data = build_gguf([("a.block_count", T.UINT32, 32)])
    header = 4 + 4 + 8 + 8
    key = 8 + len("a.block_count")
    assert len(data) == header + key + 4 + 4

    # buffer stops after the type code: exactly the 4 value bytes are missing
    result = parse_gguf_metadata(data[: header + key + 4])
    assert result == NeedMoreBytes(additional=4, offset=header + key + 4)

    # buffer stops inside the key length prefix
    result = parse_gguf_metadata(data[: header + 6])
    assert result == NeedMoreBytes(additional=2, offset=header)

    # growing by exactly the requested amount always makes progress
    size = header + 3
    while True:
        result = parse_gguf_metadata(data[:size])
        if isinstance(result, Complete):
            break
        size += result.additional
    assert size == len(data)


def test_need_more_bytes_covers_whole_numeric_array():
    values = list(range(100))
    data = build_gguf([("x.scores", T.ARRAY, (T.UINT32, values))])
    array_start = len(data) - 4 * len(values)
    result = parse_gguf_metadata(data[: array_start + 10])
    assert result == NeedMoreBytes(additional=4 * len(values) - 10, offset=array_start)


def test_duplicate_key_overwrites_earlier_value():
    data = build_gguf([("k", T.UINT32, 1), ("k", T.UINT32, 2)])
    store = parse_gguf_metadata(data).store
    assert store.n_kv == 2
    assert len(store) == 1
    assert store.value("k") == 2


def test_all_scalar_types_decode():
    entries = [
        ("u8", T.UINT8, 255),
        ("i8", T.INT8, -1),
        ("u16", T.UINT16, 65535),
        ("i16", T.INT16, -2),
        ("i32", T.INT32, -3),
        ("f32", T.FLOAT32, 0.5),
        ("b", T.BOOL, 1),
        ("u64", T.UINT64, 2**40),
        ("i64", T.INT64, -(2**40)),
        ("f64", T.FLOAT64, 1e-5),
        ("flags", T.ARRAY, (T.BOOL, [1, 0, 1])),
    ]
    store = parse_gguf_metadata(build_gguf(entries)).store
    assert store.value("u8") == 255
    assert store.value("i8") == -1
    assert store.value("i16") == -2
    assert store.value("f32") == 0.5
    assert store.value("b") is True
    assert store.value("i64") == -(2**40)
    assert store.value("f64") == pytest.approx(1e-5)
    assert store.value("flags") == (True, False, True)


def test_version_one_uses_32_bit_lengths():
    data = build_gguf(llama_entries(), version=1)
    store = parse_gguf_metadata(data).store
    assert store.version == 1
    assert store.value("llama.embedding_length") == 4096


def test_big_endian_file():
    data = build_gguf(llama_entries(), endian="BE")
    store = parse_gguf_metadata(data).store
    assert store.endian == "BE"
    assert store.value("llama.attention.head_count") == 32


def test_unknown_value_type():
    data = bytearray(build_gguf([("k", T.UINT32, 1)]))
    type_offset = 24 + 8 + 1
    data[type_offset : type_offset + 4] = struct.pack("<i", 99)
    with pytest.raises(FormatError, match="Unknown GGUF value type 99"):
        parse_gguf_metadata(bytes(data))


def test_nested_array_rejected():
    data = bytearray(build_gguf([("k", T.ARRAY, (T.UINT8, []))]))
    elem_offset = 24 + 8 + 1 + 4
    data[elem_offset : elem_offset + 4] = struct.pack("<i", int(T.ARRAY))
    with pytest.raises(FormatError, match="Nested"):
        parse_gguf_metadata(bytes(data))


def test_invalid_utf8_key():
    data = bytearray(build_gguf([("k", T.UINT32, 1)]))
    data[24 + 8] = 0xFF
    with pytest.raises(FormatError, match="UTF-8"):
        parse_gguf_metadata(bytes(data))


def test_negative_counts():
    data = bytearray(build_gguf([]))
    data[16:24] = struct.pack("<q", -1)
    with pytest.raises(FormatError, match="Negative"):
        parse_gguf_metadata(bytes(data))
