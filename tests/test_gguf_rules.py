"""Tests for architecture key resolution and parameter count sources."""

from decimal import Decimal

import pytest

from gguf_memory.errors import FormatError, MissingRequiredKeyError, ValidationError
from gguf_memory.model_formats.gguf.gguf import GGUFValueType as T
from gguf_memory.model_formats.gguf.gguf_rules import (
    parse_size_label,
    resolve_architecture,
    resolve_parameter_count,
)
from gguf_memory.model_formats.gguf.gguf_versions import parse_gguf_metadata

from conftest import build_gguf, llama_entries


def _store(entries):
    return parse_gguf_metadata(build_gguf(entries)).store


def test_resolves_llama_keys():
    params, notes = resolve_architecture(_store(llama_entries(n_heads_kv=8)))
    assert (params.n_layers, params.d_model, params.n_heads, params.n_heads_kv) == (32, 4096, 32, 8)
    assert notes == []


def test_missing_head_count_kv_falls_back_with_note():
    params, notes = resolve_architecture(_store(llama_entries()))
    assert params.n_heads_kv is None
    assert params.effective_heads_kv == 32
    assert len(notes) == 1 and "head_count_kv" in notes[0]


def test_missing_required_key_names_it():
    entries = [e for e in llama_entries() if e[0] != "llama.block_count"]
    with pytest.raises(MissingRequiredKeyError) as exc:
        resolve_architecture(_store(entries))
    assert exc.value.key == "llama.block_count"


def test_other_architecture_namespace():
    entries = [
        ("general.architecture", T.STRING, "qwen2"),
        ("qwen2.block_count", T.UINT32, 28),
        ("qwen2.embedding_length", T.UINT64, 3584),
        ("qwen2.attention.head_count", T.INT32, 28),
        ("qwen2.attention.head_count_kv", T.UINT32, 4),
    ]
    params, _ = resolve_architecture(_store(entries))
    assert (params.n_layers, params.d_model, params.n_heads, params.n_heads_kv) == (28, 3584, 28, 4)


def test_namespace_inferred_without_general_architecture():
    entries = [
        ("phi3.block_count", T.UINT32, 32),
        ("phi3.embedding_length", T.UINT32, 3072),
        ("phi3.attention.head_count", T.UINT32, 32),
    ]
    params, _ = resolve_architecture(_store(entries))
    assert params.d_model == 3072


def test_per_layer_head_counts_use_maximum():
    entries = [
        ("general.architecture", T.STRING, "openelm"),
        ("openelm.block_count", T.UINT32, 3),
        ("openelm.embedding_length", T.UINT32, 1280),
        ("openelm.attention.head_count", T.ARRAY, (T.INT32, [12, 12, 12])),
        ("openelm.attention.head_count_kv", T.ARRAY, (T.INT32, [3, 4, 5])),
    ]
    params, notes = resolve_architecture(_store(entries))
    assert params.n_heads == 12
    assert params.n_heads_kv == 5
    assert any("varies per layer" in n for n in notes)


def test_non_integer_value_is_format_error():
    entries = [e for e in llama_entries() if e[0] != "llama.block_count"]
    entries.append(("llama.block_count", T.STRING, "32"))
    with pytest.raises(FormatError, match="llama.block_count"):
        resolve_architecture(_store(entries))


@pytest.mark.parametrize(
    "label, billions",
    [
        ("7B", "7"),
        ("1.5B", "1.5"),
        ("135M", "0.135"),
        ("13M", "0.013"),
        ("8x7B", "56"),
        ("3x1.1B", "3.3"),
        ("1T", "1000"),
        ("70b", "70"),
    ],
)
def test_parse_size_label_is_exact(label, billions):
    assert parse_size_label(label) == Decimal(billions)


def test_parse_size_label_rejects_other_text():
    assert parse_size_label("large") is None


def test_parameter_count_prefers_caller_value():
    p, note = resolve_parameter_count(_store(llama_entries(size_label="7B")), 13)
    assert p == 13.0
    assert "supplied by caller" in note


def test_parameter_count_from_size_label():
    p, note = resolve_parameter_count(_store(llama_entries(size_label="13B")))
    assert p == 13.0
    assert "general.size_label" in note


def test_parameter_count_unavailable():
    with pytest.raises(MissingRequiredKeyError, match="supply it explicitly"):
        resolve_parameter_count(_store(llama_entries(size_label=None)))


def test_parameter_count_negative():
    with pytest.raises(ValidationError):
        resolve_parameter_count(_store(llama_entries()), -2)
