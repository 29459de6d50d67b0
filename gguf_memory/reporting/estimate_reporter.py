# gguf_memory/reporting/estimate_reporter.py
"""
Console reporting for memory estimates.
"""
from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from gguf_memory.analysis.base import MemoryEstimate, to_gb, to_mb

console = Console()


def _render_summary(est: MemoryEstimate) -> None:
    """Render the inputs the estimate was computed from."""
    t = Table(title="GGUF Memory Estimate", box=box.SIMPLE_HEAVY)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    if est.shards:
        t.add_row("Model", est.shards[0].locator)
    t.add_row("Context length", f"{est.context_length:,}")
    if est.profile is not None:
        t.add_row("KV cache type", est.profile.name)
    t.add_row("Parameters (B)", f"{est.parameter_count_b:g}")
    arch = est.architecture
    if arch is not None:
        t.add_row("Layers", str(arch.n_layers))
        t.add_row("Embedding length", str(arch.d_model))
        t.add_row("Heads (q / kv)", f"{arch.n_heads} / {arch.effective_heads_kv}")
    console.print(t)


def _render_breakdown(est: MemoryEstimate) -> None:
    """Render the itemized memory breakdown in bytes, MB and GB (decimal)."""
    table = Table(title="Memory Breakdown", box=box.ROUNDED, title_style="bold magenta")
    table.add_column("Component", style="cyan")
    table.add_column("Bytes", justify="right")
    table.add_column("MB", justify="right")
    table.add_column("GB", justify="right", style="green")
    rows = [
        ("Model weights", est.model_bytes),
        ("KV cache", est.kv_bytes),
        ("Overhead", est.overhead_bytes),
    ]
    for name, n in rows:
        table.add_row(name, f"{n:,}", f"{to_mb(n):,.2f}", f"{to_gb(n):,.3f}")
    table.add_row(
        "[bold]Total[/bold]",
        f"[bold]{est.total_bytes:,}[/bold]",
        f"[bold]{est.total_mb:,.2f}[/bold]",
        f"[bold]{est.total_gb:,.3f}[/bold]",
    )
    console.print(table)


def _render_shards(est: MemoryEstimate) -> None:
    if len(est.shards) < 2:
        return
    table = Table(title="Shards", box=box.ROUNDED, title_style="bold magenta")
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Locator", style="cyan")
    table.add_column("Bytes", justify="right")
    for s in est.shards:
        table.add_row(f"{s.index}/{s.total}", s.locator, f"{s.byte_size:,}")
    console.print(table)


def _render_assumptions(est: MemoryEstimate) -> None:
    if not est.assumptions:
        return
    t = Table(title="Assumptions", box=box.SIMPLE_HEAVY, show_lines=False)
    t.add_column("#", style="dim", justify="right")
    t.add_column("Assumption")
    for i, note in enumerate(est.assumptions, start=1):
        t.add_row(str(i), note)
    console.print(t)


def render_report(est: MemoryEstimate) -> None:
    """Renders the full console report for one estimate."""
    _render_summary(est)
    _render_breakdown(est)
    _render_shards(est)
    _render_assumptions(est)
