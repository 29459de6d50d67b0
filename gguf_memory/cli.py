# gguf_memory/cli.py
"""
cli.py

Rich console CLI:
- estimate: estimate peak memory for a local or remote .gguf model, print the
            breakdown and the assumptions made.
- version:  show the package version.
"""
from __future__ import annotations

import argparse
from typing import Optional

from rich.console import Console
from rich.panel import Panel

from gguf_memory import __version__
from gguf_memory.analysis.estimator import Estimator
from gguf_memory.config import MIB, EstimatorConfig
from gguf_memory.errors import EstimationError
from gguf_memory.logging import configure_logging
from gguf_memory.model_formats.gguf.gguf_quantization import cache_type_names
from gguf_memory.reporting import estimate_reporter
from gguf_memory.reporting.json_reporter import write_json

console = Console(stderr=True)


def _positive_int(text: str) -> int:
    value = int(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {text}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ggufmem",
        description="Estimate the memory needed to serve a GGUF model, from metadata alone.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    sub = p.add_subparsers(dest="cmd", title="Available Commands", metavar="<command>")

    sp = sub.add_parser("estimate", help="Estimate memory for a local path or http(s) URL")
    sp.add_argument("locator", help="Path or URL of a .gguf file (any shard of a split model)")
    sp.add_argument(
        "-c", "--context", type=_positive_int, required=True, help="Context length in tokens"
    )
    sp.add_argument(
        "-k",
        "--cache-type",
        default="fp16",
        choices=cache_type_names(),
        metavar="TYPE",
        help="KV cache precision: fp32, fp16 (bf16), int8 (q8_0), q6, q5, q4. Default: fp16",
    )
    sp.add_argument(
        "-p",
        "--params",
        type=float,
        default=None,
        help="Total parameters in billions (default: read from general.size_label)",
    )
    sp.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout in seconds")
    sp.add_argument(
        "--max-scan-mb",
        type=_positive_int,
        default=256,
        help="Give up if metadata is not found within this many MiB. Default: 256",
    )
    sp.add_argument(
        "--json-out", type=str, default=None, help="Write JSON report to this path ('-' = stdout)"
    )
    sp.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub.add_parser("version", help="Show the version of ggufmem")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 1

    if args.cmd == "version":
        console.print(f"ggufmem version {__version__}")
        return 0

    if args.cmd == "estimate":
        configure_logging(debug=args.debug, quiet=args.json_out == "-")
        try:
            config = EstimatorConfig(
                timeout_s=args.timeout,
                max_scan_bytes=args.max_scan_mb * MIB,
            )
            estimate = Estimator(args.locator, config).run(
                args.context, args.cache_type, args.params
            )
        except EstimationError as e:
            console.print(f"[red]{type(e).__name__}:[/red] {e}")
            return 2

        if args.json_out != "-":
            estimate_reporter.render_report(estimate)
            console.print(
                Panel(
                    f"[bold]Estimated peak memory:[/bold] [green]{estimate.total_gb:,.2f} GB[/green]",
                    style="bold cyan",
                )
            )
        if args.json_out:
            write_json(estimate, args.json_out)
            if args.json_out != "-":
                console.print(f"[dim]Wrote JSON report → {args.json_out}[/dim]")
        return 0

    parser.print_help()
    return 1
