from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import attrs

from .config import DEFAULT_POLICY, HarnessSettings
from .errors import HarnessError
from .registry import default_registry
from .report import report_run
from .runner import harness_main


def _abs_path(p: str) -> Path:
    return Path(p).expanduser().resolve()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sgemm_bench",
        description="Compile, verify and benchmark SGEMM kernel variants.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr.")
    parser.add_argument("--out-dir", type=_abs_path, default=None, help="Also write results.json and report.md here.")
    parser.add_argument("--kernel", action="append", default=None, help="Only run this kernel (repeatable).")
    parser.add_argument("--warmup", type=int, default=DEFAULT_POLICY.warmup_iterations, help="Untimed warmup dispatches.")
    parser.add_argument("--min-duration", type=float, default=DEFAULT_POLICY.min_duration_s, help="Timing floor in seconds.")
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_POLICY.max_iterations, help="Timed dispatch cap.")
    parser.add_argument("--skip-bench", action="store_true", help="Stop after correctness checks.")
    parser.add_argument("--demo", action="store_true", help="Run the deterministic 64x64 demonstration first.")
    parser.add_argument("--strict", action="store_true", help="Exit 1 if any correctness check fails.")

    sub = parser.add_subparsers(dest="cmd")
    rep = sub.add_parser("report", help="Regenerate report.md from results.json (no device needed).")
    rep.add_argument("--out-dir", dest="report_dir", type=_abs_path, required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if ns.cmd == "report":
        try:
            return report_run(out_dir=ns.report_dir)
        except FileNotFoundError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2

    if ns.warmup < 0 or ns.max_iterations < 1 or ns.min_duration < 0:
        parser.error("--warmup must be >= 0, --max-iterations >= 1 and --min-duration >= 0")

    registry = default_registry()
    try:
        if ns.kernel:
            registry = registry.select(ns.kernel)
    except KeyError as e:
        parser.error(str(e))

    settings = HarnessSettings(
        policy=attrs.evolve(
            DEFAULT_POLICY,
            warmup_iterations=ns.warmup,
            min_duration_s=ns.min_duration,
            max_iterations=ns.max_iterations,
        ),
        run_demo=ns.demo,
        run_bench=not ns.skip_bench,
    )

    try:
        return harness_main(registry=registry, settings=settings, out_dir=ns.out_dir, strict=ns.strict)
    except HarnessError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
