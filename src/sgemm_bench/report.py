from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]

from .bench import BenchResult
from .device import DeviceInfo
from .export import load_results
from .pipeline import PipelineMap
from .verify import CheckResult


def _format_float(v: float | None, fmt: str = ".2f") -> str:
    if v is None:
        return "NA"
    return format(v, fmt)


def _format_deviation(v: float | None) -> str:
    if v is None:
        return "NaN/Inf"
    return f"{v:e}"


def _table(header: list[str], rows: list[list[str]]) -> list[str]:
    lines = ["| " + " | ".join(header) + " |", "|" + "|".join(["---"] * len(header)) + "|"]
    for row in rows:
        lines.append("| " + " | ".join(row) + " |")
    return lines


# Console output.


def print_device_info(info: DeviceInfo) -> None:
    print(f"Using {info.backend} device: {info.name}")
    if info.compute_capability is not None:
        print(f"  compute capability: {info.compute_capability}")
    if info.multiprocessors is not None:
        print(f"  multiprocessors:    {info.multiprocessors}")
    if info.total_memory_bytes is not None:
        print(f"  memory:             {info.total_memory_bytes / (1 << 30):.1f} GiB")
    if info.max_threads_per_group is not None:
        print(f"  max threads/group:  {info.max_threads_per_group}")


def print_build_summary(pipelines: PipelineMap) -> None:
    print(f"\nCompiled {len(pipelines)} kernel(s):")
    for p in pipelines.values():
        d = p.descriptor
        print(f"  {d.name:<16} {d.entry_point:<18} tile {d.tile_shape.to_label():<6} {p.build_time_s * 1e3:8.1f} ms")


def print_demo(result: CheckResult) -> None:
    n = result.problem_size
    print(f"SGEMM complete for {n}x{n} (k = {n}) with {result.kernel_name}")
    print(f"Maximum difference vs CPU reference: {result.max_absolute_deviation:e}")


def print_check_results(checks: Sequence[CheckResult]) -> None:
    print("\nCorrectness:")
    for c in checks:
        verdict = "PASS" if c.passed else "FAIL"
        print(f"  {c.kernel_name:<16} n={c.problem_size:<5} {verdict}  max abs diff {c.max_absolute_deviation:e}")


def print_bench_results(benches: Sequence[BenchResult]) -> None:
    print("\nThroughput:")
    for b in benches:
        per_iter = _format_float(b.time_per_iteration_ms, ".3f")
        print(
            f"  {b.kernel_name:<16} n={b.problem_size:<5} {b.throughput_gflops:10.2f} GFLOPS"
            f"  ({b.iterations} iters, {per_iter} ms/iter)"
        )


# Markdown report from a results document.


def _records(results: dict[str, Any], kind: str) -> list[dict[str, Any]]:
    return [r for r in results.get("records", []) if r.get("kind") == kind]


def _kernel_order(results: dict[str, Any]) -> list[str]:
    names = [k["name"] for k in results.get("kernels", [])]
    for r in results.get("records", []):
        if r["kernel"] not in names:
            names.append(r["kernel"])
    return names


def correctness_table(results: dict[str, Any]) -> list[str]:
    checks = _records(results, "check")
    sizes = sorted({int(r["size"]) for r in checks})
    by_key = {(r["kernel"], int(r["size"])): r for r in checks}

    rows: list[list[str]] = []
    for name in _kernel_order(results):
        recs = [by_key[(name, n)] for n in sizes if (name, n) in by_key]
        if not recs:
            continue
        cells = [f"`{name}`"]
        for n in sizes:
            rec = by_key.get((name, n))
            if rec is None:
                cells.append("NA")
            else:
                cells.append(f"{rec['status']} ({_format_deviation(rec['max_abs_error'])})")
        cells.append("pass" if all(r["status"] == "pass" for r in recs) else "fail")
        rows.append(cells)
    return _table(["kernel", *[f"n={n}" for n in sizes], "verdict"], rows)


def throughput_table(results: dict[str, Any]) -> list[str]:
    benches = _records(results, "bench")
    sizes = sorted({int(r["size"]) for r in benches})
    by_key = {(r["kernel"], int(r["size"])): r for r in benches}

    rows: list[list[str]] = []
    for name in _kernel_order(results):
        if not any((name, n) in by_key for n in sizes):
            continue
        cells = [f"`{name}`"]
        for n in sizes:
            rec = by_key.get((name, n))
            cells.append(_format_float(rec["gflops"]) if rec is not None else "NA")
        rows.append(cells)
    return _table(["kernel", *[f"n={n} GFLOPS" for n in sizes]], rows)


def fastest_by_size(results: dict[str, Any]) -> dict[int, tuple[str, float]]:
    best: dict[int, tuple[str, float]] = {}
    for r in _records(results, "bench"):
        n = int(r["size"])
        g = float(r["gflops"])
        if n not in best or g > best[n][1]:
            best[n] = (r["kernel"], g)
    return dict(sorted(best.items()))


def write_report(results: dict[str, Any], out_dir: Path) -> Path:
    run = results.get("run", {})
    gpu = run.get("environment", {}).get("gpu", {})
    settings = run.get("settings", {})
    policy = settings.get("bench_policy", {})

    md = MdUtils(file_name=str(out_dir / "report"), title="SGEMM Kernel Report")
    md.new_header(level=1, title="Run Metadata")
    md.new_list(
        [
            f"Run: `{run.get('run_id', '')}` ({run.get('started_at', '')} .. {run.get('finished_at', '')})",
            f"Device: `{gpu.get('device_name', 'unknown')}` ({gpu.get('backend', 'unknown')})",
            f"Commit: `{run.get('git', {}).get('commit', '')}`",
            f"Status: `{run.get('status', '')}`",
            f"Tolerance: `{settings.get('tolerance', '')}` max absolute deviation",
            f"Timing: `warmup={policy.get('warmup_iterations', '')}`, "
            f"`min_duration_s={policy.get('min_duration_s', '')}`, `max_iterations={policy.get('max_iterations', '')}`",
        ]
    )
    if run.get("failure_reason"):
        md.new_paragraph(f"Failure: {run['failure_reason']}")

    md.new_header(level=1, title="Correctness")
    md.new_paragraph("\n".join(correctness_table(results)))
    demos = _records(results, "demo")
    if demos:
        md.new_header(level=2, title="Deterministic Demonstration")
        md.new_list(
            [f"`{r['kernel']}` n={r['size']}: {r['status']} ({_format_deviation(r['max_abs_error'])})" for r in demos]
        )

    md.new_header(level=1, title="Throughput")
    if _records(results, "bench"):
        md.new_paragraph("\n".join(throughput_table(results)))
        failed = {r["kernel"] for r in _records(results, "check") if r["status"] != "pass"}
        lines = []
        for n, (name, g) in fastest_by_size(results).items():
            note = " (failed verification)" if name in failed else ""
            lines.append(f"n={n}: `{name}` at {g:.2f} GFLOPS{note}")
        md.new_header(level=2, title="Fastest Kernel per Size")
        md.new_list(lines)
        md.new_paragraph("GFLOPS counts one fused multiply-add as two operations (`2*n^3` per multiply).")
    else:
        md.new_paragraph("No benchmarks were run.")

    md.create_md_file()
    return out_dir / "report.md"


def report_run(*, out_dir: Path) -> int:
    results_path = out_dir / "results.json"
    if not results_path.exists():
        raise FileNotFoundError(f"Missing results.json at {results_path}")

    write_report(load_results(results_path), out_dir)
    return 0
