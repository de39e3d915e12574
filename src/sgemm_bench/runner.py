from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

import attrs
import numpy as np

from . import report
from .bench import BenchResult, Clock, benchmark_kernel
from .config import HarnessSettings
from .device import Device, DeviceInfo, open_device
from .export import build_results, default_run_id, git_info, utc_now_rfc3339, write_results
from .pipeline import PipelineMap, build_pipelines
from .registry import KernelRegistry
from .verify import CheckResult, check_kernel, run_demo

logger = logging.getLogger(__name__)


@attrs.define(slots=True)
class HarnessRun:
    run_id: str
    started_at: str
    finished_at: str
    device_info: DeviceInfo
    pipelines: PipelineMap
    demos: list[CheckResult] = attrs.field(factory=list)
    checks: list[CheckResult] = attrs.field(factory=list)
    benches: list[BenchResult] = attrs.field(factory=list)

    @property
    def all_checks_passed(self) -> bool:
        return all(c.passed for c in [*self.checks, *self.demos])


def run_harness(
    device: Device,
    registry: KernelRegistry,
    settings: HarnessSettings = HarnessSettings(),
    *,
    clock: Clock = time.perf_counter,
    rng: np.random.Generator | None = None,
) -> HarnessRun:
    """Device info, build every kernel, correctness battery, then benchmarks.

    Any `HarnessError` from the build stage propagates before a single check
    runs. Correctness failures are recorded and the run continues.
    """
    started_at = utc_now_rfc3339()
    run_id = default_run_id()

    info = device.info()
    report.print_device_info(info)

    pipelines = build_pipelines(device, registry)
    report.print_build_summary(pipelines)

    demos: list[CheckResult] = []
    if settings.run_demo:
        print()
        for pipeline in pipelines.values():
            result = run_demo(device, pipeline, tolerance=settings.tolerance)
            report.print_demo(result)
            demos.append(result)

    checks: list[CheckResult] = []
    for pipeline in pipelines.values():
        logger.info("Checking %s over sizes %s", pipeline.name, list(settings.check_sizes))
        checks.extend(check_kernel(device, pipeline, settings.check_sizes, tolerance=settings.tolerance, rng=rng))
    report.print_check_results(checks)

    benches: list[BenchResult] = []
    if settings.run_bench:
        for pipeline in pipelines.values():
            logger.info("Benchmarking %s over sizes %s", pipeline.name, list(settings.bench_sizes))
            benches.extend(benchmark_kernel(device, pipeline, settings.bench_sizes, settings.policy, clock=clock))
        report.print_bench_results(benches)

    return HarnessRun(
        run_id=run_id,
        started_at=started_at,
        finished_at=utc_now_rfc3339(),
        device_info=info,
        pipelines=pipelines,
        demos=demos,
        checks=checks,
        benches=benches,
    )


def find_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def write_outputs(run: HarnessRun, settings: HarnessSettings, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    results = build_results(
        run_id=run.run_id,
        started_at=run.started_at,
        finished_at=run.finished_at,
        device_info=run.device_info,
        settings=settings,
        pipelines=run.pipelines,
        checks=run.checks,
        benches=run.benches,
        git=git_info(find_repo_root()),
        demos=run.demos,
    )
    results_path = out_dir / "results.json"
    write_results(results_path, results)
    report.write_report(results, out_dir)
    logger.info("Wrote %s and report.md", results_path)
    return results_path


def harness_main(
    *,
    registry: KernelRegistry,
    settings: HarnessSettings,
    out_dir: Path | None = None,
    strict: bool = False,
    device_factory: Callable[[], Device] = open_device,
) -> int:
    device = device_factory()
    run = run_harness(device, registry, settings)
    if out_dir is not None:
        write_outputs(run, settings, out_dir)
    if strict and not run.all_checks_passed:
        return 1
    return 0
