from __future__ import annotations

import json
import platform
import subprocess
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from .bench import BenchResult
from .config import HarnessSettings
from .device import DeviceInfo
from .pipeline import PipelineMap
from .verify import CheckResult

SCHEMA_VERSION = "0.1.0"


def _default_results_schema_path() -> Path:
    return Path(__file__).resolve().with_name("results.schema.json")


def validate_results_schema(results: dict[str, Any], *, schema_path: Path | None = None) -> None:
    schema_path = _default_results_schema_path() if schema_path is None else schema_path
    schema = json.loads(schema_path.read_text())
    Draft202012Validator(schema).validate(results)


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


def git_info(repo_root: Path) -> dict[str, Any]:
    try:
        branch = (
            subprocess.check_output(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=repo_root, stderr=subprocess.DEVNULL)
            .decode()
            .strip()
        )
        commit = (
            subprocess.check_output(["git", "rev-parse", "HEAD"], cwd=repo_root, stderr=subprocess.DEVNULL)
            .decode()
            .strip()
        )
        dirty = bool(
            subprocess.check_output(["git", "status", "--porcelain"], cwd=repo_root, stderr=subprocess.DEVNULL)
            .decode()
            .strip()
        )
        return {"branch": branch, "commit": commit, "dirty": dirty}
    except (OSError, subprocess.CalledProcessError):
        return {"branch": "unknown", "commit": "unknown", "dirty": False}


def platform_info() -> dict[str, str]:
    return {"os": platform.system().lower(), "arch": platform.machine(), "python": platform.python_version()}


def run_status(checks: Sequence[CheckResult]) -> tuple[str, str]:
    failures = [c for c in checks if not c.passed]
    if failures:
        kernels = sorted({c.kernel_name for c in failures})
        return "fail", f"{len(failures)} check(s) failed verification ({', '.join(kernels)})"
    return "pass", ""


def build_results(
    *,
    run_id: str,
    started_at: str,
    finished_at: str,
    device_info: DeviceInfo,
    settings: HarnessSettings,
    pipelines: PipelineMap,
    checks: Sequence[CheckResult],
    benches: Sequence[BenchResult],
    git: dict[str, Any],
    demos: Sequence[CheckResult] = (),
) -> dict[str, Any]:
    status, failure_reason = run_status([*checks, *demos])
    kernels = []
    for p in pipelines.values():
        entry: dict[str, Any] = p.descriptor.to_dict()
        entry["build_time_s"] = p.build_time_s
        kernels.append(entry)

    results: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "run": {
            "run_id": run_id,
            "started_at": started_at,
            "finished_at": finished_at,
            "status": status,
            "failure_reason": failure_reason,
            "git": git,
            "environment": {"platform": platform_info(), "gpu": device_info.to_dict()},
            "settings": settings.to_dict(),
        },
        "kernels": kernels,
        "records": [c.to_dict() for c in checks]
        + [d.to_dict(kind="demo") for d in demos]
        + [b.to_dict() for b in benches],
    }
    validate_results_schema(results)
    return results


def load_results(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text())


def write_results(path: Path, results: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(results, indent=2, sort_keys=True) + "\n")
