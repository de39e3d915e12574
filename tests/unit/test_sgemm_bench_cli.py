from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

import sgemm_bench.__main__ as cli
from sgemm_bench.errors import NoDeviceAvailable


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    seen: dict[str, Any] = {}

    def _fake_harness_main(**kwargs: Any) -> int:
        seen.update(kwargs)
        return 0

    monkeypatch.setattr(cli, "harness_main", _fake_harness_main)
    return seen


def test_defaults(captured: dict[str, Any]) -> None:
    assert cli.main([]) == 0
    assert captured["registry"].names() == ["naive_8x8", "naive_16x16", "tiled_16x16", "tiled_32x32"]
    assert captured["settings"].run_bench
    assert not captured["settings"].run_demo
    assert captured["out_dir"] is None
    assert not captured["strict"]


def test_flags_flow_into_settings(tmp_path: Path, captured: dict[str, Any]) -> None:
    rc = cli.main(
        [
            "--kernel",
            "tiled_32x32",
            "--kernel",
            "naive_8x8",
            "--warmup",
            "0",
            "--min-duration",
            "0.5",
            "--max-iterations",
            "7",
            "--skip-bench",
            "--demo",
            "--strict",
            "--out-dir",
            str(tmp_path),
        ]
    )
    assert rc == 0
    assert captured["registry"].names() == ["naive_8x8", "tiled_32x32"]
    settings = captured["settings"]
    assert settings.policy.warmup_iterations == 0
    assert settings.policy.min_duration_s == 0.5
    assert settings.policy.max_iterations == 7
    assert not settings.run_bench
    assert settings.run_demo
    assert captured["strict"]
    assert captured["out_dir"] == tmp_path.resolve()


def test_unknown_kernel_is_usage_error(captured: dict[str, Any]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--kernel", "nope"])
    assert exc.value.code == 2
    assert captured == {}


def test_invalid_policy_is_usage_error(captured: dict[str, Any]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--max-iterations", "0"])


def test_fatal_error_exits_nonzero(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def _no_device(**_kwargs: Any) -> int:
        raise NoDeviceAvailable("no CUDA device found")

    monkeypatch.setattr(cli, "harness_main", _no_device)
    assert cli.main([]) == 2
    assert "error: no CUDA device found" in capsys.readouterr().err


def test_report_subcommand(tmp_path: Path) -> None:
    results = {"run": {"run_id": "r1"}, "kernels": [], "records": []}
    (tmp_path / "results.json").write_text(json.dumps(results))
    assert cli.main(["report", "--out-dir", str(tmp_path)]) == 0
    assert "No benchmarks were run." in (tmp_path / "report.md").read_text()


def test_report_subcommand_without_results(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["report", "--out-dir", str(tmp_path)]) == 2
    assert "Missing results.json" in capsys.readouterr().err
