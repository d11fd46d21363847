import json
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from covharness import __version__
from covharness.cli import cli
from covharness.cli.errors import EXIT_CONFIG, EXIT_DATAERR, EXIT_GENERIC, EXIT_NOINPUT, EXIT_OK

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #

PASSING = {
    "name": "double",
    "code": "output = args * 2\n",
    "args": 2,
    "output": 4,
    "coverage": {"lines": {"1": 1}, "statements": {"0": 1}},
}

FAILING = {**PASSING, "name": "wrong output", "output": 5}


@pytest.fixture(autouse=True)
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every CLI test from a project without ``[tool.covharness]`` settings."""
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n', encoding="utf-8")
    monkeypatch.chdir(tmp_path)


def _run(runner: CliRunner, args: list[str]) -> tuple[int, str]:
    """Invoke the CLI and return *(exit_code, output)* for convenience."""
    result = runner.invoke(cli, args)
    return result.exit_code, result.output


def _run_json(runner: CliRunner, args: list[str]) -> tuple[int, dict]:
    result = runner.invoke(cli, [*args, "--format", "json"])
    return result.exit_code, json.loads(result.stdout)


# --------------------------------------------------------------------------- #
# tests                                                                       #
# --------------------------------------------------------------------------- #


def test_version(cli_runner: CliRunner) -> None:
    code, out = _run(cli_runner, ["--version"])
    assert code == EXIT_OK
    assert out.strip() == f"covharness {__version__}"


def test_no_command_prints_help(cli_runner: CliRunner) -> None:
    code, out = _run(cli_runner, [])
    assert code == EXIT_OK
    assert "run" in out


def test_run_passing_cases(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    path = case_file({"cases": [PASSING]})
    code, report = _run_json(cli_runner, ["run", str(path), "--transform", "instrumenter:instrument"])
    assert code == EXIT_OK
    assert report["schema_version"] == 1
    assert report["tool"] == {"name": "covharness", "version": __version__}
    assert report["totals"] == {"cases": 1, "passed": 1, "failed": 0}
    (result,) = report["results"]
    assert result["name"] == "double"
    assert result["summary"]["statements"]["pct"] == 100.0


def test_run_failing_cases(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    path = case_file([PASSING, FAILING])
    code, report = _run_json(cli_runner, ["run", str(path), "-t", "instrumenter:instrument"])
    assert code == EXIT_GENERIC
    assert report["totals"] == {"cases": 2, "passed": 1, "failed": 1}
    failure = report["results"][1]["failures"][0]
    assert failure["kind"] == "AssertionMismatch"
    assert failure["dimension"] == "output"


def test_run_multiple_files(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    first = case_file([PASSING], filename="a.json")
    second = case_file([{**PASSING, "name": "again"}], filename="b.json")
    code, report = _run_json(cli_runner, ["run", str(first), str(second), "-t", "instrumenter:instrument"])
    assert code == EXIT_OK
    assert [r["source"] for r in report["results"]] == [str(first), str(second)]


def test_run_human_output(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    path = case_file([PASSING, FAILING])
    code, out = _run(cli_runner, ["run", str(path), "-t", "instrumenter:instrument", "--format", "human"])
    assert code == EXIT_GENERIC
    assert "Verification Results" in out
    assert "PASS" in out
    assert "FAIL (1)" in out
    assert "1/2 passed" in out
    assert "Output mismatch" in out


def test_run_writes_output_file(
    cli_runner: CliRunner,
    case_file: Callable[..., Path],
    tmp_path: Path,
) -> None:
    path = case_file([PASSING])
    dest = tmp_path / "out" / "report.json"
    code, _out = _run(
        cli_runner,
        ["run", str(path), "-t", "instrumenter:instrument", "--format", "json", "--output", str(dest)],
    )
    assert code == EXIT_OK
    assert json.loads(dest.read_text(encoding="utf-8"))["totals"]["passed"] == 1


def test_run_uses_configured_transform(cli_runner: CliRunner, case_file: Callable[..., Path], tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.covharness]\ntransform = "instrumenter:instrument"\n', encoding="utf-8"
    )
    code, report = _run_json(cli_runner, ["run", str(case_file([PASSING]))])
    assert code == EXIT_OK
    assert report["totals"]["passed"] == 1


def test_run_missing_case_file(cli_runner: CliRunner, tmp_path: Path) -> None:
    code, out = _run(cli_runner, ["run", str(tmp_path / "nope.json"), "-t", "instrumenter:instrument"])
    assert code == EXIT_NOINPUT
    assert "case file not found" in out


def test_run_invalid_case_file(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    path = case_file([{"code": "output = 1"}])
    code, out = _run(cli_runner, ["run", str(path), "-t", "instrumenter:instrument"])
    assert code == EXIT_DATAERR
    assert "ERROR:" in out


def test_run_without_transform(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    code, out = _run(cli_runner, ["run", str(case_file([PASSING]))])
    assert code == EXIT_CONFIG
    assert "no transform configured" in out


def test_run_with_unknown_transform(cli_runner: CliRunner, case_file: Callable[..., Path]) -> None:
    code, out = _run(cli_runner, ["run", str(case_file([PASSING])), "-t", "no_such_module_xyz:fn"])
    assert code == EXIT_CONFIG
    assert "cannot import" in out
