"""
Unit tests for the CSV threshold gate used in CI.

Each test writes a small Locust-style ``*_stats.csv`` into ``tmp_path``
and asserts the three-state exit code.
"""

from __future__ import annotations

import csv

import pytest

from prom_stress.check_thresholds import (
    EXIT_PASS,
    EXIT_SCRIPT_ERROR,
    EXIT_THRESHOLD_BREACH,
    main,
)

pytestmark = pytest.mark.unit

COLUMNS = [
    "Type", "Name", "Request Count", "Failure Count", "Median Response Time",
    "Average Response Time", "Min Response Time", "Max Response Time",
    "Average Content Size", "Requests/s", "Failures/s",
    "50%", "66%", "75%", "80%", "90%", "95%", "98%", "99%", "99.9%", "99.99%", "100%",
]


def _write_stats(path, *, requests=2000, failures=40, rps=30.0, p90=1200):
    """Write a stats CSV with one endpoint row and the Aggregated row."""
    rows = [
        ["GET", "/api/v1/query [simple]", 1000, 10, 90, 110, 3, 900, 512, 15.0, 0.1,
         90, 100, 120, 140, 300, 500, 700, 850, 900, 900, 900],
        ["", "Aggregated", requests, failures, 100, 150, 3, 9000, 512, rps, 0.2,
         100, 200, 300, 400, p90, 2000, 4000, 6000, 9000, 9000, 9000],
    ]
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(COLUMNS)
        writer.writerows(rows)
    return path


def test_passing_run_exits_zero(tmp_path, capsys):
    # Arrange
    stats = _write_stats(tmp_path / "results_stats.csv")

    # Act
    exit_code = main(["--stats", str(stats)])

    # Assert
    out = capsys.readouterr().out
    assert exit_code == EXIT_PASS
    assert "Overall: PASS" in out
    assert "p(90)<3000" in out


@pytest.mark.parametrize(
    "overrides",
    [{"p90": 3200}, {"failures": 600}, {"rps": 4.5}],
)
def test_breached_threshold_exits_one(tmp_path, capsys, overrides):
    stats = _write_stats(tmp_path / "results_stats.csv", **overrides)

    exit_code = main(["--stats", str(stats)])

    assert exit_code == EXIT_THRESHOLD_BREACH
    assert "Overall: FAIL" in capsys.readouterr().out


def test_custom_profile_is_used(tmp_path):
    stats = _write_stats(tmp_path / "results_stats.csv", p90=1200)
    profile = tmp_path / "strict.yml"
    profile.write_text("thresholds:\n  response_time: ['p(90)<1000']\n", encoding="utf-8")

    assert main(["--stats", str(stats), "--profile", str(profile)]) == EXIT_THRESHOLD_BREACH


def test_profile_from_environment_is_used(tmp_path, monkeypatch):
    stats = _write_stats(tmp_path / "results_stats.csv", rps=4.0)
    profile = tmp_path / "relaxed.yml"
    profile.write_text("thresholds:\n  request_rate: ['rate>1']\n", encoding="utf-8")
    monkeypatch.setenv("STRESS_PROFILE", str(profile))

    assert main(["--stats", str(stats)]) == EXIT_PASS


def test_checks_threshold_cannot_pass_from_csv(tmp_path, capsys):
    stats = _write_stats(tmp_path / "results_stats.csv")
    profile = tmp_path / "checks.yml"
    profile.write_text("thresholds:\n  checks: ['rate>0.9']\n", encoding="utf-8")

    exit_code = main(["--stats", str(stats), "--profile", str(profile)])

    assert exit_code == EXIT_THRESHOLD_BREACH
    assert "No check results recorded" in capsys.readouterr().out


def test_missing_stats_file_is_script_error(tmp_path, capsys):
    exit_code = main(["--stats", str(tmp_path / "missing.csv")])

    assert exit_code == EXIT_SCRIPT_ERROR
    assert "Threshold check failed" in capsys.readouterr().err


def test_csv_without_aggregated_row_is_script_error(tmp_path):
    stats = tmp_path / "results_stats.csv"
    stats.write_text(",".join(COLUMNS) + "\n", encoding="utf-8")

    assert main(["--stats", str(stats)]) == EXIT_SCRIPT_ERROR


def test_zero_requests_is_script_error(tmp_path, capsys):
    stats = _write_stats(tmp_path / "results_stats.csv", requests=0, failures=0)

    assert main(["--stats", str(stats)]) == EXIT_SCRIPT_ERROR
    assert "Request Count must be > 0" in capsys.readouterr().err


def test_invalid_profile_is_script_error(tmp_path):
    stats = _write_stats(tmp_path / "results_stats.csv")
    profile = tmp_path / "bad.yml"
    profile.write_text("thresholds:\n  latency: ['p(90)<1']\n", encoding="utf-8")

    assert main(["--stats", str(stats), "--profile", str(profile)]) == EXIT_SCRIPT_ERROR
