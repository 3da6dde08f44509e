"""Tests for go test output parsing and the test runner."""

from datetime import datetime, timedelta

import pytest

from testwarden.exceptions import TestRunnerError as RunnerError
from testwarden.maintenance.runner import (
    DEFAULT_SUITE,
    TestRunner as Runner,
    extract_test_suite,
    parse_go_duration,
    parse_test_output,
)

STAMP = datetime(2024, 1, 1, 12, 0, 0)


class TestParseGoDuration:
    """Go duration strings."""

    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("0.12s", 0.12),
            ("250ms", 0.25),
            ("1m30s", 90.0),
            ("1h", 3600.0),
            ("0", 0.0),
            ("0.00s", 0.0),
        ],
    )
    def test_valid(self, text, seconds):
        assert parse_go_duration(text).total_seconds() == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "abc", "12", "1.5x", "s"])
    def test_malformed(self, text):
        assert parse_go_duration(text) is None


class TestParseTestOutput:
    """Verbose go test output to metrics."""

    def test_pass_and_fail(self):
        output = "--- PASS: TestExample (0.12s)\n--- FAIL: TestFailing (0.08s)\n"
        metrics = parse_test_output(output, STAMP)

        assert [m.test_name for m in metrics] == ["TestExample", "TestFailing"]
        assert metrics[0].passed
        assert metrics[0].duration == timedelta(milliseconds=120)
        assert not metrics[1].passed
        assert metrics[1].duration == timedelta(milliseconds=80)
        assert all(m.timestamp == STAMP for m in metrics)

    def test_subtests_and_suites(self):
        output = (
            "=== RUN   TestParent\n"
            "=== RUN   TestParent/case_1\n"
            "--- PASS: TestParent (0.01s)\n"
            "    --- PASS: TestParent/case_1 (0.00s)\n"
        )
        metrics = parse_test_output(output, STAMP)
        suites = {m.test_name: m.test_suite for m in metrics}
        assert suites == {"TestParent": DEFAULT_SUITE, "TestParent/case_1": "TestParent"}

    def test_failure_log_becomes_error_message(self):
        output = (
            "--- FAIL: TestDivide (0.00s)\n"
            "    calc_test.go:12: expected an error, got nil\n"
            "    calc_test.go:13: second line\n"
            "FAIL\n"
            "--- PASS: TestAdd (0.00s)\n"
        )
        metrics = parse_test_output(output, STAMP)
        assert metrics[0].error_message == "calc_test.go:12: expected an error, got nil\ncalc_test.go:13: second line"
        assert metrics[1].error_message == ""

    def test_ignores_other_lines(self):
        output = "ok  \texample.com/demo\t0.012s\nPASS\n=== RUN   TestX\n"
        assert parse_test_output(output, STAMP) == []

    def test_unparseable_duration_is_skipped(self):
        assert parse_test_output("--- PASS: TestX (soon)\n", STAMP) == []

    def test_extract_test_suite(self):
        assert extract_test_suite("TestA/b/c") == "TestA"
        assert extract_test_suite("TestA") == DEFAULT_SUITE


class TestTestRunner:
    """Command execution through an injected runner."""

    def test_collect_uses_injected_runner(self, tmp_path, canned_runner):
        canned = canned_runner("--- PASS: TestA (1.50s)\n")
        runner = Runner(("go", "test", "-v", "./..."), tmp_path, execute=canned)
        metrics = runner.collect(STAMP)

        assert canned.commands == [(("go", "test", "-v", "./..."), tmp_path)]
        assert [m.test_name for m in metrics] == ["TestA"]
        assert metrics[0].duration == timedelta(seconds=1.5)

    def test_failing_exit_status_still_parses(self, tmp_path, canned_runner):
        canned = canned_runner("--- FAIL: TestA (0.10s)\n", returncode=1)
        metrics = Runner(("go", "test"), tmp_path, execute=canned).collect(STAMP)
        assert [m.passed for m in metrics] == [False]

    def test_missing_go_mod(self, tmp_path):
        with pytest.raises(RunnerError) as exc_info:
            Runner(("go", "test"), tmp_path).run()
        assert "go.mod" in exc_info.value.reason
