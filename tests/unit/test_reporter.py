"""Tests for the JSON reporter."""

import json

from scenario_runner.reporting.json_reporter import JsonReporter
from scenario_runner.runner.logger import ExecutionLogger
from scenario_runner.runner.orchestrator import RunReport
from scenario_runner.runner.outcomes import (
    ExecutionStatus,
    OverallStatus,
    Phase,
    ResultStatus,
    StepOutcome,
    StepStatus,
)


def make_run(overall, execution, result, statuses, error=None):
    log = ExecutionLogger("exec-42")
    log.info("Execution finished")
    outcomes = [StepOutcome("setup", StepStatus.SUCCESS, "ssh", phase=Phase.PREAMBLE)]
    outcomes += [StepOutcome(f"step {i}", status, "sql", index=i) for i, status in enumerate(statuses)]
    return RunReport(
        execution_id="exec-42",
        scenario_name="Auth",
        target_label="Lab (10.0.0.5)",
        overall_status=overall,
        execution_status=execution,
        result_status=result,
        outcomes=outcomes,
        logs=list(log.entries),
        duration_ms=120,
        error=error,
    )


def test_generate_report():
    run = make_run(
        OverallStatus.SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.PASS,
        [StepStatus.SUCCESS, StepStatus.SUCCESS],
    )
    report = JsonReporter().generate(run)

    assert report["executionId"] == "exec-42"
    assert report["status"] == "Pass"
    assert report["overallStatus"] == "success"
    assert report["summary"] == {"total": 2, "passed": 2, "failed": 0, "skipped": 0, "duration_ms": 120}
    assert report["steps"][0]["phase"] == "preamble"
    assert report["logs"][0]["executionId"] == "exec-42"


def test_flow_output_for_passing_run():
    reporter = JsonReporter()
    run = make_run(
        OverallStatus.SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.PASS, [StepStatus.SUCCESS],
    )
    output = reporter.generate_flow_output(reporter.generate(run), "/tmp/report.json")

    assert output["success"] is True
    assert output["command"] == "run"
    assert output["message"] == "All 1 steps passed"
    assert output["data"]["report_path"] == "/tmp/report.json"


def test_flow_output_for_partial_run():
    reporter = JsonReporter()
    run = make_run(
        OverallStatus.PARTIAL_SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.WARNING,
        [StepStatus.SUCCESS, StepStatus.FAILURE, StepStatus.SKIPPED],
    )
    output = reporter.generate_flow_output(reporter.generate(run))

    assert output["success"] is False
    assert output["message"] == "partial_success: 1 failed, 1 skipped of 3 steps"
    assert "report_path" not in output["data"]


def test_flow_output_for_crashed_run():
    reporter = JsonReporter()
    run = make_run(
        OverallStatus.EXECUTION_ERROR, ExecutionStatus.FAILED, ResultStatus.FAIL, [], error="boom",
    )
    output = reporter.generate_flow_output(reporter.generate(run))
    assert output["message"] == "Run failed: boom"


def test_save_and_serialize(tmp_path):
    reporter = JsonReporter()
    report = reporter.generate(make_run(
        OverallStatus.SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.PASS, [StepStatus.SUCCESS],
    ))

    path = reporter.save(report, tmp_path / "reports" / "run.json")

    assert json.loads(path.read_text(encoding="utf-8"))["scenario"] == "Auth"
    assert "\n" not in reporter.to_json_string(report, pretty=False)
