"""JSON report generator for scenario runs.

Generates structured JSON reports from RunReport objects.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..runner.orchestrator import RunReport
from ..runner.outcomes import ResultStatus


class JsonReporter:
    """Generates JSON reports from scenario runs."""

    def generate(self, run: RunReport) -> dict[str, Any]:
        """Generate a JSON report from a finished run.

        Args:
            run: Report returned by the orchestrator or execution service.

        Returns:
            Report dictionary ready for JSON serialization.
        """
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "scenario": run.scenario_name,
            "target": run.target_label,
            "executionId": run.execution_id,
            "status": run.result_status.value,
            "executionStatus": run.execution_status.value,
            "overallStatus": run.overall_status.value,
            "summary": run.summary(),
            "steps": [outcome.to_dict() for outcome in run.outcomes],
            "logs": [entry.to_dict() for entry in run.logs],
            "error": run.error,
        }

    def save(self, report: dict[str, Any], path: Path) -> Path:
        """Save report to a JSON file.

        Args:
            report: Report dictionary.
            path: Output file path.

        Returns:
            Path to the saved file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False, default=str)

        return path

    def to_json_string(self, report: dict[str, Any], pretty: bool = True) -> str:
        """Convert report to JSON string.

        Args:
            report: Report dictionary.
            pretty: If True, format with indentation.

        Returns:
            JSON string.
        """
        if pretty:
            return json.dumps(report, indent=2, ensure_ascii=False, default=str)
        return json.dumps(report, ensure_ascii=False, default=str)

    def generate_flow_output(
        self,
        report: dict[str, Any],
        report_path: Optional[str] = None,
    ) -> dict[str, Any]:
        """Generate flow CLI compatible JSON output.

        Follows the flow JSON output standard:
        {
            "success": bool,
            "command": "run",
            "data": { ... },
            "message": str
        }

        Args:
            report: Run report dictionary.
            report_path: Path where report was saved.

        Returns:
            Flow-compatible JSON output.
        """
        summary = report["summary"]
        passed = report["status"] == ResultStatus.PASS.value

        data: dict[str, Any] = {
            "scenario": report["scenario"],
            "target": report["target"],
            "execution_id": report["executionId"],
            "status": report["status"],
            "overall_status": report["overallStatus"],
            "total_steps": summary["total"],
            "passed": summary["passed"],
            "failed": summary["failed"],
            "skipped": summary["skipped"],
            "duration_ms": summary["duration_ms"],
        }

        if report_path:
            data["report_path"] = report_path

        if report.get("error"):
            message = f"Run failed: {report['error']}"
        elif passed:
            message = f"All {summary['passed']} steps passed"
        else:
            message = (
                f"{report['overallStatus']}: {summary['failed']} failed, "
                f"{summary['skipped']} skipped of {summary['total']} steps"
            )

        return {
            "success": passed,
            "command": "run",
            "data": data,
            "message": message,
        }
