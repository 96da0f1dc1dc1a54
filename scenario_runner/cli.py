"""CLI entry point for the RADIUS scenario runner.

    scenario-runner run scenario.yaml --targets targets.yaml [options]
    scenario-runner validate scenario.yaml

Results are printed as flow-compatible JSON on stdout; diagnostics go to
stderr.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click

from .config import ExecutionConfig, ExecutionTarget, load_targets
from .errors import CompileError, ScenarioParseError
from .reporting.json_reporter import JsonReporter
from .runner.orchestrator import RunReport
from .runner.service import ExecutionService
from .scenario.parser import parse_packets, parse_scenario
from .scenario.schema import RadiusPacket
from .scenario.validator import CompiledScenario, compile_scenario, validate_scenario
from .transport.factory import LocalSessionFactory
from .transport.interfaces import SessionFactory

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CliError(Exception):
    """Custom CLI error."""


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def session_factory(local_shell: bool = False) -> SessionFactory:
    """Capabilities used by ``run``.

    Shell commands always execute on this machine. Unless ``local_shell`` is
    set, hosts other than localhost are refused as connection failures.
    """
    return LocalSessionFactory(allow_any_host=local_shell)


def output_json(payload: dict[str, Any], pretty: bool = False) -> None:
    if pretty:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    else:
        click.echo(json.dumps(payload, ensure_ascii=False, default=str))


def output_error(command: str, message: str, **extra) -> None:
    """Output error in flow JSON format."""
    output_json({
        "success": False,
        "command": command,
        "data": extra or None,
        "message": message,
    })


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="radius-scenario-runner")
def cli() -> None:
    """Run RADIUS test scenarios against configured targets."""


@cli.command(name="run")
@click.argument("scenario_path", type=click.Path(path_type=str))
@click.option(
    "--targets",
    "targets_path",
    required=True,
    type=click.Path(path_type=str),
    help="Path to the YAML targets file",
)
@click.option("--target", "target_id", default=None, help="Target id (default: first target in the file)")
@click.option(
    "--packets",
    "packets_path",
    default=None,
    type=click.Path(path_type=str),
    help="Path to the YAML packet catalogue",
)
@click.option("--timeout", type=float, default=30.0, show_default=True, help="Per-call timeout in seconds")
@click.option("--save-report", is_flag=True, default=False, help="Save the full JSON report to a file")
@click.option("--report-dir", type=click.Path(path_type=str), default=None, help="Directory for saved reports")
@click.option(
    "--local-shell",
    is_flag=True,
    default=False,
    help="Run shell steps for every host on this machine (when the runner sits on the RADIUS server)",
)
@click.option("--pretty", is_flag=True, default=False, help="Pretty print output")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging on stderr")
@click.pass_context
def run_scenario(
    ctx: click.Context,
    scenario_path: str,
    targets_path: str,
    target_id: Optional[str],
    packets_path: Optional[str],
    timeout: float,
    save_report: bool,
    report_dir: Optional[str],
    local_shell: bool,
    pretty: bool,
    verbose: bool,
) -> None:
    """Execute SCENARIO_PATH against one target."""
    configure_logging(verbose)

    try:
        packets = parse_packets(packets_path) if packets_path else {}
        compiled = compile_scenario(parse_scenario(scenario_path), packets if packets_path else None)
        target = select_target(load_targets(targets_path), target_id)
    except (ScenarioParseError, CompileError, FileNotFoundError) as exc:
        raise CliError(str(exc)) from exc

    config = ExecutionConfig(
        step_timeout=timeout,
        connect_timeout=timeout,
        shell_timeout=timeout,
        save_report=save_report,
        report_dir=Path(report_dir) if report_dir else None,
        pretty_output=pretty,
    )
    run = asyncio.run(execute(compiled, target, packets, config, session_factory(local_shell)))

    reporter = JsonReporter()
    report = reporter.generate(run)
    report_path = None
    if config.save_report:
        report_path = save_run_report(reporter, report, config, compiled)

    flow_output = reporter.generate_flow_output(report, report_path)
    output_json(flow_output, pretty)
    if not flow_output["success"]:
        ctx.exit(1)


@cli.command(name="validate")
@click.argument("scenario_path", type=click.Path(path_type=str))
@click.option(
    "--packets",
    "packets_path",
    default=None,
    type=click.Path(path_type=str),
    help="Path to the YAML packet catalogue to check packet_id references against",
)
@click.pass_context
def validate(ctx: click.Context, scenario_path: str, packets_path: Optional[str]) -> None:
    """Check SCENARIO_PATH without running it."""
    try:
        packets = parse_packets(packets_path) if packets_path else None
        scenario = parse_scenario(scenario_path)
    except (ScenarioParseError, FileNotFoundError) as exc:
        raise CliError(str(exc)) from exc

    result = validate_scenario(scenario, packets)
    output_json({
        "success": result.valid,
        "command": "validate",
        "data": {
            "scenario": scenario.name,
            "steps": scenario.total_steps,
            "errors": [{"path": e.path, "message": e.message} for e in result.errors],
            "warnings": [{"path": w.path, "message": w.message} for w in result.warnings],
        },
        "message": str(result),
    })
    if not result.valid:
        ctx.exit(1)


def select_target(targets: dict[str, ExecutionTarget], target_id: Optional[str]) -> ExecutionTarget:
    if not targets:
        raise CliError("Targets file defines no targets")
    if target_id is None:
        return next(iter(targets.values()))
    if target_id not in targets:
        raise CliError(f"Unknown target '{target_id}'. Available: {', '.join(targets)}")
    return targets[target_id]


async def execute(
    compiled: CompiledScenario,
    target: ExecutionTarget,
    packets: dict[str, RadiusPacket],
    config: ExecutionConfig,
    factory: SessionFactory,
) -> RunReport:
    """Run one scenario through the execution service and wait for it."""
    service = ExecutionService(
        factory,
        scenarios={compiled.scenario.id: compiled},
        targets={target.id: target},
        config=config,
        packets=packets,
    )
    execution_id = service.start_execution(compiled.scenario.id, target.id)
    return await service.wait(execution_id)


def save_run_report(
    reporter: JsonReporter,
    report: dict[str, Any],
    config: ExecutionConfig,
    compiled: CompiledScenario,
) -> Optional[str]:
    """Save run report to file."""
    report_dir = config.report_dir or Path(".")
    report_path = report_dir / f"scenario_report_{compiled.scenario.id}.json"
    try:
        saved_path = reporter.save(report, report_path)
    except OSError as e:
        logger.warning("Failed to save report to %s: %s", report_path, e)
        return None
    return str(saved_path)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for console_scripts wiring."""
    argv = argv if argv is not None else sys.argv[1:]
    command = argv[0] if argv else "run"
    try:
        rv = cli.main(args=list(argv), standalone_mode=False)
    except CliError as exc:
        output_error(command, str(exc))
        return 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        output_error(command, "Run interrupted by user")
        return 130
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
