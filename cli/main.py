"""Load harness CLI - Command line interface."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from common.exceptions import HarnessError
from common.models.metrics import RunSummary
from common.models.workload import LoadProfile, RampStage, Threshold, default_thresholds
from common.utils import format_duration, parse_duration
from harness.config import HarnessSettings, init_settings
from harness.core.engine import RunEngine
from harness.core.scheduler import target_concurrency
from harness.reporting.summary import format_summary_table
from harness.reporting.thresholds import all_passed, evaluate_summary
from harness.storage.report_store import ReportStore

EXIT_PASSED = 0
EXIT_THRESHOLDS_FAILED = 1
EXIT_ERROR = 2


def setup_logging(settings: HarnessSettings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # Per-request logs from httpx drown the run output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_stage(value: str) -> RampStage:
    """Parse ``TARGET:DURATION`` (e.g. ``500:30s``)."""
    try:
        target, duration = value.split(":", 1)
        return RampStage(target=int(target), duration=parse_duration(duration))
    except (ValueError, ValidationError) as e:
        raise argparse.ArgumentTypeError(f"invalid stage '{value}': expected TARGET:DURATION") from e


def build_settings(args) -> HarnessSettings:
    """Settings from the environment, overridden by explicit flags."""
    overrides = {}
    if getattr(args, "url", None):
        overrides["api_url"] = args.url
    if getattr(args, "output_dir", None):
        overrides["output_dir"] = args.output_dir
    if getattr(args, "poll_interval", None) is not None:
        overrides["poll_interval"] = args.poll_interval
    if getattr(args, "poll_deadline", None) is not None:
        overrides["poll_deadline"] = args.poll_deadline
    if getattr(args, "graceful_stop", None) is not None:
        overrides["graceful_stop"] = args.graceful_stop
    if getattr(args, "throughput_timer", False):
        overrides["throughput_timer"] = True
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    return init_settings(**overrides)


def load_profile(args, settings: HarnessSettings) -> LoadProfile:
    """Profile from ``--profile`` or settings, with ``--stage`` overriding the stages."""
    path = getattr(args, "profile", None) or settings.profile_path
    profile = LoadProfile.from_yaml(path) if path else LoadProfile()

    stages = getattr(args, "stage", None)
    if stages:
        profile = profile.model_copy(update={"stages": list(stages)})
    return profile


async def _run_engine(engine: RunEngine) -> RunSummary:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.stop)
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform
    try:
        return await engine.run()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def cmd_run(args) -> int:
    """Run a load test."""
    try:
        settings = build_settings(args)
        profile = load_profile(args, settings)
    except (HarnessError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(settings)
    print(
        f"Running profile '{profile.name}' against {settings.api_url}: "
        f"{len(profile.stages)} stages, {format_duration(profile.total_duration)}, "
        f"peak {profile.max_target} VUs"
    )

    engine = RunEngine(settings, profile)
    summary = asyncio.run(_run_engine(engine))

    print()
    print(format_summary_table(summary))
    print(f"\nSummary written to {settings.summary_path}")

    if summary.status != "completed":
        return EXIT_ERROR
    return EXIT_PASSED if summary.passed else EXIT_THRESHOLDS_FAILED


def cmd_profile(args) -> int:
    """Show the effective stage table and target curve."""
    try:
        settings = build_settings(args)
        profile = load_profile(args, settings)
    except (HarnessError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Profile: {profile.name}")
    print(f"Duration: {format_duration(profile.total_duration)} "
          f"(+{format_duration(profile.graceful_stop)} graceful stop)")
    print()
    print(f"{'#':<4} {'Target':>8} {'Duration':>10} {'Ends at':>10}")
    print("-" * 36)
    ends_at = 0.0
    for index, stage in enumerate(profile.stages, start=1):
        ends_at += stage.duration
        print(f"{index:<4} {stage.target:>8} {format_duration(stage.duration):>10} "
              f"{format_duration(ends_at):>10}")

    if profile.thresholds:
        print("\nThresholds:")
        for threshold in profile.thresholds:
            print(f"  {threshold.metric}: {threshold.expression}")

    if args.step > 0 and profile.total_duration > 0:
        print(f"\n{'Elapsed':>10} {'Target VUs':>12}")
        elapsed = 0.0
        while elapsed <= profile.total_duration:
            print(f"{format_duration(elapsed):>10} {target_concurrency(profile.stages, elapsed):>12}")
            elapsed += args.step

    return EXIT_PASSED


def cmd_check(args) -> int:
    """Evaluate thresholds against a saved summary."""
    try:
        settings = build_settings(args)
        path = Path(args.summary) if args.summary else settings.summary_path
        data = ReportStore(path.parent, summary_filename=path.name).get_summary()
        if data is None:
            raise HarnessError(f"Summary not found: {path}")
        summary = RunSummary.model_validate(data)

        if args.profile:
            thresholds = LoadProfile.from_yaml(args.profile).thresholds
        elif summary.thresholds:
            thresholds = [
                Threshold(metric=r.metric, expression=r.expression) for r in summary.thresholds
            ]
        else:
            thresholds = default_thresholds()
    except (HarnessError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    results = evaluate_summary(thresholds, summary)

    print(f"Run {summary.run_id} ({summary.status})")
    print(f"{'Threshold':<40} {'Actual':>14} {'Status':>8}")
    print("-" * 64)
    for r in results:
        actual = "—" if r.actual is None else f"{r.actual:.4g}"
        status = "PASS" if r.passed else "FAIL"
        print(f"{r.metric + ' ' + r.expression:<40} {actual:>14} {status:>8}")
        if r.message:
            print(f"    {r.message}")

    return EXIT_PASSED if all_passed(results) else EXIT_THRESHOLDS_FAILED


def cmd_mock_backend(args) -> int:
    """Serve the in-memory template API."""
    import uvicorn

    from harness.mock_backend import create_app

    app = create_app(
        processing_polls=args.processing_polls,
        failure_rate=args.failure_rate,
        retain_finished=args.retain_finished,
    )
    print(f"Mock template API on http://{args.host}:{args.port}/graphql")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return EXIT_PASSED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadharness",
        description="Load generation harness for the template API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run a load test")
    run_parser.add_argument("-p", "--profile", help="Profile YAML file")
    run_parser.add_argument("-u", "--url", help="GraphQL endpoint (default: $API_URL)")
    run_parser.add_argument("-o", "--output-dir", help="Directory for summary.json / throughput.json")
    run_parser.add_argument(
        "-s", "--stage", action="append", type=parse_stage, metavar="TARGET:DURATION",
        help="Replace the profile stages (repeatable, e.g. -s 10:30s -s 0:10s)",
    )
    run_parser.add_argument("--poll-interval", type=parse_duration, help="Pause between polls")
    run_parser.add_argument("--poll-deadline", type=parse_duration, help="Per-iteration poll deadline")
    run_parser.add_argument("--graceful-stop", type=parse_duration, help="Drain window after the last stage")
    run_parser.add_argument(
        "--throughput-timer", action="store_true",
        help="Close throughput windows on a timer instead of at iteration start",
    )
    run_parser.add_argument("--log-level", help="Log level (default: INFO)")
    run_parser.set_defaults(func=cmd_run)

    # profile
    profile_parser = subparsers.add_parser("profile", help="Show the stage table and target curve")
    profile_parser.add_argument("-p", "--profile", help="Profile YAML file")
    profile_parser.add_argument(
        "-s", "--stage", action="append", type=parse_stage, metavar="TARGET:DURATION",
        help="Replace the profile stages (repeatable)",
    )
    profile_parser.add_argument(
        "--step", type=parse_duration, default=10.0,
        help="Target curve resolution (default: 10s, 0 to hide)",
    )
    profile_parser.set_defaults(func=cmd_profile)

    # check
    check_parser = subparsers.add_parser("check", help="Evaluate thresholds against a saved summary")
    check_parser.add_argument("summary", nargs="?", help="summary.json (default: <output_dir>/summary.json)")
    check_parser.add_argument("-p", "--profile", help="Take thresholds from this profile")
    check_parser.set_defaults(func=cmd_check)

    # mock-backend
    mock_parser = subparsers.add_parser("mock-backend", help="Serve the in-memory template API")
    mock_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    mock_parser.add_argument("--port", type=int, default=60013, help="Port (default: 60013)")
    mock_parser.add_argument("--processing-polls", type=int, default=2, help="Polls spent in PROCESSING")
    mock_parser.add_argument("--failure-rate", type=float, default=0.0, help="Share of templates ending FAILED")
    mock_parser.add_argument(
        "--retain-finished", type=int, default=1000,
        help="Finished templates kept readable (default: 1000)",
    )
    mock_parser.add_argument("--log-level", default="info", help="uvicorn log level")
    mock_parser.set_defaults(func=cmd_mock_backend)

    return parser


def main(argv: Optional[list] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
