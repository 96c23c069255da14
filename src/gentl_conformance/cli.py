"""CLI entry point for gentl-conformance.

Provides the ``gentl-conformance`` console script with subcommands:

- ``run`` - Run the conformance suite (all files unless tests are named)
- ``list`` - Print the registered test files and their points
- ``invalidate-spec`` - Delete a cached hardware specification

Usage::

    # Everything, default parameterization, simulated cameras
    gentl-conformance run

    # Two points against real producers, one device, two formats
    gentl-conformance run tAcquisition/verifySnapshot tFormats \\
        --mode hardware --device-id 1 --format Mono8 --format Mono16

    # Force the next run to re-capture a device's golden spec
    gentl-conformance invalidate-spec gentl_Cam_Mono8

Module Structure:
    - ``run_suite()`` - Library entry point, one full suite run
    - ``main()`` - CLI entry point, dispatches subcommands
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from gentl_conformance.conformance import default_registry
from gentl_conformance.data import HardwareSpecCache
from gentl_conformance.devices import ProducerDiscovery, SubsystemSession
from gentl_conformance.drivers.config import (
    DEFAULT_STREAMING_TIMEOUT_S,
    SubsystemMode,
    SuiteConfig,
    configure,
    get_factory,
    get_subsystem_session,
)
from gentl_conformance.errors import DiscoveryError, SpecWriteError
from gentl_conformance.observability import configure_logging, get_logger, run_log_path
from gentl_conformance.suite import Clock, SuiteRun, TestOrchestrator, request_from

logger = get_logger(__name__)

PROG_NAME = "gentl-conformance"


def run_suite(
    tests: str | Sequence[str] | None = None,
    *,
    producer_dirs: Sequence[str | os.PathLike[str]] | None = None,
    device_ids: Sequence[int] | None = None,
    formats: Sequence[str] | None = None,
    log_directory: Path | str | None = None,
    subsystem_session: SubsystemSession | None = None,
    config: SuiteConfig | None = None,
    clock: Clock | None = None,
) -> SuiteRun:
    """Run the conformance suite once.

    Every record of the run goes to a fresh ``log<MMddyyyyHHmmss>.txt`` in
    the log directory as well as the console. The report and the log
    location are printed when the run finishes.

    Business context: This is what a camera vendor or integrator runs to
    qualify a GenTL producer. Leaving all parameter options unset runs
    every file with its default parameterization (every discovered
    producer, every device, every supported format for tFormats), which
    is the qualification baseline. Options narrow the run while iterating
    on a single failure.

    Args:
        tests: Test file or ``file/point`` tokens. None, 'all' or '.' run
            everything.
        producer_dirs: Producer directories to restrict the run to.
        device_ids: Hardware IDs to restrict the run to.
        formats: Video formats for format-testing files.
        log_directory: Directory for the run log; defaults to
            config.log_dir.
        subsystem_session: Explicit session; defaults to the process-wide
            session built from config.
        config: Suite configuration. None keeps the global configuration;
            a value replaces it.
        clock: Clock override, mainly for tests.

    Returns:
        SuiteRun with results, the rendered report and the log file path.

    Raises:
        NoProducersFoundError: If no producer is found.
        NoDevicesFoundError: If device configurations are needed and no
            producer reports a device.
        SpecWriteError: If a hardware spec cannot be persisted.
        OSError: If the run log file cannot be created.

    Example:
        >>> run = run_suite("tVideoinput", device_ids=[1])
        >>> run.exit_code
        0
    """
    if config is not None and subsystem_session is None:
        configure(config)
    config = config or get_factory().config
    session = subsystem_session or get_subsystem_session()

    log_file = run_log_path(log_directory or config.log_dir)
    configure_logging(level=logging.INFO, log_file=log_file, force=True)
    logger.info(
        "Conformance run started",
        mode=config.mode.value,
        spec_dir=str(config.spec_dir),
        tests=tests,
    )

    orchestrator = TestOrchestrator(
        session,
        HardwareSpecCache(config.spec_dir),
        discovery=ProducerDiscovery(config.producer_env_var, config.descriptor_pattern),
        clock=clock,
        streaming_timeout_s=config.streaming_timeout_s,
    )
    resolved = orchestrator.resolve(tests)
    if not resolved:
        logger.warning("Selection matched no test points", tests=tests)
    run = orchestrator.run(resolved, request_from(producer_dirs, device_ids, formats))
    run.log_file = log_file

    print(run.report)
    print(f"Log file: {log_file}")
    return run


def _run(args: argparse.Namespace) -> int:
    config = SuiteConfig(mode=SubsystemMode(args.mode))
    if args.spec_dir:
        config.spec_dir = Path(args.spec_dir)
    if args.log_directory:
        config.log_dir = Path(args.log_directory)
    config.streaming_timeout_s = args.streaming_timeout

    try:
        run = run_suite(
            args.tests or None,
            producer_dirs=args.producer_dir,
            device_ids=args.device_id,
            formats=args.format,
            config=config,
        )
    except (DiscoveryError, SpecWriteError) as exc:
        logger.error("Conformance run aborted", error=str(exc))
        print(f"Fatal: {exc}", file=sys.stderr)
        return 1
    return run.exit_code


def _list(args: argparse.Namespace) -> int:
    for entry in default_registry():
        honors = ", ".join(name.lower() for name in entry.honors.names) or "none"
        print(f"{entry.name}  [{honors}]")
        for point in entry.points:
            print(f"    {point}")
    return 0


def _invalidate_spec(args: argparse.Namespace) -> int:
    spec_dir = Path(args.spec_dir) if args.spec_dir else SuiteConfig().spec_dir
    cache = HardwareSpecCache(spec_dir)
    if cache.invalidate(args.key):
        print(f"Removed hardware spec {args.key} from {spec_dir}")
        return 0
    print(f"No hardware spec {args.key} in {spec_dir}", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with the run, list and invalidate-spec subcommands."""
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="GenTL producer conformance suite",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the conformance suite")
    run_parser.add_argument(
        "tests",
        nargs="*",
        help="Test files or file/point names (default: all)",
    )
    run_parser.add_argument(
        "--producer-dir",
        action="append",
        default=None,
        metavar="DIR",
        help="Producer directory to test (repeatable; default: all discovered)",
    )
    run_parser.add_argument(
        "--device-id",
        type=int,
        action="append",
        default=None,
        metavar="N",
        help="Hardware device ID to test (repeatable; default: all devices)",
    )
    run_parser.add_argument(
        "--format",
        action="append",
        default=None,
        metavar="FORMAT",
        help="Video format for format tests (repeatable; default: all supported)",
    )
    run_parser.add_argument(
        "--log-directory",
        type=str,
        default=None,
        help="Directory for the run log file (default: system temp dir)",
    )
    run_parser.add_argument(
        "--mode",
        type=str,
        choices=[mode.value for mode in SubsystemMode],
        default=SubsystemMode.DIGITAL_TWIN.value,
        help=(
            "Subsystem mode: 'hardware' for real GenTL producers, "
            "'digital_twin' for simulation (default)"
        ),
    )
    run_parser.add_argument(
        "--spec-dir",
        type=str,
        default=None,
        help="Hardware spec cache directory (default: ./hwspec)",
    )
    run_parser.add_argument(
        "--streaming-timeout",
        type=float,
        default=DEFAULT_STREAMING_TIMEOUT_S,
        metavar="SECONDS",
        help=f"Timeout for streaming waits (default: {DEFAULT_STREAMING_TIMEOUT_S:g})",
    )
    run_parser.set_defaults(handler=_run)

    list_parser = subparsers.add_parser("list", help="List test files and points")
    list_parser.set_defaults(handler=_list)

    invalidate_parser = subparsers.add_parser(
        "invalidate-spec",
        help="Delete a cached hardware spec so the next run re-captures it",
    )
    invalidate_parser.add_argument("key", help="Spec file key, e.g. gentl_Cam_Mono8")
    invalidate_parser.add_argument(
        "--spec-dir",
        type=str,
        default=None,
        help="Hardware spec cache directory (default: ./hwspec)",
    )
    invalidate_parser.set_defaults(handler=_invalidate_spec)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point for gentl-conformance.

    Args:
        argv: Arguments without the program name; None reads sys.argv.

    Returns:
        The run's exit code for ``run`` (1 if any point failed or the
        run aborted), 0 or 1 for the other commands, 2 without a command.

    Raises:
        SystemExit: On --help or argument parsing errors.

    Example:
        >>> # gentl-conformance run tVideoinput --device-id 1
        >>> # gentl-conformance list
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2
    exit_code: int = args.handler(args)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
