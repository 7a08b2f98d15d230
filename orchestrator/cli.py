"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for a timed execution run.

- Provides argparse-based CLI
- Loads configuration from file, environment and CLI overrides
- Installs SIGINT/SIGTERM handlers that stop monitoring
- Maps the run outcome to the process exit status

============================================================
USAGE
============================================================
python -m orchestrator.cli --config run.yaml
python -m orchestrator.cli --config run.yaml --dry-run --dry-run-lead 20
python -m orchestrator.cli --env-file .env --target-timestamp 1767225600

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from typing import List, Optional

from core.clock import from_unix
from core.constants import (
    EXIT_SETUP_FAILURE,
    SYSTEM_NAME,
    SYSTEM_VERSION,
)
from core.exceptions import ConfigurationError, SetupError
from timed_execution.config import ExecutionConfig
from timed_execution.service import TimedExecutionService

from .core import (
    DEFAULT_DRY_RUN_LEAD_SECONDS,
    build_service,
    exit_code_for_error,
    setup_logging,
)


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog=SYSTEM_NAME,
        description="Timestamp-synchronized parallel vault deposits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0    every actor succeeded
  1    setup or configuration failure
  2    some, but not all, actors succeeded
  3    dispatched, no actor succeeded
  4    aborted (deadline missed without override, or stopped)
  130  interrupted

Examples:
  %(prog)s --config run.yaml
  %(prog)s --config run.yaml --dry-run       # Rehearse against a simulated chain
  %(prog)s --config run.yaml --tolerance 5 --proceed-past-deadline
        """
    )

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration")

    config_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML or JSON configuration file",
    )

    config_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Environment file with TIMED_* variables (default: .env)",
    )

    # --------------------------------------------------------
    # Window Options
    # --------------------------------------------------------
    window_group = parser.add_argument_group("Window Options")

    window_group.add_argument(
        "--target-timestamp",
        type=int,
        metavar="UNIX",
        help="Target timestamp on the external clock (overrides config)",
    )

    window_group.add_argument(
        "--tolerance",
        type=int,
        metavar="SECONDS",
        help="Window tolerance in seconds (overrides config)",
    )

    window_group.add_argument(
        "--proceed-past-deadline",
        action="store_true",
        help="Dispatch even when the window was missed",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--skip-preparation",
        action="store_true",
        help="Skip balance, authorization and target state checks",
    )

    execution_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Run against a simulated chain; nothing is submitted upstream",
    )

    execution_group.add_argument(
        "--dry-run-lead",
        type=int,
        default=DEFAULT_DRY_RUN_LEAD_SECONDS,
        metavar="SECONDS",
        help=f"Simulated chain start before the target (default: {DEFAULT_DRY_RUN_LEAD_SECONDS})",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {SYSTEM_VERSION}",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        List of validation errors
    """
    errors = []

    if args.target_timestamp is not None and args.target_timestamp <= 0:
        errors.append("--target-timestamp must be a positive unix timestamp")

    if args.tolerance is not None and args.tolerance < 0:
        errors.append("--tolerance must be >= 0")

    if args.dry_run_lead < 0:
        errors.append("--dry-run-lead must be >= 0")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> ExecutionConfig:
    """
    Build the run configuration from file, environment and CLI.

    Raises:
        ConfigurationError: Configuration is incomplete or invalid
    """
    config = ExecutionConfig.load(path=args.config, env_file=args.env_file)
    config = config.with_overrides(
        target_timestamp=args.target_timestamp,
        tolerance_seconds=args.tolerance,
        proceed_past_deadline=True if args.proceed_past_deadline else None,
        skip_preparation=True if args.skip_preparation else None,
    )
    return config.ensure_valid(require_upstream=not args.dry_run)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def install_signal_handlers(service: TimedExecutionService) -> None:
    """SIGINT/SIGTERM stop monitoring; a dispatch already running completes."""
    loop = asyncio.get_running_loop()

    def handle(sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}, stopping monitor")
        service.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle, sig)
        except NotImplementedError:
            logger.debug(f"Signal handlers unsupported on this platform ({sig.name})")


async def async_main(args: argparse.Namespace, config: ExecutionConfig) -> int:
    """
    Async main entry point.

    Args:
        args: Parsed arguments
        config: Validated configuration

    Returns:
        Exit code
    """
    try:
        service = build_service(
            config,
            dry_run=args.dry_run,
            dry_run_lead=args.dry_run_lead,
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_SETUP_FAILURE

    install_signal_handlers(service)

    try:
        report = await service.run()
    except SetupError as e:
        logger.error(f"Setup failed: {e}")
        return EXIT_SETUP_FAILURE
    finally:
        await service.close()

    for line in report.summary.render_lines():
        print(line)

    if report.error:
        logger.error(report.error)
    return report.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_SETUP_FAILURE

    setup_logging(args.log_level, args.log_format, correlation_id=uuid.uuid4().hex[:8])

    try:
        config = build_config(args)
    except ConfigurationError as e:
        for error in e.errors or [e.message]:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_SETUP_FAILURE

    print_banner(args, config)

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt as e:
        logging.info("Interrupted by user")
        return exit_code_for_error(e)


def print_banner(args: argparse.Namespace, config: ExecutionConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print(f"  {SYSTEM_NAME.upper()} {SYSTEM_VERSION}")
    print("=" * 60)
    print(f"  Target:     {config.target_timestamp} ({from_unix(config.target_timestamp).isoformat()})")
    print(f"  Tolerance:  ±{config.tolerance_seconds}s")
    print(f"  Actors:     {len(config.actors)}")
    print(f"  Amount:     {config.human_amount} per actor")
    print(f"  Retries:    {config.retry.max_attempts} attempts, {config.retry.delay_seconds}s apart")
    print(f"  Dry Run:    {args.dry_run}")
    print(f"  Log Level:  {args.log_level}")
    print("=" * 60)
    print()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
