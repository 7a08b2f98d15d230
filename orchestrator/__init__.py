"""
Orchestrator Package - Process Boundary.

============================================================
PACKAGE OVERVIEW
============================================================
Turns configuration into a running timed execution and the run's
outcome into a process exit status.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has NO engine logic
2. It does NOT decide when or whether to dispatch
3. It ONLY assembles components and maps outcomes

============================================================
QUICK START
============================================================
Command line usage::

    # Live run
    timed-dispatch --config run.yaml

    # Rehearsal against a simulated chain starting 20s before target
    python -m orchestrator.cli --config run.yaml --dry-run --dry-run-lead 20

Programmatic usage::

    import asyncio
    from orchestrator import build_service
    from timed_execution import ExecutionConfig

    async def main():
        config = ExecutionConfig.load("run.yaml").ensure_valid()
        service = build_service(config)
        try:
            report = await service.run()
        finally:
            await service.close()
        return report.exit_code

    asyncio.run(main())

============================================================
EXPORTS
============================================================
"""

from orchestrator.core import (
    DEFAULT_DRY_RUN_LEAD_SECONDS,
    build_connections,
    build_dry_run_connections,
    build_operations,
    build_service,
    exit_code_for_error,
    setup_logging,
)


__all__ = [
    "DEFAULT_DRY_RUN_LEAD_SECONDS",
    "build_connections",
    "build_dry_run_connections",
    "build_operations",
    "build_service",
    "exit_code_for_error",
    "setup_logging",
]
