"""
Reporting - Run Summary Rendering.

Plain-text rendering of a run summary. Works on any object with the
RunSummary attributes so this module stays free of engine imports.
"""

from typing import Any, List


RULE = "=" * 60


def render_summary(summary: Any) -> List[str]:
    """
    Render a run summary as plain text lines.

    Deterministic for a given summary.
    """
    lines = [
        RULE,
        "RUN SUMMARY",
        RULE,
        f"Monitor state:  {summary.monitor_state.value}",
        f"Elapsed:        {summary.elapsed_seconds:.2f}s",
        f"Succeeded:      {summary.successes}/{summary.total}",
        f"Failed:         {summary.failures}/{summary.total}",
    ]
    if summary.not_dispatched:
        lines.append(f"Not dispatched: {summary.not_dispatched}/{summary.total}")
    lines.append(
        f"Total value:    {summary.total_value_human} "
        f"({summary.amount_per_actor_human} x {summary.successes})"
    )

    successful = summary.successful()
    if successful:
        lines.append("")
        lines.append("Successful operations:")
        for row in successful:
            lines.append(f"  {row.label or row.identifier}: {row.detail}")

    failed = summary.failed()
    if failed:
        lines.append("")
        lines.append("Failed actors:")
        for row in failed:
            lines.append(f"  {row.label or row.identifier} ({row.identifier}): {row.detail}")

    lines.append(RULE)
    return lines
