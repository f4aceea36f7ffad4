# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Text views of the purge queue and SLA snapshot for the CLI."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from remote_purge.metrics.engine import format_duration
from remote_purge.metrics.state import MetricsSnapshot
from remote_purge.purge_queue.models import PurgeEntry


def _timestamp(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _percent(value: Optional[float]) -> str:
    return "-" if value is None else f"{value * 100:.1f}%"


def summarize(snapshot: MetricsSnapshot) -> Dict[str, Any]:
    """Flatten the headline numbers of *snapshot* into one dict.

    Args:
        snapshot: Snapshot returned by ``recompute`` or loaded from disk.

    Returns:
        Dict with pending, throughput, saturation and forecast headlines.
    """
    pending = snapshot.pending or {}
    throughput = snapshot.throughput or {}
    saturation = snapshot.saturation or {}
    aggregate = (snapshot.forecast or {}).get("aggregate", {}) or {}

    return {
        "generated_at": snapshot.generated_at,
        "pending": pending.get("total", 0),
        "over_threshold": pending.get("over_threshold", 0),
        "oldest_age": pending.get("oldest_age"),
        "completed_total": throughput.get("completed_total", 0),
        "failed_total": (snapshot.failures or {}).get("total", 0),
        "success_rate": throughput.get("success_rate"),
        "average_duration": throughput.get("average_duration"),
        "average_attempts": throughput.get("average_attempts"),
        "breach_imminent": saturation.get("breach_imminent", False),
        "time_to_threshold": saturation.get("time_to_threshold"),
        "forecast_label": aggregate.get("label", ""),
        "backlog_trend": (snapshot.backlog or {}).get("trend", "insufficient"),
    }


def format_table(snapshot: Optional[MetricsSnapshot]) -> str:
    """Format the snapshot as a summary block plus a per-destination table."""
    if snapshot is None:
        return "No metrics snapshot yet. Run 'remote-purge run' first."

    s = summarize(snapshot)
    avg_attempts = s["average_attempts"]
    lines = [
        f"Generated:       {_timestamp(s['generated_at'])} UTC",
        f"Pending:         {s['pending']} ({s['over_threshold']} over threshold, "
        f"oldest {format_duration(s['oldest_age'])})",
        f"Completed:       {s['completed_total']}   Failed: {s['failed_total']}   "
        f"Success rate: {_percent(s['success_rate'])}",
        f"Avg duration:    {format_duration(s['average_duration'])}   "
        f"Avg attempts: {'-' if avg_attempts is None else f'{avg_attempts:.1f}'}",
        f"Saturation:      {'BREACH IMMINENT' if s['breach_imminent'] else 'ok'}"
        f" (threshold in {format_duration(s['time_to_threshold'])})",
        f"Forecast:        {s['forecast_label']}",
        f"Backlog trend:   {s['backlog_trend']}",
    ]

    destinations = (snapshot.forecast or {}).get("destinations", {}) or {}
    pending_by_destination = (snapshot.pending or {}).get("destinations", {}) or {}
    quotas = snapshot.quotas or {}
    if destinations:
        header = (
            f"{'Destination':<16} {'Pending':<8} {'Oldest':<10} "
            f"{'Trend':<13} {'Drain':<10} {'Quota':<7}"
        )
        lines += ["", header, "-" * len(header)]
        for destination_id, projection in sorted(destinations.items()):
            bucket = pending_by_destination.get(destination_id, {})
            samples = quotas.get(destination_id) or []
            ratio = samples[-1].get("ratio") if samples else None
            lines.append(
                f"{destination_id:<16} {bucket.get('count', 0):<8} "
                f"{format_duration(bucket.get('oldest_age')):<10} "
                f"{projection.get('trend', '-'):<13} "
                f"{format_duration(projection.get('forecast_seconds')):<10} "
                f"{_percent(ratio):<7}"
            )

    return "\n".join(lines)


def format_queue(entries: List[PurgeEntry]) -> str:
    """Format queue entries as a text table, one row per archive."""
    if not entries:
        return "Purge queue is empty."

    header = (
        f"{'File':<32} {'Status':<11} {'Tries':<6} {'Next attempt':<20} "
        f"{'Remaining':<24} {'Last error'}"
    )
    lines = [header, "-" * len(header)]
    for entry in entries:
        lines.append(
            f"{entry.file:<32} {entry.status.value:<11} {entry.attempts:<6} "
            f"{_timestamp(entry.next_attempt_at):<20} "
            f"{','.join(entry.destinations) or '-':<24} {entry.last_error}"
        )
    return "\n".join(lines)
