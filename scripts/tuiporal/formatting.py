"""Text helpers shared by the TUI views and the one-shot printer."""

from __future__ import annotations

from datetime import datetime, timezone

from tuiporal.providers import WorkflowStatus, WorkflowSummary

STATUS_ICONS = {
    WorkflowStatus.RUNNING: "●",
    WorkflowStatus.COMPLETED: "✓",
    WorkflowStatus.FAILED: "✗",
    WorkflowStatus.CANCELED: "⊘",
    WorkflowStatus.TERMINATED: "⊗",
    WorkflowStatus.TIMED_OUT: "⧖",
    WorkflowStatus.CONTINUED_AS_NEW: "↻",
}

STATUS_CLASSES = {
    WorkflowStatus.RUNNING: "status-running",
    WorkflowStatus.COMPLETED: "status-complete",
    WorkflowStatus.FAILED: "status-failed",
    WorkflowStatus.CANCELED: "status-muted",
    WorkflowStatus.TERMINATED: "status-failed",
    WorkflowStatus.TIMED_OUT: "status-failed",
    WorkflowStatus.CONTINUED_AS_NEW: "status-muted",
}


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def format_duration(start: datetime | None, end: datetime | None = None) -> str:
    """Format the duration between two timestamps."""
    if start is None:
        return "—"
    end = end or datetime.now(timezone.utc)
    try:
        delta = _aware(end) - _aware(start)
    except TypeError:
        return "—"

    total_seconds = abs(int(delta.total_seconds()))
    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        return f"{total_seconds // 60}m {total_seconds % 60}s"
    else:
        hours = total_seconds // 3600
        mins = (total_seconds % 3600) // 60
        return f"{hours}h {mins}m"


def format_time_ago(ts: datetime | None) -> str:
    """Format timestamp as 'X ago'."""
    if ts is None:
        return "—"
    delta = datetime.now(timezone.utc) - _aware(ts)

    total_seconds = abs(int(delta.total_seconds()))
    if total_seconds < 60:
        return f"{total_seconds}s ago"
    elif total_seconds < 3600:
        return f"{total_seconds // 60}m ago"
    elif total_seconds < 86400:
        return f"{total_seconds // 3600}h ago"
    else:
        return f"{total_seconds // 86400}d ago"


def format_timestamp(ts: datetime | None) -> str:
    if ts is None:
        return "N/A"
    return _aware(ts).strftime("%Y-%m-%d %H:%M:%S UTC")


def status_label(status: WorkflowStatus | None, pending: bool = False) -> str:
    """Icon plus status name, with a marker while a command is pending."""
    if status is None:
        text = "? Unknown"
    else:
        text = f"{STATUS_ICONS[status]} {status.value}"
    return f"{text} ⟳" if pending else text


def summary_row(summary: WorkflowSummary, pending: bool = False) -> tuple[str, ...]:
    """Cells of one workflow table row."""
    return (
        status_label(summary.status, pending),
        summary.workflow_id,
        summary.workflow_type,
        format_time_ago(summary.start_time),
        format_duration(summary.start_time, summary.close_time),
    )
