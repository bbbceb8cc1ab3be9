"""Feedback CLI commands: stats, sync, process, cleanup, queue."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components, run_async

console = Console()


def _with_service(c, action):
    """Run ``action(service)`` and close the service's HTTP client afterwards."""

    async def runner():
        service = c["service"]
        try:
            return await action(service)
        finally:
            await service.close()

    return run_async(runner())


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


@click.group()
def feedback():
    """Recall feedback loop: which recalled facts were actually used."""
    pass


@feedback.command("stats")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def feedback_stats(as_json: bool):
    """Show tracked sessions and offline queue status."""
    c = get_components()
    stats = _with_service(c, lambda s: s.get_stats())
    sessions = stats["sessions"]
    queue = stats["queue"]

    if as_json:
        current = sessions.current_session
        click.echo(
            json.dumps(
                {
                    "enabled": stats["enabled"],
                    "degraded": stats["degraded"],
                    "currentSession": current.to_dict() if current else None,
                    "archivedSessions": sessions.archived_sessions,
                    "totalFactsTracked": sessions.total_facts_tracked,
                    "queue": queue.to_dict(),
                },
                indent=2,
            )
        )
        return

    status = "[green]enabled[/]" if stats["enabled"] else "[yellow]disabled[/]"
    console.print(f"Feedback loop: {status}")

    table = Table(title="Recall Sessions")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    current = sessions.current_session
    table.add_row("Current session", current.session_id[:8] if current else "-")
    table.add_row("Archived sessions", str(sessions.archived_sessions))
    table.add_row("Facts tracked", str(sessions.total_facts_tracked))
    table.add_row("Oldest", _fmt_time(sessions.oldest_session))
    table.add_row("Newest", _fmt_time(sessions.newest_session))
    console.print(table)

    console.print(
        f"Offline queue: {queue.pending} pending, {queue.synced} synced ({queue.total} total)"
    )


@feedback.command("sync")
@click.option("--clear", is_flag=True, help="Remove synced signals from the queue afterwards")
def feedback_sync(clear: bool):
    """Send pending offline feedback signals to the memory service."""
    c = get_components()
    result = _with_service(c, lambda s: s.sync_pending(clear=clear))

    if result.success:
        if result.signals_synced:
            console.print(f"[green]Synced {result.signals_synced} feedback signal(s).[/]")
        else:
            console.print("No pending feedback signals to sync.")
        if result.memories_synced:
            console.print(f"Synced {result.memories_synced} offline memory(ies).")
        if result.signals_cleared:
            console.print(f"Cleared {result.signals_cleared} synced signal(s) from queue.")
        return

    console.print(f"[red]Failed to sync feedback signals:[/] {result.error or 'Unknown error'}")
    if result.degraded:
        console.print(
            "[yellow]Memory service unavailable. Signals will sync when it is reachable.[/]"
        )
    raise SystemExit(1)


@feedback.command("process")
@click.argument("session_id")
@click.option("--transcript", type=click.Path(exists=True, path_type=Path),
              help="File with the assistant's response text")
@click.option("--activity", type=click.Path(exists=True, path_type=Path),
              help="JSON file: {filesAccessed, tasksCompleted, summary}")
@click.option("--send/--no-send", default=False, help="Submit the resulting signals")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def feedback_process(session_id: str, transcript: Path, activity: Path, send: bool, as_json: bool):
    """Score the facts recalled for SESSION_ID."""
    c = get_components()
    text = transcript.read_text(encoding="utf-8") if transcript else None
    try:
        activity_data = json.loads(activity.read_text(encoding="utf-8")) if activity else None
    except ValueError as e:
        console.print(f"[red]Invalid activity file:[/] {e}")
        raise SystemExit(1)

    async def action(service):
        result = await service.process_feedback(session_id, text, activity_data)
        delivery = None
        if send and result.success and result.prepared_signals:
            delivery = await service.submit_signals(result.prepared_signals)
        return result, delivery

    result, delivery = _with_service(c, action)

    if as_json:
        data = result.to_dict()
        if delivery is not None:
            data["delivery"] = delivery
        click.echo(json.dumps(data, indent=2))
        return

    if not result.success:
        console.print(f"[yellow]{result.reason or result.error}[/]")
        raise SystemExit(1)

    summary = result.summary
    console.print(
        f"Facts: {summary.total}  used: [green]{summary.used}[/]  "
        f"ignored: [red]{summary.ignored}[/]  uncertain: {summary.uncertain}  "
        f"(usage rate {summary.usage_rate:.0%})"
    )

    if result.fact_scores:
        table = Table(show_header=True)
        table.add_column("Fact", style="dim", width=12)
        table.add_column("Verdict")
        table.add_column("Conf", justify="right", width=5)
        table.add_column("Evidence")
        for score in result.fact_scores:
            kinds = ", ".join(dict.fromkeys(d.detection_type.value for d in score.detections))
            table.add_row(score.fact_id[:12], score.verdict.value, f"{score.confidence:.2f}", kinds)
        console.print(table)

    console.print(f"Prepared {len(result.prepared_signals)} signal(s).")
    if delivery is not None:
        console.print(f"Sent {delivery['sent']}, queued {delivery['queued']}.")


@feedback.command("cleanup")
@click.option("-d", "--days", type=int, default=None, help="Retention in days (default from config)")
def feedback_cleanup(days: int | None):
    """Delete archived sessions older than the retention period."""
    c = get_components()
    retention = days if days is not None else c["config"].feedback.retention_days
    removed = _with_service(c, lambda s: s.sessions.cleanup_old_sessions(retention))
    console.print(f"Removed {removed} archived session(s) older than {retention} day(s).")


@feedback.command("queue")
@click.option("--clear", is_flag=True, help="Discard every queued signal, including unsynced ones")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def feedback_queue(clear: bool, yes: bool):
    """Show the offline signal queue."""
    c = get_components()

    if clear:
        if not yes and not click.confirm("Discard all queued feedback signals?"):
            console.print("Cancelled.")
            return
        _with_service(c, lambda s: s.queue.clear())
        console.print("Offline queue cleared.")
        return

    async def action(service):
        return await service.queue.get_stats(), await service.queue.get_unsynced()

    stats, pending = _with_service(c, action)
    console.print(f"Queue file: {c['service'].queue.storage_path}")
    console.print(f"Total: {stats.total}  pending: {stats.pending}  synced: {stats.synced}")
    if stats.last_sync_attempt:
        console.print(f"Last sync attempt: {stats.last_sync_attempt}")
    if stats.last_sync_success:
        console.print(f"Last sync success: {stats.last_sync_success}")

    if pending:
        table = Table(show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Fact")
        table.add_column("Signal")
        table.add_column("Conf", justify="right")
        table.add_column("Queued", style="cyan")
        for s in pending[:20]:
            table.add_row(s.id, s.fact_id[:12], s.signal_type.value, f"{s.confidence:.2f}", s.queued_at)
        console.print(table)
