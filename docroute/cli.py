"""Command line interface for operating docroute workflows."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import load_config
from .engine import WorkflowEngine
from .listener import ReturnListener
from .persistence import get_repository
from .runtime import build_engine
from .transports import get_transport

app = typer.Typer(help="CLI for docroute validation circuits")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and managing workflows")
return_app = typer.Typer(help="Commands for applying participant returns")
retention_app = typer.Typer(help="Commands for document retention")
activity_app = typer.Typer(help="Commands for the activity log")

app.add_typer(workflow_app, name="workflow")
app.add_typer(return_app, name="return")
app.add_typer(retention_app, name="retention")
app.add_typer(activity_app, name="activity")


@app.callback()
def main() -> None:
    """Docroute CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    return build_engine(repository=get_repository())


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows, newest first.

    Example:
        docroute workflow list
        # Output: 5f0c...    Contract review    active (step 2/3)
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        if wf.is_cancelled:
            state = "cancelled"
        elif wf.is_terminal:
            state = "finished"
        elif wf.awaiting_correction:
            state = "awaiting correction"
        else:
            state = f"active (step {wf.current_step_index + 1}/{len(wf.steps)})"
        typer.echo(f"{wf.id}\t{wf.name}\t{state}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show a workflow and the status of each of its steps.

    Example:
        docroute workflow show 5f0c...
        # Output: Workflow 5f0c...: Contract review
        #         - 1. Alice <alice@example.com> (reviewer): completed
        #         - 2. Bob <bob@example.com> (signer): sent
    """
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name}")
    typer.echo(f"Document: {wf.document_id}")
    if wf.deadline:
        typer.echo(f"Deadline: {wf.deadline.isoformat()}")
    if wf.completed_at:
        typer.echo(f"Finished: {wf.completed_at.isoformat()}")
    if wf.is_cancelled:
        typer.echo(f"Cancelled by {wf.cancelled_by or 'unknown'}: {wf.cancellation_reason or '-'}")
    for index, step in enumerate(wf.steps):
        marker = "*" if index == wf.current_step_index and not wf.is_terminal else "-"
        typer.echo(
            f"{marker} {step.order}. {step.participant.name} <{step.participant.email}> "
            f"({step.role.value}): {step.status.value}"
        )
        for entry in step.parallel_participants:
            typer.echo(f"    {entry.participant.email}: {entry.status.value}")


@workflow_app.command("cancel")
def workflow_cancel(
    workflow_id: str,
    by: Optional[str] = typer.Option(None, help="Who cancels the workflow"),
    reason: Optional[str] = typer.Option(None, help="Why the workflow is cancelled"),
) -> None:
    """Cancel an active workflow."""
    engine = _engine()
    result = asyncio.run(engine.cancel_workflow(workflow_id, cancelled_by=by, reason=reason))
    if not result.success:
        typer.secho(result.message or "Cancellation failed", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(result.message)


@return_app.command("import")
def return_import(path: Path) -> None:
    """
    Apply a return file produced by a participant.

    Example:
        docroute return import ./contract_return.json
        # Output: Return processed successfully
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = _engine()
    listener = ReturnListener(engine)

    async def _run():
        result = await listener.handle(path.read_text())
        await engine.drain()
        return result

    result = asyncio.run(_run())
    if not result.success:
        typer.secho(result.message or "Return rejected", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(result.message)


@return_app.command("listen")
def return_listen(lifespan: Optional[float] = None) -> None:
    """Apply return payloads pushed on the configured transport."""
    config = load_config()
    engine = build_engine(config=config, repository=get_repository())
    listener = ReturnListener(engine, get_transport(config=config), config.transport.topic)

    async def _run() -> None:
        await listener.start(lifespan=lifespan)
        await engine.drain()

    typer.echo(f"Listening for returns on: {config.transport.topic}")
    asyncio.run(_run())
    typer.echo(f"Processed {len(listener.results)} returns")


@retention_app.command("process")
def retention_process() -> None:
    """Send deletion warnings and delete expired document content."""
    engine = _engine()
    deleted = asyncio.run(engine.retention.process_retentions())
    if not deleted:
        typer.echo("Nothing to delete")
        return
    for retention in deleted:
        typer.echo(f"Deleted {retention.document_name} ({retention.deletion_mode})")


@retention_app.command("stats")
def retention_stats() -> None:
    engine = _engine()
    stats = asyncio.run(engine.retention.stats())
    typer.echo(
        f"total={stats.total} warned={stats.warned} "
        f"protected={stats.protected} deleted={stats.deleted}"
    )


@activity_app.command("recent")
def activity_recent(limit: int = typer.Option(20, help="Number of entries to show")) -> None:
    """Show the most recent activity entries."""
    engine = _engine()
    entries = asyncio.run(engine.activity.recent(limit))
    if not entries:
        typer.echo("No activity recorded")
        return
    for entry in entries:
        typer.echo(f"{entry.timestamp.isoformat()}\t{entry.type.value}\t{entry.description}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
