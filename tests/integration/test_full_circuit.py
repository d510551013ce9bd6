"""End-to-end circuit on SQLite with auto-advance and retention."""

from datetime import timedelta

import pytest

from docroute.config import DocrouteConfig
from docroute.models import Document, DocumentStatus, ParallelMode, StepStatus
from docroute.persistence import ActivityType, SQLiteWorkflowRepository
from docroute.runtime import build_engine

from conftest import OWNER, parallel, person, return_payload, serial


@pytest.mark.asyncio
async def test_circuit_with_correction_parallel_step_and_retention(tmp_path):
    repo = SQLiteWorkflowRepository(tmp_path / "docroute.db")
    engine = build_engine(DocrouteConfig(), repository=repo)

    doc = Document(name="policy.md", content="draft")
    await repo.add_document(doc)
    wf = await engine.create_workflow(
        doc.id,
        "Policy update",
        [serial("alice"), parallel(["bob", "carol"], ParallelMode.ALL), serial("dave")],
        OWNER,
    )

    # first package goes out by hand, the rest through auto-advance
    await engine.dispatcher.advance(wf.id)
    stored = await repo.get_workflow(wf.id)
    assert stored.steps[0].status == StepStatus.SENT

    await engine.process_return(wf.id, return_payload(wf, 0, "modification_requested"))
    assert (await repo.get_workflow(wf.id)).awaiting_correction

    await engine.resubmit_step_after_correction(wf.id, 0, new_content="draft v2")
    await engine.drain()
    stored = await repo.get_workflow(wf.id)
    assert stored.steps[0].status == StepStatus.SENT
    assert len(stored.storage_package_ids) == 2

    await engine.process_return(wf.id, return_payload(wf, 0, "validated"))
    await engine.drain()
    stored = await repo.get_workflow(wf.id)
    assert stored.current_step_index == 1
    assert stored.steps[1].status == StepStatus.SENT

    await engine.process_parallel_return(
        wf.id, return_payload(wf, 1, participant=person("carol")), "carol@example.com"
    )
    await engine.process_parallel_return(
        wf.id, return_payload(wf, 1, participant=person("bob")), "bob@example.com"
    )
    await engine.drain()
    stored = await repo.get_workflow(wf.id)
    assert stored.steps[1].status == StepStatus.COMPLETED
    assert stored.steps[2].status == StepStatus.SENT

    result = await engine.process_return(wf.id, return_payload(wf, 2, "approved"))
    assert result.message.endswith("(workflow completed)")
    await engine.drain()

    stored = await repo.get_workflow(wf.id)
    assert stored.completed_at is not None
    assert stored.steps[0].correction_count == 1
    document = await repo.get_document(doc.id)
    assert document.status == DocumentStatus.COMPLETED
    assert document.version == 2

    retention = await repo.get_retention(doc.id)
    assert retention is not None
    deleted = await engine.retention.process_retentions(
        now=retention.scheduled_deletion_at + timedelta(minutes=1)
    )
    assert len(deleted) == 1
    assert (await repo.get_document(doc.id)).content == ""

    types = [a.type for a in await repo.list_activity()]
    for expected in (
        ActivityType.WORKFLOW_CREATED,
        ActivityType.PACKAGE_GENERATED,
        ActivityType.STEP_RETURNED_FOR_CORRECTION,
        ActivityType.WORKFLOW_RESUMED,
        ActivityType.PARALLEL_RESPONSE,
        ActivityType.WORKFLOW_COMPLETED,
        ActivityType.RETENTION_DELETED,
    ):
        assert expected in types
    assert ActivityType.AUTO_ADVANCE_FAILED not in types


@pytest.mark.asyncio
async def test_state_survives_engine_restart(tmp_path):
    path = tmp_path / "docroute.db"
    repo = SQLiteWorkflowRepository(path)
    engine = build_engine(DocrouteConfig(), repository=repo)
    doc = Document(name="a.pdf")
    await repo.add_document(doc)
    wf = await engine.create_workflow(doc.id, "Restart", [serial("alice"), serial("bob")], OWNER)
    await engine.process_return(wf.id, return_payload(wf, 0))
    await engine.drain()

    restarted = build_engine(DocrouteConfig(), repository=SQLiteWorkflowRepository(path))
    duplicate = await restarted.process_return(wf.id, return_payload(wf, 0))
    assert not duplicate.success

    result = await restarted.process_return(wf.id, return_payload(wf, 1))
    assert result.success
    stored = await restarted.get_workflow(wf.id)
    assert stored.completed_at is not None
