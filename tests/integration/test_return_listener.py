"""Pushed returns flowing from a transport into the engine."""

import json

import pytest

from docroute.config import DocrouteConfig
from docroute.listener import ReturnListener
from docroute.models import Document, StepStatus
from docroute.persistence import ActivityType, SQLiteWorkflowRepository
from docroute.runtime import build_engine
from docroute.transports.inmemory import InMemoryTransport

from conftest import OWNER, parallel, person, return_payload, serial


@pytest.mark.asyncio
async def test_listener_routes_serial_and_parallel_returns(tmp_path):
    repo = SQLiteWorkflowRepository(tmp_path / "docroute.db")
    engine = build_engine(DocrouteConfig(), repository=repo)
    transport = InMemoryTransport()
    listener = ReturnListener(engine, transport, topic="returns")

    doc = Document(name="nda.pdf")
    await repo.add_document(doc)
    wf = await engine.create_workflow(
        doc.id, "NDA", [serial("alice"), parallel(["bob", "carol"])], OWNER
    )

    await transport.publish("returns", json.dumps(return_payload(wf, 0)))
    await transport.publish(
        "returns", json.dumps(return_payload(wf, 1, participant=person("bob")))
    )
    await transport.publish(
        "returns", json.dumps(return_payload(wf, 1, participant=person("carol")))
    )
    await transport.publish("returns", "not a return")

    await listener.start(lifespan=0.5)
    await engine.drain()

    assert [r.success for r in listener.results] == [True, True, True, False]
    assert listener.results[1].message == "Response recorded (1/2)"
    assert len(transport.acked) == 4

    stored = await repo.get_workflow(wf.id)
    assert stored.completed_at is not None
    assert stored.steps[1].status == StepStatus.COMPLETED

    types = [a.type for a in await repo.list_activity()]
    assert types.count(ActivityType.RETURN_IMPORTED) == 3


@pytest.mark.asyncio
async def test_listener_reports_unknown_targets(tmp_path):
    repo = SQLiteWorkflowRepository(tmp_path / "docroute.db")
    engine = build_engine(DocrouteConfig(), repository=repo)
    listener = ReturnListener(engine)

    doc = Document(name="nda.pdf")
    await repo.add_document(doc)
    wf = await engine.create_workflow(doc.id, "NDA", [parallel(["bob", "carol"])], OWNER)

    unknown = return_payload(wf, 0)
    unknown["workflowId"] = "missing"
    assert not (await listener.handle(unknown)).success

    anonymous = return_payload(wf, 0)
    anonymous.pop("participant")
    result = await listener.handle(anonymous)
    assert not result.success
    assert "participant" in result.message

    with pytest.raises(ValueError):
        await listener.start(lifespan=0.1)
