from datetime import timedelta

import pytest

from docroute.blockage import BlockageReason, detect_blocked_workflows
from docroute.models import utcnow
from docroute.participants import ParticipantDirectory

from conftest import parallel, return_payload, serial


@pytest.mark.asyncio
async def test_absent_current_participant_blocks(repo, make_workflow):
    wf = await make_workflow([serial("alice"), serial("bob")])
    await ParticipantDirectory(repo).set_absence(
        "alice@example.com", True, substitute_email="carol@example.com"
    )
    # bob is absent too but his step is not current
    await ParticipantDirectory(repo).set_absence("bob@example.com", True)

    blocked = await detect_blocked_workflows(repo)
    assert len(blocked) == 1
    assert blocked[0].workflow.id == wf.id
    assert blocked[0].reason == BlockageReason.PARTICIPANT_ABSENT
    assert blocked[0].participant.email == "alice@example.com"
    assert blocked[0].substitute_email == "carol@example.com"


@pytest.mark.asyncio
async def test_parallel_step_blocked_only_by_pending_responders(repo, engine, make_workflow):
    wf = await make_workflow([parallel(["alice", "bob"])])
    await engine.process_parallel_return(wf.id, return_payload(wf, 0), "alice@example.com")
    await ParticipantDirectory(repo).set_absence("alice@example.com", True)
    assert await detect_blocked_workflows(repo) == []

    await ParticipantDirectory(repo).set_absence("bob@example.com", True)
    blocked = await detect_blocked_workflows(repo)
    assert [b.participant.email for b in blocked] == ["bob@example.com"]


@pytest.mark.asyncio
async def test_overdue_deadline_blocks_until_finished(repo, engine, make_workflow):
    now = utcnow()
    wf = await make_workflow([serial("alice")], deadline=now - timedelta(days=2, hours=1))

    blocked = await detect_blocked_workflows(repo, now=now)
    assert len(blocked) == 1
    assert blocked[0].reason == BlockageReason.DEADLINE_PASSED
    assert blocked[0].days_overdue == 2

    await engine.cancel_workflow(wf.id)
    assert await detect_blocked_workflows(repo, now=now) == []
