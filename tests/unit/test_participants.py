import pytest

from docroute.constants import PARTICIPANT_COLORS
from docroute.models import Participant, ParticipantRole
from docroute.participants import ParticipantDirectory, participant_color


def test_participant_color_wraps_around():
    assert participant_color(0) == PARTICIPANT_COLORS[0]
    assert participant_color(len(PARTICIPANT_COLORS) + 1) == PARTICIPANT_COLORS[1]


@pytest.mark.asyncio
async def test_register_upserts_and_merges_roles(repo):
    directory = ParticipantDirectory(repo)
    alice = Participant(name="Alice", email="alice@example.com", organization="Legal")

    first = await directory.register(alice, ParticipantRole.REVIEWER, position=2)
    assert first.total_workflows == 1
    assert first.color == PARTICIPANT_COLORS[2]

    second = await directory.register(alice, ParticipantRole.SIGNER, position=5)
    assert second.total_workflows == 2
    assert second.color == PARTICIPANT_COLORS[2]
    assert second.roles == [ParticipantRole.REVIEWER, ParticipantRole.SIGNER]

    await directory.register(alice, ParticipantRole.SIGNER)
    assert (await directory.get("alice@example.com")).roles == [
        ParticipantRole.REVIEWER,
        ParticipantRole.SIGNER,
    ]


@pytest.mark.asyncio
async def test_search_and_absences(repo):
    directory = ParticipantDirectory(repo)
    await directory.register(
        Participant(name="Alice", email="alice@example.com", organization="Legal"),
        ParticipantRole.REVIEWER,
    )
    await directory.register(Participant(name="Bob", email="bob@example.com"), ParticipantRole.SIGNER)

    assert [p.email for p in await directory.search("legal")] == ["alice@example.com"]
    assert len(await directory.search("  ")) == 2

    record = await directory.set_absence("alice@example.com", True, substitute_email="bob@example.com")
    assert record.is_absent
    assert [p.email for p in await directory.absent()] == ["alice@example.com"]
    assert (await directory.substitute_for("alice@example.com")).email == "bob@example.com"

    cleared = await directory.clear_absence("alice@example.com")
    assert not cleared.is_absent
    assert cleared.substitute_email is None
    assert await directory.substitute_for("alice@example.com") is None
    assert await directory.set_absence("nobody@example.com", True) is None
