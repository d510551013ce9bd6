"""Participant directory: usage counters, roles, absences."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .constants import PARTICIPANT_COLORS
from .models import Participant, ParticipantRole, utcnow
from .persistence import ParticipantRecord, WorkflowRepository


def participant_color(position: int) -> str:
    return PARTICIPANT_COLORS[position % len(PARTICIPANT_COLORS)]


class ParticipantDirectory:
    """Keeps one record per participant email across all workflows."""

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def register(
        self, participant: Participant, role: ParticipantRole, position: int = 0
    ) -> ParticipantRecord:
        """Insert or update the directory record for ``participant``."""
        now = utcnow()
        record = await self._repository.get_participant(participant.email)
        if record is not None:
            record.last_used = now
            record.total_workflows += 1
            if role not in record.roles:
                record.roles.append(role)
        else:
            record = ParticipantRecord(
                name=participant.name,
                email=participant.email,
                organization=participant.organization,
                color=participant_color(position),
                first_used=now,
                last_used=now,
                total_workflows=1,
                roles=[role],
            )
        await self._repository.save_participant(record)
        return record

    async def get(self, email: str) -> Optional[ParticipantRecord]:
        return await self._repository.get_participant(email)

    async def all(self) -> list[ParticipantRecord]:
        return await self._repository.list_participants()

    async def search(self, query: str) -> list[ParticipantRecord]:
        records = await self._repository.list_participants()
        if not query.strip():
            return records
        needle = query.lower()
        return [
            p
            for p in records
            if needle in p.name.lower()
            or needle in p.email.lower()
            or (p.organization and needle in p.organization.lower())
        ]

    async def set_absence(
        self,
        email: str,
        absent: bool,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        substitute_email: Optional[str] = None,
    ) -> Optional[ParticipantRecord]:
        record = await self._repository.get_participant(email)
        if record is None:
            return None
        record.is_absent = absent
        record.absence_start = start if absent else None
        record.absence_end = end if absent else None
        record.substitute_email = substitute_email if absent else None
        await self._repository.save_participant(record)
        return record

    async def clear_absence(self, email: str) -> Optional[ParticipantRecord]:
        return await self.set_absence(email, absent=False)

    async def absent(self) -> list[ParticipantRecord]:
        return [p for p in await self._repository.list_participants() if p.is_absent]

    async def substitute_for(self, email: str) -> Optional[ParticipantRecord]:
        record = await self._repository.get_participant(email)
        if record is None or not record.is_absent or not record.substitute_email:
            return None
        return await self._repository.get_participant(record.substitute_email)
