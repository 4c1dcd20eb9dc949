"""
Training session endpoints.

Completing a session is the event the whole program reacts to. The
completion itself must succeed or fail on its own: the program state update
and medal awarding that follow are side effects, and their failures are
logged without failing the request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.medals.evaluator import session_completion_event_codes
from ...core.medals.service import MedalService
from ...core.program.models import SessionRecord, utcnow
from ...core.program.service import ProgramService
from ...infrastructure.snowflake.repositories.sessions import (
    SessionNotFoundError,
    SessionRepository,
)
from ..dependencies import (
    AuthenticatedUser,
    MedalServiceDep,
    ProgramServiceDep,
    SessionRepositoryDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class CompleteSessionRequest(BaseModel):
    notes: Optional[str] = Field(None, description="Replaces the session notes when given")


def _update_program(program: ProgramService, session_id: str) -> None:
    try:
        program.update_for_completed_session(session_id)
    except Exception:
        logger.error(
            "Failed to update program state for session",
            extra={"session_id": session_id},
            exc_info=True,
        )


def _award_medals(
    medal_service: MedalService,
    repository: SessionRepository,
    session: SessionRecord,
) -> list[dict]:
    try:
        protocol = repository.get_protocol(session.protocol_id) if session.protocol_id else None
        if protocol is None or not session.player_id:
            logger.warning(
                "Skipping medal award, session has no protocol or player",
                extra={"session_id": session.id}
            )
            return []

        awarded = medal_service.award_for_events(
            session.player_id,
            session_completion_event_codes(protocol),
            source="session_completed",
            context={
                "session_id": session.id,
                "protocol_id": protocol.id,
                "protocol_title": protocol.title,
                "category": (protocol.category or "").lower(),
            },
        )
        return [item.to_dict() for item in awarded]

    except Exception:
        logger.error(
            "Failed to award medals for session",
            extra={"session_id": session.id},
            exc_info=True,
        )
        return []


@router.post(
    "/{session_id}/complete",
    summary="Complete a training session",
    description="Marks the session completed, then advances the program and awards medals.",
)
def complete_session(
    session_id: str,
    api_key: AuthenticatedUser,
    repository: SessionRepositoryDep,
    program: ProgramServiceDep,
    medal_service: MedalServiceDep,
    request: Optional[CompleteSessionRequest] = None,
) -> dict:
    notes = request.notes if request else None
    try:
        session = repository.mark_completed(session_id, utcnow(), notes=notes)
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    logger.info(
        "Session completed",
        extra={"session_id": session_id, "player_id": session.player_id}
    )

    _update_program(program, session_id)
    newly_awarded = _award_medals(medal_service, repository, session)

    return {
        "session": session.to_dict(),
        "newly_awarded_medals": newly_awarded,
    }
