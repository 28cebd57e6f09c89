"""Request bodies for the tournament and match endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ParticipantsRequest(BaseModel):
    """Request model for registering roster entries in a tournament."""

    reference_ids: list[str] = Field(..., min_length=1)


class AnswerSubmission(BaseModel):
    """Request model for one side's answer to the active question."""

    participant_id: int
    answer: Any
    time_spent_ms: int | None = Field(default=None, ge=0)
