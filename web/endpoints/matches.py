"""Match play endpoints."""

import logging

from fastapi import APIRouter, Depends

from quiz_tournaments import TournamentAPI
from web.endpoints.tournaments import get_tournament_api
from web.tournament_requests import AnswerSubmission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/matches/{match_id}")
async def get_match(match_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Get a match with its active question and visible answers."""
    return await api.get_match(match_id)


@router.post("/matches/{match_id}/start")
async def start_match(match_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Start a pending match."""
    return await api.start_match(match_id)


@router.post("/matches/{match_id}/answers")
async def submit_answer(
    match_id: int,
    submission: AnswerSubmission,
    api: TournamentAPI = Depends(get_tournament_api),
):
    """Submit one side's answer to the active question."""
    return await api.submit_answer(
        match_id, submission.participant_id, submission.answer, submission.time_spent_ms
    )


@router.post("/matches/{match_id}/reveal")
async def reveal_result(match_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Score the active question."""
    return await api.reveal_result(match_id)


@router.post("/matches/{match_id}/next")
async def next_question(match_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Move on to the next question."""
    return await api.next_question(match_id)


@router.post("/matches/{match_id}/complete")
async def complete_match(match_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Decide the match and advance the winner."""
    return await api.complete_match(match_id)
