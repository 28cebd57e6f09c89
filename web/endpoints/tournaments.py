"""Tournament management endpoints."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends

from config.settings import get_default_config
from quiz_tournaments import (
    LoggingRewardService,
    StaticQuestionBank,
    StaticRoster,
    TournamentAPI,
    TournamentDatabaseManager,
    TournamentManager,
)
from quiz_tournaments.models import TournamentCreateRequest, TournamentUpdateRequest
from web.tournament_requests import ParticipantsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

tournament_api: TournamentAPI | None = None


def get_tournament_api() -> TournamentAPI:
    """Get or create tournament API instance."""
    global tournament_api
    if tournament_api is None:
        config = get_default_config()
        system = config.system

        tournament_manager = TournamentManager(
            db=TournamentDatabaseManager(system.database_path),
            question_bank=StaticQuestionBank.from_file(Path(system.question_bank_file)),
            roster=StaticRoster.from_file(Path(system.roster_file)),
            rewards=LoggingRewardService(),
            config=config,
        )
        tournament_api = TournamentAPI(tournament_manager)
        logger.info(f"Tournament API ready (database: {system.database_path})")

    return tournament_api


@router.post("/tournaments")
async def create_tournament(
    request: TournamentCreateRequest, api: TournamentAPI = Depends(get_tournament_api)
):
    """Create a new tournament."""
    return await api.create_tournament(request)


@router.get("/tournaments")
async def list_tournaments(
    limit: int | None = None,
    offset: int = 0,
    api: TournamentAPI = Depends(get_tournament_api),
):
    """List all tournaments."""
    return await api.list_tournaments(limit, offset)


@router.get("/tournaments/{tournament_id}")
async def get_tournament(tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Get tournament details."""
    return await api.get_tournament(tournament_id)


@router.patch("/tournaments/{tournament_id}")
async def update_tournament(
    tournament_id: int,
    changes: TournamentUpdateRequest,
    api: TournamentAPI = Depends(get_tournament_api),
):
    """Update the configuration of a draft tournament."""
    return await api.update_tournament(tournament_id, changes)


@router.delete("/tournaments/{tournament_id}")
async def delete_tournament(
    tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)
):
    """Delete tournament."""
    return await api.delete_tournament(tournament_id)


@router.post("/tournaments/{tournament_id}/participants")
async def add_participants(
    tournament_id: int,
    request: ParticipantsRequest,
    api: TournamentAPI = Depends(get_tournament_api),
):
    """Register roster entries as participants."""
    return await api.add_participants(tournament_id, request.reference_ids)


@router.delete("/participants/{participant_id}")
async def remove_participant(
    participant_id: int, api: TournamentAPI = Depends(get_tournament_api)
):
    """Remove a participant from a draft tournament."""
    return await api.remove_participant(participant_id)


@router.post("/tournaments/{tournament_id}/shuffle")
async def shuffle_seeds(tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Randomly reassign seeds."""
    return await api.shuffle_seeds(tournament_id)


@router.post("/tournaments/{tournament_id}/bracket")
async def generate_bracket(
    tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)
):
    """Generate the bracket, or the schedule for a league."""
    return await api.generate_bracket(tournament_id)


@router.post("/tournaments/{tournament_id}/schedule")
async def build_schedule(tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Build the round-robin schedule of a league."""
    return await api.build_schedule(tournament_id)


@router.post("/tournaments/{tournament_id}/pause")
async def pause_tournament(
    tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)
):
    return await api.pause_tournament(tournament_id)


@router.post("/tournaments/{tournament_id}/resume")
async def resume_tournament(
    tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)
):
    return await api.resume_tournament(tournament_id)


@router.get("/tournaments/{tournament_id}/standings")
async def get_standings(tournament_id: int, api: TournamentAPI = Depends(get_tournament_api)):
    """Get the league table."""
    return await api.get_standings(tournament_id)


@router.get("/tournaments/{tournament_id}/rounds/{round_number}")
async def get_round_status(
    tournament_id: int, round_number: int, api: TournamentAPI = Depends(get_tournament_api)
):
    """Get match counts for a round."""
    return await api.get_round_status(tournament_id, round_number)
