"""Tournament API endpoint handlers."""

import logging
from typing import Any

from fastapi import HTTPException

from .exceptions import TournamentError
from .manager import TournamentManager
from .models import TournamentCreateRequest, TournamentUpdateRequest

logger = logging.getLogger(__name__)


class TournamentAPI:
    """FastAPI endpoint handlers for tournament operations.

    Engine errors carry their own HTTP status (400 validation, 404 not found,
    409 conflict); anything else is logged and reported as a 500.
    """

    def __init__(self, tournament_manager: TournamentManager):
        self.manager = tournament_manager

    @staticmethod
    def _http_error(e: Exception, action: str) -> HTTPException:
        if isinstance(e, TournamentError):
            logger.info(f"Rejected {action}: {e.message}")
            return HTTPException(status_code=e.status_code, detail=e.user_message)
        logger.error(f"Failed to {action}: {e}")
        return HTTPException(status_code=500, detail="Internal server error")

    # -------------------------------------------------------------------------
    # Tournaments
    # -------------------------------------------------------------------------

    async def create_tournament(self, request: TournamentCreateRequest) -> dict[str, Any]:
        """Create a new tournament."""
        try:
            tournament = await self.manager.create_tournament(request)
            return {
                "tournament_id": tournament.id,
                "message": f"Tournament '{tournament.name}' created successfully",
                "tournament": tournament.model_dump(mode="json"),
            }
        except Exception as e:
            raise self._http_error(e, "create tournament")

    async def list_tournaments(
        self, limit: int | None = None, offset: int = 0
    ) -> dict[str, Any]:
        """List all tournaments."""
        try:
            tournaments = await self.manager.list_tournaments(limit, offset)
            return {
                "tournaments": [t.model_dump(mode="json") for t in tournaments],
                "count": len(tournaments),
            }
        except Exception as e:
            raise self._http_error(e, "list tournaments")

    async def get_tournament(self, tournament_id: int) -> dict[str, Any]:
        """Get tournament details with participants and matches."""
        try:
            detail = await self.manager.get_tournament(tournament_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"get tournament {tournament_id}")

    async def update_tournament(
        self, tournament_id: int, changes: TournamentUpdateRequest
    ) -> dict[str, Any]:
        try:
            tournament = await self.manager.update_tournament(tournament_id, changes)
            return {"tournament": tournament.model_dump(mode="json")}
        except Exception as e:
            raise self._http_error(e, f"update tournament {tournament_id}")

    async def delete_tournament(self, tournament_id: int) -> dict[str, Any]:
        """Delete tournament and all related data."""
        try:
            await self.manager.delete_tournament(tournament_id)
            return {
                "message": f"Tournament {tournament_id} deleted successfully",
                "tournament_id": tournament_id,
            }
        except Exception as e:
            raise self._http_error(e, f"delete tournament {tournament_id}")

    async def pause_tournament(self, tournament_id: int) -> dict[str, Any]:
        try:
            tournament = await self.manager.pause_tournament(tournament_id)
            return {"tournament_id": tournament_id, "status": tournament.status.value}
        except Exception as e:
            raise self._http_error(e, f"pause tournament {tournament_id}")

    async def resume_tournament(self, tournament_id: int) -> dict[str, Any]:
        try:
            tournament = await self.manager.resume_tournament(tournament_id)
            return {"tournament_id": tournament_id, "status": tournament.status.value}
        except Exception as e:
            raise self._http_error(e, f"resume tournament {tournament_id}")

    async def get_standings(self, tournament_id: int) -> dict[str, Any]:
        """League table for a tournament."""
        try:
            rows = await self.manager.get_standings(tournament_id)
            return {
                "tournament_id": tournament_id,
                "standings": [row.model_dump(mode="json") for row in rows],
            }
        except Exception as e:
            raise self._http_error(e, f"get standings for tournament {tournament_id}")

    async def get_round_status(self, tournament_id: int, round_number: int) -> dict[str, Any]:
        """Get match counts for one round."""
        try:
            status = await self.manager.get_round_status(tournament_id, round_number)
            return status.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(
                e, f"get round {round_number} status for tournament {tournament_id}"
            )

    # -------------------------------------------------------------------------
    # Participants and generation
    # -------------------------------------------------------------------------

    async def add_participants(
        self, tournament_id: int, reference_ids: list[str]
    ) -> dict[str, Any]:
        try:
            added = await self.manager.add_participants(tournament_id, reference_ids)
            return {
                "tournament_id": tournament_id,
                "participants": [p.model_dump(mode="json") for p in added],
                "count": len(added),
            }
        except Exception as e:
            raise self._http_error(e, f"add participants to tournament {tournament_id}")

    async def remove_participant(self, participant_id: int) -> dict[str, Any]:
        try:
            remaining = await self.manager.remove_participant(participant_id)
            return {
                "removed_participant_id": participant_id,
                "participants": [p.model_dump(mode="json") for p in remaining],
            }
        except Exception as e:
            raise self._http_error(e, f"remove participant {participant_id}")

    async def shuffle_seeds(self, tournament_id: int) -> dict[str, Any]:
        try:
            participants = await self.manager.shuffle_seeds(tournament_id)
            return {
                "tournament_id": tournament_id,
                "participants": [p.model_dump(mode="json") for p in participants],
            }
        except Exception as e:
            raise self._http_error(e, f"shuffle seeds of tournament {tournament_id}")

    async def generate_bracket(self, tournament_id: int) -> dict[str, Any]:
        """Generate the bracket (or league schedule) of a draft tournament."""
        try:
            detail = await self.manager.generate_bracket(tournament_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"generate bracket for tournament {tournament_id}")

    async def build_schedule(self, tournament_id: int) -> dict[str, Any]:
        try:
            detail = await self.manager.build_schedule(tournament_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"build schedule for tournament {tournament_id}")

    # -------------------------------------------------------------------------
    # Matches
    # -------------------------------------------------------------------------

    async def get_match(self, match_id: int) -> dict[str, Any]:
        try:
            detail = await self.manager.get_match(match_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"get match {match_id}")

    async def start_match(self, match_id: int) -> dict[str, Any]:
        try:
            detail = await self.manager.start_match(match_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"start match {match_id}")

    async def submit_answer(
        self,
        match_id: int,
        participant_id: int,
        answer: Any,
        time_spent_ms: int | None = None,
    ) -> dict[str, Any]:
        try:
            record = await self.manager.submit_answer(
                match_id, participant_id, answer, time_spent_ms
            )
            # Correctness stays hidden until the reveal.
            return {
                "match_id": match_id,
                "participant_id": participant_id,
                "question_index": record.question_index,
                "accepted": True,
            }
        except Exception as e:
            raise self._http_error(e, f"submit answer to match {match_id}")

    async def reveal_result(self, match_id: int) -> dict[str, Any]:
        try:
            detail = await self.manager.reveal_result(match_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"reveal result of match {match_id}")

    async def next_question(self, match_id: int) -> dict[str, Any]:
        try:
            detail = await self.manager.next_question(match_id)
            return detail.model_dump(mode="json")
        except Exception as e:
            raise self._http_error(e, f"advance match {match_id}")

    async def complete_match(self, match_id: int) -> dict[str, Any]:
        try:
            result = await self.manager.complete_match(match_id)
            return {
                "match": result.match.model_dump(mode="json"),
                "completed": result.completed,
                "already_completed": result.already_completed,
                "sudden_death": not result.completed,
                "tournament_finished": result.advancement.tournament_finished,
            }
        except Exception as e:
            raise self._http_error(e, f"complete match {match_id}")
