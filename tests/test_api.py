"""HTTP tests for the tournament endpoints.

Learning notes:
- FastAPI's TestClient runs the app in-process (it is built on httpx)
- dependency_overrides swaps the production wiring for the test manager
"""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import CORRECT, WRONG
from quiz_tournaments import TournamentAPI
from web.api import app
from web.endpoints.tournaments import get_tournament_api


@pytest.fixture
def client(manager) -> Iterator[TestClient]:
    api = TournamentAPI(manager)
    app.dependency_overrides[get_tournament_api] = lambda: api
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_duel(client: TestClient) -> tuple[int, dict]:
    response = client.post(
        "/api/tournaments",
        json={"name": "HTTP Cup", "capacity": 2, "question_bank_ids": ["general"]},
    )
    assert response.status_code == 200
    tournament_id = response.json()["tournament_id"]

    response = client.post(
        f"/api/tournaments/{tournament_id}/participants",
        json={"reference_ids": ["s1", "s2"]},
    )
    assert response.status_code == 200
    assert response.json()["count"] == 2

    response = client.post(f"/api/tournaments/{tournament_id}/bracket")
    assert response.status_code == 200
    matches = response.json()["matches"]
    assert len(matches) == 1
    return tournament_id, matches[0]


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"isAlive": True}


@pytest.mark.integration
def test_full_match_over_http(client):
    tournament_id, match = create_duel(client)
    match_id = match["id"]
    a, b = match["participant_a_id"], match["participant_b_id"]

    started = client.post(f"/api/matches/{match_id}/start")
    assert started.status_code == 200
    assert started.json()["match"]["status"] == "in_progress"

    for _ in range(3):
        for participant_id, answer in ((a, CORRECT), (b, WRONG)):
            response = client.post(
                f"/api/matches/{match_id}/answers",
                json={"participant_id": participant_id, "answer": answer, "time_spent_ms": 1200},
            )
            assert response.status_code == 200
            assert response.json()["accepted"] is True
        assert client.post(f"/api/matches/{match_id}/reveal").status_code == 200
        assert client.post(f"/api/matches/{match_id}/next").status_code == 200

    completed = client.post(f"/api/matches/{match_id}/complete")
    assert completed.status_code == 200
    body = completed.json()
    assert body["completed"] is True
    assert body["tournament_finished"] is True
    assert body["match"]["winner_id"] == a
    assert (body["match"]["score_a"], body["match"]["score_b"]) == (3, 0)

    tournament = client.get(f"/api/tournaments/{tournament_id}").json()["tournament"]
    assert tournament["status"] == "finished"
    assert tournament["first_place_id"] == a

    listing = client.get("/api/tournaments").json()
    assert listing["count"] == 1
    assert listing["tournaments"][0]["status"] == "finished"


def test_error_status_codes(client):
    assert client.post("/api/tournaments", json={"name": "Odd", "capacity": 6}).status_code == 400
    assert client.post("/api/tournaments", json={"capacity": 8}).status_code == 422
    assert client.get("/api/tournaments/999").status_code == 404
    assert client.get("/api/matches/999").status_code == 404

    tournament_id, match = create_duel(client)
    assert client.post(f"/api/tournaments/{tournament_id}/bracket").status_code == 409
    assert client.get(f"/api/tournaments/{tournament_id}/standings").status_code == 400
    assert client.get(f"/api/tournaments/{tournament_id}/rounds/1").json()["pending_matches"] == 1
    assert client.get(f"/api/tournaments/{tournament_id}/rounds/2").status_code == 400
    assert client.post(f"/api/matches/{match['id']}/complete").status_code == 409

    client.post(f"/api/matches/{match['id']}/start")
    answer = {"participant_id": match["participant_a_id"], "answer": CORRECT}
    assert client.post(f"/api/matches/{match['id']}/answers", json=answer).status_code == 200
    assert client.post(f"/api/matches/{match['id']}/answers", json=answer).status_code == 409
    assert client.post(f"/api/matches/{match['id']}/reveal").status_code == 409


def test_draft_editing_endpoints(client):
    response = client.post(
        "/api/tournaments", json={"name": "League", "format": "league", "capacity": 6}
    )
    tournament_id = response.json()["tournament_id"]
    client.post(
        f"/api/tournaments/{tournament_id}/participants",
        json={"reference_ids": ["s1", "s2", "s3"]},
    )

    patched = client.patch(f"/api/tournaments/{tournament_id}", json={"name": "Spring League"})
    assert patched.status_code == 200
    assert patched.json()["tournament"]["name"] == "Spring League"

    shuffled = client.post(f"/api/tournaments/{tournament_id}/shuffle").json()
    assert sorted(p["seed"] for p in shuffled["participants"]) == [1, 2, 3]

    removed = client.delete(f"/api/participants/{shuffled['participants'][0]['id']}")
    assert removed.status_code == 200
    assert [p["seed"] for p in removed.json()["participants"]] == [1, 2]

    schedule = client.post(f"/api/tournaments/{tournament_id}/schedule")
    assert schedule.status_code == 200
    assert len(schedule.json()["matches"]) == 1

    standings = client.get(f"/api/tournaments/{tournament_id}/standings").json()["standings"]
    assert [row["rank"] for row in standings] == [1, 2]

    assert client.delete(f"/api/tournaments/{tournament_id}").status_code == 200
    assert client.get(f"/api/tournaments/{tournament_id}").status_code == 404
