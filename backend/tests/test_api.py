"""HTTP surface: status codes for each engine error kind, authorization, and the main flows."""
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from courtside.auth import AllowAllAuthorizer, get_authorizer
from courtside.main import app
from courtside.models.match import Match
from courtside.models.time_slot import TimeSlot
from courtside.routes.common import mutation_guard
from courtside.services import slot_generator
from courtside.services.bracket_service import generate_bracket
from courtside.services.match_scheduler import assign, reschedule
from courtside.services.slot_generator import generate_slots


class DenyAllAuthorizer:
    def can_mutate(self, actor_id, tournament_id):
        return False


def _bracket(client: TestClient, tournament_id: int):
    response = client.post(f"/api/tournaments/{tournament_id}/bracket")
    assert response.status_code == 201, response.text
    return response.json()


def _matches(client: TestClient, tournament_id: int):
    response = client.get(f"/api/tournaments/{tournament_id}/matches")
    assert response.status_code == 200
    return response.json()


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_generate_and_read_bracket(client: TestClient, make_tournament):
    tournament = make_tournament(5)
    data = _bracket(client, tournament.id)
    assert data["total_rounds"] == 3
    assert [len(r["matches"]) for r in data["rounds"]] == [3, 2, 1]

    response = client.get(f"/api/tournaments/{tournament.id}/bracket")
    assert response.status_code == 200
    assert response.json()["id"] == data["id"]
    assert len(_matches(client, tournament.id)) == 4


def test_unknown_tournament_is_404(client: TestClient):
    assert client.post("/api/tournaments/999/bracket").status_code == 404
    assert client.get("/api/tournaments/999/matches").status_code == 404


def test_bad_seed_list_is_422(client: TestClient, make_tournament):
    tournament = make_tournament(1)
    response = client.post(f"/api/tournaments/{tournament.id}/bracket")
    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "ValidationError"


def test_scoring_flow_over_http(client: TestClient, make_tournament):
    tournament = make_tournament(2)
    _bracket(client, tournament.id)
    final = _matches(client, tournament.id)[0]
    base = f"/api/tournaments/{tournament.id}/matches/{final['id']}"

    assert client.post(f"{base}/points", json={"side": "team1"}).status_code == 422

    response = client.post(f"{base}/start")
    assert response.status_code == 200
    assert response.json()["status"] == "in-progress"

    for _ in range(3):
        response = client.post(f"{base}/points", json={"side": "team1"})
    assert response.json()["point_labels"] == {"team1": "40", "team2": "0"}

    assert client.post(f"{base}/points", json={"side": "nobody"}).status_code == 422

    for _ in range(45):
        response = client.post(f"{base}/points", json={"side": "team1"})
    body = response.json()
    assert body["status"] == "completed"
    assert body["winner_team_id"] == final["team1_id"]

    bracket = client.get(f"/api/tournaments/{tournament.id}/bracket").json()
    assert bracket["status"] == "completed"
    assert bracket["winner_team_id"] == final["team1_id"]


def test_final_score_endpoint(client: TestClient, make_tournament):
    regular = make_tournament(2)
    _bracket(client, regular.id)
    match = _matches(client, regular.id)[0]
    response = client.put(
        f"/api/tournaments/{regular.id}/matches/{match['id']}/final-score",
        json={"team1_score": 10, "team2_score": 5},
    )
    assert response.status_code == 422

    quick = make_tournament(2, name="Quick Open", game_format="tiebreak-8")
    _bracket(client, quick.id)
    match = _matches(client, quick.id)[0]
    response = client.put(
        f"/api/tournaments/{quick.id}/matches/{match['id']}/final-score",
        json={"team1_score": 8, "team2_score": 6},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_advance_incomplete_match_is_409(client: TestClient, make_tournament):
    tournament = make_tournament(4)
    _bracket(client, tournament.id)
    semi = _matches(client, tournament.id)[0]
    response = client.post(f"/api/tournaments/{tournament.id}/matches/{semi['id']}/advance")
    assert response.status_code == 409
    assert response.json()["detail"]["invariant"] == "advance-requires-completed"


def test_schedule_generate_and_view(client: TestClient, make_tournament):
    tournament = make_tournament(4, timezone="America/New_York")
    _bracket(client, tournament.id)

    response = client.post(f"/api/tournaments/{tournament.id}/schedule/generate")
    assert response.status_code == 200, response.text
    schedule = response.json()
    assert schedule["total_slots"] == 8
    assert schedule["scheduled_matches"] == 2

    view = client.get(f"/api/tournaments/{tournament.id}/schedule").json()
    assert len(view["slots"]) == 8
    assert view["slots"][0]["start_local"] == "2030-06-01 18:00"

    check = client.get(f"/api/tournaments/{tournament.id}/schedule/check").json()
    assert check == {"ok": True, "problems": []}


def test_schedule_generate_with_overrides(client: TestClient, make_tournament):
    tournament = make_tournament(2)
    response = client.post(
        f"/api/tournaments/{tournament.id}/schedule/generate",
        json={"courts": ["Stadium"], "slot_duration": 90, "break_minutes": 30},
    )
    assert response.status_code == 200
    assert response.json()["total_slots"] == 2
    assert response.json()["courts"] == ["Stadium"]

    response = client.post(
        f"/api/tournaments/{tournament.id}/schedule/generate",
        json={"daily_start_time": "22:00", "daily_end_time": "18:00"},
    )
    assert response.status_code == 422


def test_reschedule_conflict_is_409(client: TestClient, make_tournament):
    tournament = make_tournament(4)
    _bracket(client, tournament.id)
    client.post(f"/api/tournaments/{tournament.id}/schedule/generate")
    first, second = _matches(client, tournament.id)[:2]

    response = client.put(
        f"/api/tournaments/{tournament.id}/matches/{first['id']}/reschedule",
        json={"slot_id": second["time_slot_id"]},
    )
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "SlotConflictError"

    slots = client.get(f"/api/tournaments/{tournament.id}/schedule").json()["slots"]
    free = [s for s in slots if s["status"] == "available"][0]
    response = client.put(
        f"/api/tournaments/{tournament.id}/matches/{first['id']}/reschedule",
        json={"slot_id": free["id"]},
    )
    assert response.status_code == 200
    assert response.json()["time_slot_id"] == free["id"]


def test_swap_and_unschedule(client: TestClient, make_tournament):
    tournament = make_tournament(4)
    _bracket(client, tournament.id)
    client.post(f"/api/tournaments/{tournament.id}/schedule/generate")
    first, second = _matches(client, tournament.id)[:2]

    response = client.post(
        f"/api/tournaments/{tournament.id}/schedule/swap",
        json={"match_a_id": first["id"], "match_b_id": second["id"]},
    )
    assert response.status_code == 200
    swapped = response.json()
    assert swapped[0]["time_slot_id"] == second["time_slot_id"]
    assert swapped[1]["time_slot_id"] == first["time_slot_id"]

    response = client.delete(f"/api/tournaments/{tournament.id}/matches/{first['id']}/slot")
    assert response.status_code == 200
    assert response.json()["time_slot_id"] is None
    assert client.get(f"/api/tournaments/{tournament.id}/schedule/check").json()["ok"] is True


def test_generation_failure_is_503(client: TestClient, make_tournament, monkeypatch):
    tournament = make_tournament(2)

    def broken_replace(*args, **kwargs):
        raise OperationalError("INSERT INTO timeslot", {}, Exception("disk I/O error"))

    monkeypatch.setattr(slot_generator, "_replace_slots", broken_replace)
    response = client.post(f"/api/tournaments/{tournament.id}/schedule/generate")
    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "GenerationFailure"


def test_unauthorized_actor_is_403(client: TestClient, session: Session, make_tournament):
    tournament = make_tournament(2)
    _bracket(client, tournament.id)
    match = session.exec(select(Match).where(Match.tournament_id == tournament.id)).one()

    app.dependency_overrides[get_authorizer] = lambda: DenyAllAuthorizer()
    response = client.post(
        f"/api/tournaments/{tournament.id}/matches/{match.id}/start",
        headers={"X-Actor-Id": "spectator"},
    )
    assert response.status_code == 403
    assert "spectator" in response.json()["detail"]

    # Reads stay open
    assert client.get(f"/api/tournaments/{tournament.id}/matches").status_code == 200


def test_mutation_guard_reloads_rows_read_before_lock(session: Session, make_tournament):
    tournament = make_tournament(4)
    generate_bracket(session, tournament.id)
    generate_slots(session, tournament.id)
    assign(session, tournament.id)
    first = session.exec(select(Match).where(Match.tournament_id == tournament.id).order_by(Match.id)).first()
    free_id = session.exec(
        select(TimeSlot.id).where(TimeSlot.tournament_id == tournament.id, TimeSlot.match_id.is_(None))
    ).first()

    with Session(session.get_bind()) as request_session:
        slot = request_session.get(TimeSlot, free_id)
        assert slot.match_id is None
        reschedule(session, first.id, free_id)

        with mutation_guard(request_session, tournament.id, AllowAllAuthorizer(), None):
            assert slot.match_id == first.id
