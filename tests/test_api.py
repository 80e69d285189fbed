"""
Tests for the JSON API.
"""

from datetime import timedelta

import pytest

from prode.models import AuditLog, Match, Prediction
from prode.services.match_points import calculate_points_for_match
from prode.utils.timezone_utils import get_utc_time, to_naive_utc

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def admin(make_user, login):
    user = make_user(name="Admin", is_admin=True)
    login(user)
    return user


class TestMatchResult:
    def test_enter_result(self, client, admin, make_match, make_user, make_prediction):
        match = make_match()
        player = make_user()
        make_prediction(player, match, 2, 0)

        response = client.post(
            f"/api/admin/matches/{match.id}/result",
            json={"homeScore": 2, "awayScore": 0},
        )

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["match"]["status"] == Match.FINISHED
        assert data["match"]["homeScore"] == 2
        assert data["match"]["predictionsCount"] == 1
        assert data["pointsCalculation"]["updatedCount"] == 1
        assert data["pointsCalculation"]["skippedCount"] == 0
        assert Prediction.query.filter_by(user_id=player.id).one().points_earned == 12

    def test_requires_login(self, client, make_match):
        match = make_match()

        response = client.post(
            f"/api/admin/matches/{match.id}/result", json={"homeScore": 1, "awayScore": 0}
        )

        assert response.status_code == 401

    def test_requires_admin(self, db, client, make_match, make_user, login):
        match = make_match()
        login(make_user())

        response = client.post(
            f"/api/admin/matches/{match.id}/result", json={"homeScore": 1, "awayScore": 0}
        )

        assert response.status_code == 403
        assert db.session.get(Match, match.id).status == Match.SCHEDULED

    @pytest.mark.parametrize(
        "body",
        [
            {"homeScore": -1, "awayScore": 0},
            {"homeScore": 2.5, "awayScore": 0},
            {"homeScore": "two", "awayScore": 0},
            {"homeScore": 1},
            {"homeScore": None, "awayScore": 1},
        ],
    )
    def test_invalid_score(self, db, client, admin, make_match, body):
        match = make_match()

        response = client.post(f"/api/admin/matches/{match.id}/result", json=body)

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid input data"
        assert db.session.get(Match, match.id).status == Match.SCHEDULED

    def test_not_json(self, client, admin, make_match):
        match = make_match()

        response = client.post(f"/api/admin/matches/{match.id}/result", data="2-1")

        assert response.status_code == 400

    def test_unknown_match(self, client, admin, phases):
        response = client.post(
            "/api/admin/matches/999/result", json={"homeScore": 1, "awayScore": 0}
        )

        assert response.status_code == 404
        assert response.get_json()["code"] == "match_not_found"


class TestCalculatePoints:
    def test_recalculate(self, client, admin, finished_match, make_user, make_prediction):
        make_prediction(make_user(), finished_match, 2, 1)
        make_prediction(make_user(), finished_match, None, 1)

        response = client.post(f"/api/admin/matches/{finished_match.id}/calculate-points")

        assert response.status_code == 200
        body = response.get_json()
        assert body["message"] == "Points calculated successfully"
        assert body["data"]["updatedCount"] == 1
        assert body["data"]["skippedCount"] == 1

    def test_match_not_finished(self, client, admin, make_match):
        match = make_match()

        response = client.post(f"/api/admin/matches/{match.id}/calculate-points")

        assert response.status_code == 409
        assert response.get_json()["code"] == "invalid_match_state"

    def test_recalculate_all(self, client, admin, finished_match):
        response = client.post("/api/admin/recalculate-all")

        assert response.status_code == 200
        assert response.get_json()["data"] == {"processed": 1, "errors": 0}


class TestLeaderboard:
    def test_cache_invalidated_after_scoring(
        self, client, admin, finished_match, make_user, make_prediction
    ):
        player = make_user()
        make_prediction(player, finished_match, 2, 1)

        before = client.get("/api/leaderboard").get_json()
        assert before["data"] == []
        assert before["pagination"]["total"] == 0

        client.post(f"/api/admin/matches/{finished_match.id}/calculate-points")

        after = client.get("/api/leaderboard").get_json()
        assert after["pagination"]["total"] == 1
        assert after["data"][0]["userId"] == player.id
        assert after["data"][0]["totalPoints"] == 12
        assert after["data"][0]["ranking"] == 1

    def test_limit_is_capped(self, client):
        response = client.get("/api/leaderboard?limit=5000&page=0")

        pagination = response.get_json()["pagination"]
        assert pagination["limit"] == 100
        assert pagination["page"] == 1

    def test_personal_row_off_page(
        self, client, make_match, make_user, make_prediction, login
    ):
        match = make_match(status=Match.FINISHED, home_score=1, away_score=0)
        winner, loser = make_user(), make_user()
        make_prediction(winner, match, 1, 0)
        make_prediction(loser, match, 0, 1)
        login(loser)
        calculate_points_for_match(match.id)

        body = client.get("/api/leaderboard?limit=1").get_json()

        assert [row["userId"] for row in body["data"]] == [winner.id]
        assert body["personal"]["userId"] == loser.id
        assert body["personal"]["ranking"] == 2

    def test_my_entry(self, client, make_user, login):
        login(make_user())

        response = client.get("/api/leaderboard/me")

        assert response.status_code == 200
        assert response.get_json()["data"] is None


class TestPredictions:
    def test_create_then_update(self, client, make_match, make_user, login):
        match = make_match()
        user = make_user()
        login(user)

        created = client.post(
            "/api/predictions", json={"matchId": match.id, "homeScore": 1, "awayScore": 1}
        )
        updated = client.post(
            "/api/predictions", json={"matchId": match.id, "homeScore": 3, "awayScore": 1}
        )

        assert created.status_code == 201
        assert updated.status_code == 200
        prediction = Prediction.query.filter_by(user_id=user.id).one()
        assert (prediction.predicted_home_score, prediction.predicted_away_score) == (3, 1)

    def test_locked_match(self, client, make_match, make_user, login):
        match = make_match(kickoff=to_naive_utc(get_utc_time()) + timedelta(minutes=5))
        login(make_user())

        response = client.post(
            "/api/predictions", json={"matchId": match.id, "homeScore": 1, "awayScore": 0}
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "match_locked"

    def test_unknown_match(self, client, make_user, login, phases):
        login(make_user())

        response = client.post(
            "/api/predictions", json={"matchId": 123, "homeScore": 1, "awayScore": 0}
        )

        assert response.status_code == 404


class TestCronLockMatches:
    def test_locks_due_matches(self, db, client, make_match):
        due = make_match(kickoff=to_naive_utc(get_utc_time()) + timedelta(minutes=10))
        later = make_match(kickoff=to_naive_utc(get_utc_time()) + timedelta(days=1))

        response = client.post("/api/cron/lock-matches", headers=CRON_HEADERS)

        assert response.status_code == 200
        body = response.get_json()
        assert body["lockedCount"] == 1
        assert body["matchIds"] == [due.id]
        assert db.session.get(Match, due.id).is_locked is True
        assert db.session.get(Match, later.id).is_locked is False
        assert AuditLog.query.filter_by(action=AuditLog.LOCK_MATCHES).count() == 1

    def test_wrong_secret(self, client):
        response = client.post(
            "/api/cron/lock-matches", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401

    def test_missing_secret_config(self, app, client):
        app.config["CRON_SECRET"] = None

        response = client.post("/api/cron/lock-matches", headers=CRON_HEADERS)

        assert response.status_code == 500
