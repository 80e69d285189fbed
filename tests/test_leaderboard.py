"""
Tests for the leaderboard aggregate refresher.
"""

import pytest

from prode.errors import UserNotFoundError
from prode.models import LeaderboardCache, Match
from prode.services.leaderboard import (
    LeaderboardRefresher,
    compute_aggregates,
    get_leaderboard_page,
)
from prode.services.match_points import MatchPointsCalculator


def board(db):
    return {row.user_id: row for row in db.session.query(LeaderboardCache).all()}


class TestComputeAggregates:
    def test_no_predictions(self):
        assert compute_aggregates([]) == {
            "total_points": 0,
            "total_predictions": 0,
            "correct_predictions": 0,
            "exact_scores": 0,
            "accuracy_rate": 0.0,
        }

    def test_counts(self):
        aggregates = compute_aggregates([(12, True), (5, False), (0, False), (None, False)])

        assert aggregates["total_points"] == 17
        # Unscored predictions still count toward the total
        assert aggregates["total_predictions"] == 4
        assert aggregates["correct_predictions"] == 2
        assert aggregates["exact_scores"] == 1
        assert aggregates["accuracy_rate"] == 0.5

    def test_accuracy_rounded(self):
        aggregates = compute_aggregates([(7, False), (0, False), (0, False)])
        assert aggregates["accuracy_rate"] == 0.3333


class TestRefreshForUser:
    def test_user_without_predictions(self, db, make_user):
        user = make_user()

        row = LeaderboardRefresher(db.session).refresh_for_user(user.id)

        assert row.total_points == 0
        assert row.accuracy_rate == 0.0
        assert row.ranking == 1

    def test_unknown_user(self, db):
        with pytest.raises(UserNotFoundError):
            LeaderboardRefresher(db.session).refresh_for_user(404)

    def test_only_finished_matches_count(
        self, db, finished_match, make_match, make_user, make_prediction
    ):
        user = make_user()
        make_prediction(user, finished_match, 2, 1)
        make_prediction(user, make_match(), 1, 1)
        MatchPointsCalculator(db.session).calculate_points(finished_match.id)

        row = LeaderboardRefresher(db.session).refresh_for_user(user.id)

        assert row.total_predictions == 1
        assert row.correct_predictions == 1
        assert row.exact_scores == 1
        assert row.accuracy_rate == 1.0

    def test_invalid_tiebreaker(self, db):
        with pytest.raises(ValueError):
            LeaderboardRefresher(db.session, tiebreakers=["goal_difference"])


class TestRanking:
    def test_competition_ranking(self, db, finished_match, make_user, make_prediction):
        first, second, third = make_user(), make_user(), make_user()
        make_prediction(first, finished_match, 2, 1)
        make_prediction(second, finished_match, 2, 1)
        make_prediction(third, finished_match, 3, 1)

        MatchPointsCalculator(db.session).calculate_points(finished_match.id)

        rows = board(db)
        assert [rows[u.id].ranking for u in (first, second, third)] == [1, 1, 3]

    @pytest.fixture
    def level_on_points(self, db, make_match, make_user, make_prediction):
        """Two players on 12 points, only one of them with an exact score"""
        match_a = make_match(status=Match.FINISHED, home_score=2, away_score=1)
        match_b = make_match(status=Match.FINISHED, home_score=1, away_score=0)
        sharp = make_user()
        steady = make_user()

        make_prediction(sharp, match_a, 2, 1)  # 12
        make_prediction(sharp, match_b, 0, 2)  # 0
        make_prediction(steady, match_a, 3, 1)  # 7
        make_prediction(steady, match_b, 2, 1)  # 5

        calculator = MatchPointsCalculator(db.session)
        calculator.calculate_points(match_a.id)
        calculator.calculate_points(match_b.id)
        return sharp, steady

    def test_exact_scores_break_ties(self, db, level_on_points):
        sharp, steady = level_on_points
        rows = board(db)

        assert rows[sharp.id].total_points == rows[steady.id].total_points == 12
        assert rows[sharp.id].ranking == 1
        assert rows[steady.id].ranking == 2

    def test_without_tiebreakers_players_share_rank(self, db, level_on_points):
        sharp, steady = level_on_points

        LeaderboardRefresher(db.session, tiebreakers=[]).rerank()

        rows = board(db)
        assert rows[sharp.id].ranking == rows[steady.id].ranking == 1

    def test_previous_ranking_tracks_moves(
        self, db, make_match, make_user, make_prediction
    ):
        leader, chaser = make_user(), make_user()
        calculator = MatchPointsCalculator(db.session)

        opener = make_match(status=Match.FINISHED, home_score=1, away_score=0)
        make_prediction(leader, opener, 1, 0)
        make_prediction(chaser, opener, 0, 3)
        calculator.calculate_points(opener.id)

        rows = board(db)
        assert rows[leader.id].ranking == 1
        assert rows[chaser.id].ranking == 2
        assert rows[chaser.id].previous_ranking is None
        assert rows[chaser.id].ranking_change == 0

        for _ in range(2):
            match = make_match(status=Match.FINISHED, home_score=0, away_score=0)
            make_prediction(leader, match, 2, 1)
            make_prediction(chaser, match, 0, 0)
            calculator.calculate_points(match.id)

        rows = board(db)
        assert rows[chaser.id].ranking == 1
        assert rows[chaser.id].previous_ranking == 2
        assert rows[chaser.id].ranking_change == 1
        assert rows[leader.id].ranking == 2
        assert rows[leader.id].ranking_change == -1

        # A rerun without changes keeps the trend
        calculator.calculate_points(opener.id)
        rows = board(db)
        assert rows[chaser.id].previous_ranking == 2
        assert rows[chaser.id].ranking_change == 1


class TestRefreshAll:
    def test_rebuilds_active_users(self, db, finished_match, make_user, make_prediction):
        active = make_user()
        gone = make_user()
        make_prediction(active, finished_match, 2, 1)
        make_prediction(gone, finished_match, 2, 1)
        MatchPointsCalculator(db.session).calculate_points(finished_match.id)

        gone.is_active = False
        db.session.commit()

        count = LeaderboardRefresher(db.session).refresh_all()
        db.session.commit()

        assert count == 1
        rows = board(db)
        assert set(rows) == {active.id}
        assert rows[active.id].total_points == 12

    def test_scoring_after_deactivation_keeps_user_out(
        self, db, finished_match, make_match, make_user, make_prediction
    ):
        active = make_user()
        gone = make_user()
        make_prediction(active, finished_match, 0, 0)
        second = make_match(status=Match.FINISHED, home_score=3, away_score=0)
        make_prediction(gone, second, 3, 0)

        gone.is_active = False
        db.session.commit()
        LeaderboardRefresher(db.session).refresh_all()
        db.session.commit()

        MatchPointsCalculator(db.session).calculate_points(second.id)

        rows = board(db)
        assert set(rows) == {active.id}
        assert rows[active.id].ranking == 1

    def test_refresh_for_deactivated_user(self, db, make_user):
        user = make_user()
        refresher = LeaderboardRefresher(db.session)
        refresher.refresh_for_user(user.id)

        user.is_active = False
        db.session.commit()

        assert refresher.refresh_for_user(user.id) is None
        assert board(db) == {}

    def test_includes_users_without_predictions(self, db, make_user):
        make_user()
        make_user()

        assert LeaderboardRefresher(db.session).refresh_all() == 2
        assert len(board(db)) == 2


class TestLeaderboardPage:
    def test_pagination(self, db, make_user):
        users = [make_user() for _ in range(5)]
        LeaderboardRefresher(db.session).refresh_all()
        db.session.commit()

        rows, total = get_leaderboard_page(db.session, page=2, limit=2)

        assert total == 5
        # Everyone is tied on zero, creation time orders the page
        assert [row.user_id for row in rows] == [users[2].id, users[3].id]
