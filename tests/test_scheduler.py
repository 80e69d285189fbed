"""
Tests for the background jobs, run directly without starting APScheduler.
"""

from datetime import timedelta

import pytest

from prode.models import AuditLog, LeaderboardCache, Match
from prode.services.scheduler_service import SchedulerService
from prode.utils.timezone_utils import get_utc_time, to_naive_utc


@pytest.fixture
def service(app):
    service = SchedulerService()
    service.app = app
    return service


class TestJobs:
    def test_lock_job(self, db, service, make_match):
        due = make_match(kickoff=to_naive_utc(get_utc_time()) + timedelta(minutes=1))

        assert service.force_run("lock") == 1
        # The job ran in its own app context and session
        db.session.expire_all()
        assert db.session.get(Match, due.id).is_locked is True
        assert AuditLog.query.filter_by(action=AuditLog.LOCK_MATCHES).count() == 1
        assert service.run_stats["matches_locked"] == 1

    def test_score_pending_job(self, db, service, finished_match, make_user, make_prediction):
        make_prediction(make_user(), finished_match, 2, 1)

        assert service.force_run("score") == 1
        # Already scored, nothing left to do
        assert service.force_run("score") == 0
        assert LeaderboardCache.query.one().total_points == 12

    def test_score_pending_job_with_bad_rules(self, app, service, finished_match):
        app.config["SCORING_WINNER_ONLY"] = 20

        assert service.force_run("score") == 0
        assert service.run_stats["failed_runs"] == 1
        assert "decrease" in service.run_stats["last_error"]

    def test_leaderboard_job(self, service, make_user):
        make_user()
        make_user()

        assert service.force_run("leaderboard") == 2
        assert service.run_stats["successful_runs"] == 1

    def test_unknown_job(self, service):
        with pytest.raises(ValueError):
            service.force_run("sync")

    def test_status_without_scheduler(self, service):
        status = service.get_status()

        assert status["is_running"] is False
        assert status["jobs"] == []
