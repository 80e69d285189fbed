"""
Prode background scheduler

Runs the periodic jobs with APScheduler:
    - lock matches whose prediction window has closed
    - score finished matches that have no points yet (e.g. after a failed run)
    - nightly full leaderboard rebuild
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from prode import db
from prode.errors import ProdeError
from prode.models import AuditLog, Match
from prode.services.leaderboard import LeaderboardRefresher
from prode.services.match_points import MatchPointsCalculator
from prode.utils.cache_utils import invalidate_leaderboard_cache

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages the background jobs of the prode"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.run_stats = {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "matches_locked": 0,
            "matches_scored": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        interval = self.app.config.get("LOCK_MATCHES_INTERVAL_MINUTES", 5)
        rebuild_hour = self.app.config.get("LEADERBOARD_REBUILD_HOUR", 4)

        self.scheduler.add_job(
            func=self._lock_due_matches,
            trigger=IntervalTrigger(minutes=interval),
            id="lock_matches",
            name="Lock Matches Past Their Lock Time",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        self.scheduler.add_job(
            func=self._score_pending_matches,
            trigger=IntervalTrigger(minutes=interval),
            id="score_pending_matches",
            name="Score Finished Matches Without Points",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        self.scheduler.add_job(
            func=self._rebuild_leaderboard,
            trigger=CronTrigger(hour=rebuild_hour, minute=0),
            id="rebuild_leaderboard",
            name="Nightly Leaderboard Rebuild",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _lock_due_matches(self):
        """Lock scheduled matches whose lock time has passed"""
        with self.app.app_context():
            try:
                locked = Match.lock_due_matches()
                if locked:
                    AuditLog.log_action(
                        action=AuditLog.LOCK_MATCHES,
                        entity_type="Match",
                        new_values={"matchIds": [m.id for m in locked]},
                    )
                db.session.commit()

                if locked:
                    logger.info(f"Locked {len(locked)} matches")
                self._update_stats(True, matches_locked=len(locked))
                return len(locked)

            except SQLAlchemyError as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error locking matches: {e}", exc_info=True)
                return 0

    def _score_pending_matches(self):
        """Score finished matches that were never scored"""
        with self.app.app_context():
            pending_ids = [
                match_id
                for (match_id,) in db.session.query(Match.id)
                .filter(
                    Match.status == Match.FINISHED,
                    Match.home_score.isnot(None),
                    Match.away_score.isnot(None),
                    Match.points_calculated_at.is_(None),
                )
                .order_by(Match.match_date, Match.id)
                .all()
            ]
            if not pending_ids:
                return 0

            try:
                calculator = MatchPointsCalculator(db.session)
            except ValueError as e:
                self._update_stats(False, error=e)
                logger.error(f"Scoring rules are misconfigured: {e}")
                return 0

            scored = 0
            for match_id in pending_ids:
                try:
                    calculator.calculate_points(match_id)
                    scored += 1
                except (ProdeError, ValueError) as e:
                    self._update_stats(False, error=e)
                    logger.error(f"Scoring pending match {match_id} failed: {e}")

            if scored:
                logger.info(f"Scored {scored} pending matches")
                self._update_stats(True, matches_scored=scored)
            return scored

    def _rebuild_leaderboard(self):
        """Nightly rebuild of every leaderboard row"""
        with self.app.app_context():
            try:
                count = LeaderboardRefresher(db.session).refresh_all()
                db.session.commit()
                invalidate_leaderboard_cache()

                logger.info(f"Nightly leaderboard rebuild completed for {count} users")
                self._update_stats(True)
                return count

            except (SQLAlchemyError, ProdeError) as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error rebuilding leaderboard: {e}", exc_info=True)
                return 0

    def _update_stats(self, success, matches_locked=0, matches_scored=0, error=None):
        self.run_stats["last_run"] = datetime.now(timezone.utc)
        self.run_stats["total_runs"] += 1

        if success:
            self.run_stats["successful_runs"] += 1
            self.run_stats["matches_locked"] += matches_locked
            self.run_stats["matches_scored"] += matches_scored
            self.run_stats["last_error"] = None
        else:
            self.run_stats["failed_runs"] += 1
            self.run_stats["last_error"] = str(error) if error else None

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {"is_running": self.is_running, "jobs": jobs, "stats": self.run_stats}

    def force_run(self, job_type):
        """Manually trigger a job"""
        jobs = {
            "lock": self._lock_due_matches,
            "score": self._score_pending_matches,
            "leaderboard": self._rebuild_leaderboard,
        }
        if job_type not in jobs:
            raise ValueError(f"Unknown job type: {job_type}")

        return jobs[job_type]()


# Global scheduler instance
scheduler_service = SchedulerService()
