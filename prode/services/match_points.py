"""
Match points calculation

Scores every prediction of a finished match and refreshes the leaderboard in a
single transaction. Runs when:
    1. An admin enters a match result (finalize_result)
    2. A result is corrected and points need recomputing
    3. An admin asks for a manual recalculation

Re-running on the same match overwrites previous values, so it is always safe
to retry after a failure.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from prode import db
from prode.errors import (
    InvalidMatchStateError,
    MalformedPredictionError,
    MatchNotFoundError,
    PersistenceError,
    ProdeError,
)
from prode.models import AuditLog, Match, Prediction
from prode.services.leaderboard import LeaderboardRefresher
from prode.utils.cache_utils import invalidate_leaderboard_cache
from prode.utils.logging_config import ContextualLogger
from prode.utils.scoring import DEFAULT_RULES, ScoringRules, evaluate, validate_scores

logger = logging.getLogger(__name__)


class MatchPointsResult:
    """Summary of one points calculation run"""

    def __init__(self, match, updated_count, skipped_count, total_points, scorers):
        self.match_id = match.id
        self.updated_count = updated_count
        self.skipped_count = skipped_count
        self.total_points_awarded = total_points
        self.score = match.score_display
        self.phase = match.phase.slug if match.phase else None
        self.multiplier = float(match.phase.multiplier) if match.phase else 1.0
        self.top_scorers = sorted(scorers, key=lambda s: s["points"], reverse=True)[:5]

    def to_dict(self):
        return {
            "matchId": self.match_id,
            "updatedCount": self.updated_count,
            "skippedCount": self.skipped_count,
            "totalPointsAwarded": self.total_points_awarded,
            "score": self.score,
            "phase": self.phase,
            "multiplier": self.multiplier,
            "topScorers": self.top_scorers,
        }


class MatchPointsCalculator:
    """Scores predictions for finished matches

    Args:
        session: SQLAlchemy session to read and write through
        rules: ScoringRules (defaults to the app config, then the built-in rules)
        refresher: LeaderboardRefresher sharing the same session
    """

    def __init__(self, session, rules=None, refresher=None):
        self.session = session

        if rules is None:
            rules = (
                ScoringRules.from_config(current_app.config)
                if has_app_context()
                else DEFAULT_RULES
            )
        self.rules = rules
        self.refresher = refresher or LeaderboardRefresher(session)

    def _load_match_for_update(self, match_id):
        # Row lock serializes concurrent runs on the same match
        return (
            self.session.query(Match)
            .filter(Match.id == match_id)
            .with_for_update(of=Match)
            .populate_existing()
            .first()
        )

    def score_match(self, match_id):
        """Score a match inside the caller's transaction (no commit)

        Raises:
            MatchNotFoundError: no such match
            InvalidMatchStateError: match not finished or without a valid result
        """
        log = ContextualLogger(__name__, {"match_id": match_id})

        match = self._load_match_for_update(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)

        if not match.is_finished:
            raise InvalidMatchStateError(
                f"Match {match_id} is not finished (status {match.status})",
                match_id=match_id,
                status=match.status,
            )
        if not validate_scores(match.home_score, match.away_score):
            raise InvalidMatchStateError(
                f"Match {match_id} has no valid result "
                f"(homeScore: {match.home_score}, awayScore: {match.away_score})",
                match_id=match_id,
                status=match.status,
            )

        multiplier = match.phase.multiplier if match.phase else Decimal("1")
        phase_slug = match.phase.slug if match.phase else None
        predictions = match.predictions.order_by(Prediction.id).all()

        log.info(
            f"Calculating points for {len(predictions)} predictions "
            f"(result {match.score_display}, multiplier {multiplier})"
        )

        updated = 0
        skipped = 0
        total_points = 0
        scorers = []

        for prediction in predictions:
            try:
                prediction.check_scoreable()
            except MalformedPredictionError as e:
                log.warning(f"Skipping prediction: {e.message}")
                # Drop values a previous run may have stored
                prediction.clear_points()
                skipped += 1
                continue

            points = evaluate(
                prediction.predicted_home_score,
                prediction.predicted_away_score,
                match.home_score,
                match.away_score,
                multiplier=multiplier,
                rules=self.rules,
                phase=phase_slug,
            )
            prediction.apply_points(points)

            updated += 1
            total_points += points.total
            scorers.append(
                {
                    "userId": prediction.user_id,
                    "name": prediction.user.name if prediction.user else None,
                    "points": points.total,
                }
            )
            log.debug(
                f"User {prediction.user_id}: {points.total} points ({points.tier}, "
                f"predicted {prediction.predicted_home_score}-"
                f"{prediction.predicted_away_score})"
            )

        match.points_calculated_at = datetime.now(timezone.utc)
        self.session.flush()

        affected_users = sorted({p.user_id for p in predictions})
        if affected_users:
            self.refresher.refresh_users(affected_users)

        AuditLog.log_action(
            action=AuditLog.CALCULATE_MATCH_POINTS,
            entity_type="Match",
            entity_id=match.id,
            new_values={
                "predictionsProcessed": updated,
                "predictionsSkipped": skipped,
                "totalPointsAwarded": total_points,
            },
            session=self.session,
        )

        log.info(
            f"Points calculated: {updated} updated, {skipped} skipped, "
            f"{total_points} points awarded, {len(affected_users)} users refreshed"
        )
        return MatchPointsResult(match, updated, skipped, total_points, scorers)

    def _run_in_transaction(self, match_id, work):
        try:
            result = work()
            self.session.commit()
        except (ProdeError, ValueError):
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Database error scoring match {match_id}, rolled back: {e}",
                exc_info=True,
            )
            raise PersistenceError(
                f"Could not store points for match {match_id}, nothing was saved. "
                f"Retry the operation.",
                match_id=match_id,
            ) from e

        invalidate_leaderboard_cache()
        return result

    def calculate_points(self, match_id):
        """Score every prediction of a finished match and commit

        Returns:
            MatchPointsResult with updated_count and skipped_count
        """
        return self._run_in_transaction(match_id, lambda: self.score_match(match_id))

    def finalize_result(self, match_id, home_score, away_score, admin_user_id=None):
        """Record a final score and score the match in one transaction

        Returns:
            (match, MatchPointsResult)
        """

        def work():
            match = self._load_match_for_update(match_id)
            if match is None:
                raise MatchNotFoundError(match_id)

            old_values = {
                "homeScore": match.home_score,
                "awayScore": match.away_score,
                "status": match.status,
            }
            match.set_result(home_score, away_score)
            AuditLog.log_match_result(
                admin_user_id, match, old_values, session=self.session
            )
            self.session.flush()

            logger.info(
                f"Match {match_id} result set to {home_score}-{away_score} "
                f"(was {old_values['homeScore']}-{old_values['awayScore']}, "
                f"{old_values['status']})"
            )
            return match, self.score_match(match_id)

        return self._run_in_transaction(match_id, work)

    def recalculate_all(self):
        """Recalculate every finished match, one transaction per match

        Returns:
            dict with processed and errors counts
        """
        match_ids = [
            match_id
            for (match_id,) in self.session.query(Match.id)
            .filter(
                Match.status == Match.FINISHED,
                Match.home_score.isnot(None),
                Match.away_score.isnot(None),
            )
            .order_by(Match.match_date, Match.id)
            .all()
        ]

        logger.info(f"Recalculating points for {len(match_ids)} finished matches")

        processed = 0
        errors = 0
        for match_id in match_ids:
            try:
                self.calculate_points(match_id)
                processed += 1
            except (ProdeError, ValueError) as e:
                logger.error(f"Recalculation failed for match {match_id}: {e}")
                errors += 1

        logger.info(f"Recalculation done: {processed} processed, {errors} errors")
        return {"processed": processed, "errors": errors}


def calculate_points_for_match(match_id, session=None, rules=None):
    """Score a finished match with the application session"""
    calculator = MatchPointsCalculator(session or db.session, rules=rules)
    return calculator.calculate_points(match_id)


def recalculate_all_points(session=None, rules=None):
    """Rescore every finished match"""
    calculator = MatchPointsCalculator(session or db.session, rules=rules)
    return calculator.recalculate_all()


def finalize_match_result(match_id, home_score, away_score, admin_user_id=None, session=None):
    """Record a final score and score the match; returns (match, MatchPointsResult)"""
    calculator = MatchPointsCalculator(session or db.session)
    return calculator.finalize_result(
        match_id, home_score, away_score, admin_user_id=admin_user_id
    )
