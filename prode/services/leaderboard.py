"""
Leaderboard aggregate refresher

Rebuilds LeaderboardCache rows from scored predictions and assigns the global
ranking. Rows are only ever written from here.
"""

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context

from prode.errors import UserNotFoundError
from prode.models import LeaderboardCache, Match, Prediction, User
from prode.utils.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_TIEBREAKERS = ("exact_scores",)
VALID_TIEBREAKERS = ("exact_scores", "correct_predictions", "accuracy_rate")


def compute_aggregates(rows):
    """
    Aggregate a user's predictions on finished matches.

    Args:
        rows: iterable of (points_earned, is_exact) pairs

    Returns:
        dict with total_points, total_predictions, correct_predictions,
        exact_scores and accuracy_rate (0..1)
    """
    total_points = 0
    total_predictions = 0
    correct_predictions = 0
    exact_scores = 0

    for points_earned, is_exact in rows:
        total_predictions += 1
        if points_earned is None:
            continue
        total_points += points_earned
        if points_earned > 0:
            correct_predictions += 1
        if is_exact:
            exact_scores += 1

    accuracy_rate = (
        round(correct_predictions / total_predictions, 4) if total_predictions else 0.0
    )

    return {
        "total_points": total_points,
        "total_predictions": total_predictions,
        "correct_predictions": correct_predictions,
        "exact_scores": exact_scores,
        "accuracy_rate": accuracy_rate,
    }


class LeaderboardRefresher:
    """Recomputes LeaderboardCache rows inside the caller's transaction"""

    def __init__(self, session, tiebreakers=None):
        self.session = session

        if tiebreakers is None:
            if has_app_context():
                tiebreakers = current_app.config.get(
                    "LEADERBOARD_TIEBREAKERS", DEFAULT_TIEBREAKERS
                )
            else:
                tiebreakers = DEFAULT_TIEBREAKERS

        unknown = [t for t in tiebreakers if t not in VALID_TIEBREAKERS]
        if unknown:
            raise ValueError(
                f"Unknown leaderboard tiebreakers {unknown}, expected {VALID_TIEBREAKERS}"
            )
        self.tiebreakers = tuple(tiebreakers)

    def _prediction_rows(self, user_id):
        return (
            self.session.query(Prediction.points_earned, Prediction.is_exact)
            .join(Match, Prediction.match_id == Match.id)
            .filter(Prediction.user_id == user_id, Match.status == Match.FINISHED)
            .all()
        )

    def _entry_for(self, user):
        entry = (
            self.session.query(LeaderboardCache).filter_by(user_id=user.id).first()
        )
        if entry is None:
            entry = LeaderboardCache(user_id=user.id, ranking_change=0)
            self.session.add(entry)
        return entry

    def _drop_entry(self, user_id):
        entry = self.session.query(LeaderboardCache).filter_by(user_id=user_id).first()
        if entry is not None:
            self.session.delete(entry)

    def refresh_users(self, user_ids):
        """Recompute aggregates for the given users, then re-rank everybody

        Deactivated users are left out and lose any row they still have.

        Returns:
            The refreshed LeaderboardCache rows of active users, in the order
            of user_ids
        """
        entries = []
        for user_id in user_ids:
            user = self.session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            if not user.is_active:
                self._drop_entry(user_id)
                continue

            entry = self._entry_for(user)
            for field, value in compute_aggregates(
                self._prediction_rows(user_id)
            ).items():
                setattr(entry, field, value)
            entry.updated_at = datetime.now(timezone.utc)
            entries.append(entry)

        self.session.flush()
        self.rerank()

        logger.debug(f"Refreshed leaderboard for {len(entries)} users")
        return entries

    def refresh_for_user(self, user_id):
        """Recompute one user's row; returns it, or None for a deactivated user"""
        entries = self.refresh_users([user_id])
        return entries[0] if entries else None

    def refresh_all(self):
        """Rebuild the leaderboard for every active user

        Returns:
            Number of rows refreshed
        """
        active_ids = [
            user_id
            for (user_id,) in self.session.query(User.id)
            .filter(User.is_active.is_(True))
            .order_by(User.id)
            .all()
        ]

        # Deactivated accounts drop out of the standings
        stale = (
            self.session.query(LeaderboardCache)
            .filter(LeaderboardCache.user_id.notin_(active_ids))
            .all()
            if active_ids
            else self.session.query(LeaderboardCache).all()
        )
        for entry in stale:
            self.session.delete(entry)

        if active_ids:
            self.refresh_users(active_ids)
        else:
            self.session.flush()

        logger.info(f"Leaderboard rebuilt for {len(active_ids)} users")
        return len(active_ids)

    def _rank_key(self, entry):
        """Values that must all be equal for two users to share a rank"""
        return (entry.total_points,) + tuple(
            getattr(entry, field) for field in self.tiebreakers
        )

    def _sort_key(self, entry):
        rank_key = self._rank_key(entry)
        created_at = ensure_utc(entry.user.created_at) if entry.user else None
        return (
            tuple(-value for value in rank_key),
            created_at or datetime.max.replace(tzinfo=timezone.utc),
            entry.user_id,
        )

    def rerank(self):
        """Assign competition rankings ("1, 2, 2, 4") to every cached row"""
        entries = self.session.query(LeaderboardCache).all()
        entries.sort(key=self._sort_key)

        previous_key = None
        rank = 0
        moved = 0
        for position, entry in enumerate(entries, start=1):
            key = self._rank_key(entry)
            if key != previous_key:
                rank = position
                previous_key = key

            if entry.ranking != rank:
                entry.previous_ranking = entry.ranking
                entry.ranking = rank
                entry.ranking_change = (
                    entry.previous_ranking - rank
                    if entry.previous_ranking is not None
                    else 0
                )
                moved += 1

        self.session.flush()
        if moved:
            logger.info(f"Leaderboard re-ranked, {moved} positions changed")
        return entries


def get_leaderboard_page(session, page=1, limit=50):
    """Return (rows, total) for one page of the standings ordered by ranking"""
    query = session.query(LeaderboardCache).join(
        User, LeaderboardCache.user_id == User.id
    )
    total = query.count()
    rows = (
        query.order_by(
            LeaderboardCache.ranking.asc(),
            User.created_at.asc(),
            LeaderboardCache.user_id.asc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
