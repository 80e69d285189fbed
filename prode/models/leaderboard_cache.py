from datetime import datetime, timezone

from prode import db


class LeaderboardCache(db.Model):
    """Denormalized per-user standings, rebuilt by LeaderboardRefresher"""

    __tablename__ = "leaderboard_cache"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False
    )

    total_points = db.Column(db.Integer, default=0, nullable=False)
    total_predictions = db.Column(db.Integer, default=0, nullable=False)
    correct_predictions = db.Column(db.Integer, default=0, nullable=False)
    exact_scores = db.Column(db.Integer, default=0, nullable=False)
    accuracy_rate = db.Column(db.Float, default=0.0, nullable=False)

    ranking = db.Column(db.Integer)
    previous_ranking = db.Column(db.Integer)
    ranking_change = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("idx_leaderboard_ranking", "ranking"),
        db.Index("idx_leaderboard_points", "total_points"),
        db.CheckConstraint(
            "accuracy_rate >= 0 AND accuracy_rate <= 1", name="accuracy_rate_range"
        ),
    )

    def __repr__(self):
        return f"<LeaderboardCache user_id={self.user_id} #{self.ranking} {self.total_points}pts>"

    def aggregates(self):
        """Values derived from the user's predictions (ranking excluded)"""
        return {
            "totalPoints": self.total_points,
            "totalPredictions": self.total_predictions,
            "correctPredictions": self.correct_predictions,
            "exactScores": self.exact_scores,
            "accuracyRate": self.accuracy_rate,
        }

    def to_dict(self):
        data = {
            "userId": self.user_id,
            "user": self.user.to_dict() if self.user else None,
            "ranking": self.ranking,
            "previousRanking": self.previous_ranking,
            "rankingChange": self.ranking_change,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        data.update(self.aggregates())
        return data
