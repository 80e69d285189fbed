from datetime import datetime, timezone

from prode import db
from prode.errors import MalformedPredictionError, MatchLockedError
from prode.utils.scoring import validate_scores


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    match_id = db.Column(db.Integer, db.ForeignKey("matches.id"), nullable=False)

    # Nullable so rows imported without a score can be detected and skipped
    predicted_home_score = db.Column(db.Integer)
    predicted_away_score = db.Column(db.Integer)

    # Results (written by the points calculation)
    points_earned = db.Column(db.Integer)
    points_breakdown = db.Column(db.JSON)
    is_exact = db.Column(db.Boolean, default=False, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "match_id", name="unique_user_match_prediction"),
        db.Index("idx_prediction_match", "match_id"),
        db.Index("idx_prediction_user", "user_id"),
    )

    def __repr__(self):
        return (
            f"<Prediction user_id={self.user_id} match_id={self.match_id} "
            f"{self.predicted_home_score}-{self.predicted_away_score}>"
        )

    @property
    def is_scored(self):
        return self.points_earned is not None

    def check_scoreable(self):
        """Raise MalformedPredictionError unless both predicted scores are valid"""
        if self.predicted_home_score is None or self.predicted_away_score is None:
            raise MalformedPredictionError(self.id, "missing predicted score")
        if not validate_scores(self.predicted_home_score, self.predicted_away_score):
            raise MalformedPredictionError(
                self.id,
                f"invalid predicted score "
                f"{self.predicted_home_score}-{self.predicted_away_score}",
            )

    def apply_points(self, points):
        """Store a PointsBreakdown, replacing whatever a previous run wrote"""
        self.points_earned = points.total
        self.points_breakdown = points.to_dict()
        self.is_exact = points.is_exact

    def clear_points(self):
        self.points_earned = None
        self.points_breakdown = None
        self.is_exact = False

    @staticmethod
    def submit(user_id, match, home_score, away_score, now=None):
        """Create or update a user's prediction while the match is open

        Returns:
            (prediction, created) tuple; the prediction is added to the session
        """
        if not match.accepts_predictions(now):
            raise MatchLockedError(match.id)
        if not validate_scores(home_score, away_score):
            raise ValueError(f"Invalid predicted score: {home_score}-{away_score}")

        prediction = Prediction.query.filter_by(
            user_id=user_id, match_id=match.id
        ).first()
        created = prediction is None

        if created:
            prediction = Prediction(user_id=user_id, match_id=match.id)
            db.session.add(prediction)

        prediction.predicted_home_score = home_score
        prediction.predicted_away_score = away_score
        return prediction, created

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "userId": self.user_id,
            "matchId": self.match_id,
            "predictedHomeScore": self.predicted_home_score,
            "predictedAwayScore": self.predicted_away_score,
            "pointsEarned": self.points_earned,
            "isScored": self.is_scored,
            "pointsBreakdown": self.points_breakdown,
            "isExact": self.is_exact,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
