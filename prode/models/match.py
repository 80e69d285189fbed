from datetime import datetime, timedelta, timezone

from prode import db
from prode.errors import InvalidMatchStateError
from prode.utils.scoring import get_match_result, validate_scores
from prode.utils.timezone_utils import convert_to_app_timezone, ensure_utc, get_utc_time


class Match(db.Model):
    __tablename__ = "matches"

    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    FINISHED = "FINISHED"
    POSTPONED = "POSTPONED"
    STATUSES = (SCHEDULED, LIVE, FINISHED, POSTPONED)

    DEFAULT_LOCK_MINUTES = 15

    id = db.Column(db.Integer, primary_key=True)

    # Teams and stage
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    phase_id = db.Column(db.Integer, db.ForeignKey("phases.id"), nullable=False)

    # Timing
    match_date = db.Column(db.DateTime, nullable=False)
    lock_time = db.Column(db.DateTime, nullable=False)
    is_locked = db.Column(db.Boolean, default=False, nullable=False)

    # Venue
    stadium = db.Column(db.String(100))
    city = db.Column(db.String(100))

    # Result
    status = db.Column(db.String(20), default=SCHEDULED, nullable=False)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Set by the points calculation, cleared when the result changes
    points_calculated_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    predictions = db.relationship(
        "Prediction", backref="match", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_match_date", "match_date"),
        db.Index("idx_match_status_lock", "status", "lock_time"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
        db.CheckConstraint(
            "home_score IS NULL OR home_score >= 0", name="home_score_non_negative"
        ),
        db.CheckConstraint(
            "away_score IS NULL OR away_score >= 0", name="away_score_non_negative"
        ),
    )

    def __repr__(self):
        home = self.home_team.code if self.home_team else "TBD"
        away = self.away_team.code if self.away_team else "TBD"
        return f"<Match {home} vs {away} {self.status}>"

    @staticmethod
    def default_lock_time(match_date, minutes=None):
        """Predictions close this many minutes before kickoff"""
        if minutes is None:
            minutes = Match.DEFAULT_LOCK_MINUTES
        return match_date - timedelta(minutes=minutes)

    @property
    def is_finished(self):
        return self.status == Match.FINISHED

    @property
    def has_valid_result(self):
        """Finished with both final scores set"""
        return self.is_finished and validate_scores(self.home_score, self.away_score)

    @property
    def result(self):
        """HOME_WIN / AWAY_WIN / DRAW, None until the match has a valid result"""
        if not self.has_valid_result:
            return None
        return get_match_result(self.home_score, self.away_score)

    @property
    def score_display(self):
        if self.home_score is None or self.away_score is None:
            return None
        return f"{self.home_score}-{self.away_score}"

    def lock_time_passed(self, now=None):
        now = ensure_utc(now) if now else get_utc_time()
        return ensure_utc(self.lock_time) <= now

    def accepts_predictions(self, now=None):
        """Open for new or changed predictions"""
        return (
            self.status == Match.SCHEDULED
            and not self.is_locked
            and not self.lock_time_passed(now)
        )

    def set_result(self, home_score, away_score):
        """Record the final score and close the match.

        Re-entering a result on a finished match is a correction; the caller
        is expected to recalculate points afterwards.
        """
        if not validate_scores(home_score, away_score):
            raise ValueError(f"Invalid final score: {home_score}-{away_score}")

        if self.status == Match.POSTPONED:
            raise InvalidMatchStateError(
                f"Match {self.id} is postponed and cannot receive a result",
                match_id=self.id,
                status=self.status,
            )

        self.home_score = home_score
        self.away_score = away_score
        self.status = Match.FINISHED
        self.is_locked = True
        self.points_calculated_at = None

    @staticmethod
    def lock_due_matches(now=None):
        """Lock every scheduled match whose lock time has passed

        Returns:
            List of matches locked by this call (not committed)
        """
        now = ensure_utc(now) if now else get_utc_time()
        # Stored datetimes are naive UTC
        cutoff = now.replace(tzinfo=None)

        due = Match.query.filter(
            Match.status == Match.SCHEDULED,
            Match.is_locked.is_(False),
            Match.lock_time <= cutoff,
        ).all()

        for match in due:
            match.is_locked = True

        return due

    def to_dict(self, include_predictions_count=False):
        """Convert match to dictionary for API responses"""
        data = {
            "id": self.id,
            "homeTeam": self.home_team.to_dict() if self.home_team else None,
            "awayTeam": self.away_team.to_dict() if self.away_team else None,
            "phase": self.phase.to_dict() if self.phase else None,
            "matchDate": self.match_date.isoformat() if self.match_date else None,
            "localMatchDate": (
                convert_to_app_timezone(self.match_date).isoformat()
                if self.match_date
                else None
            ),
            "lockTime": self.lock_time.isoformat() if self.lock_time else None,
            "isLocked": self.is_locked,
            "status": self.status,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "stadium": self.stadium,
            "city": self.city,
            "pointsCalculatedAt": (
                self.points_calculated_at.isoformat()
                if self.points_calculated_at
                else None
            ),
        }

        if include_predictions_count:
            data["predictionsCount"] = self.predictions.count()

        return data
