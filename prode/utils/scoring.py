"""
Scoring Engine for the Prode Mundial application

This module turns a predicted score and the actual final score into a point
award. It is pure: persisting the result and refreshing the leaderboard are
handled by prode/services/match_points.py.

Tiers are checked in priority order and exactly one fires:

    exact_score            both scores right                  (12)
    winner_plus_one_score  right outcome and one team's goals (7)
    winner_only            right outcome, no team's goals     (5)
    one_score_only         wrong outcome, one team's goals    (2)
    none                   nothing right                      (0)

Examples with the default rules:
    1-0 vs 1-0 -> 12, 1-0 vs 2-0 -> 7, 1-0 vs 2-1 -> 5,
    1-0 vs 0-0 -> 2,  1-0 vs 2-2 -> 0
"""

from decimal import ROUND_HALF_UP, Decimal

EXACT_SCORE = "exact_score"
WINNER_PLUS_ONE_SCORE = "winner_plus_one_score"
WINNER_ONLY = "winner_only"
ONE_SCORE_ONLY = "one_score_only"
NO_POINTS = "none"

TIERS = (EXACT_SCORE, WINNER_PLUS_ONE_SCORE, WINNER_ONLY, ONE_SCORE_ONLY, NO_POINTS)

HOME_WIN = "HOME_WIN"
AWAY_WIN = "AWAY_WIN"
DRAW = "DRAW"


def _is_score(value):
    # bool is an int subclass but never a valid score
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_scores(home, away):
    """Check that both scores are present, integral and non-negative"""
    return _is_score(home) and _is_score(away)


class ScoringRules:
    """Point value of each tier"""

    def __init__(
        self,
        exact_score=12,
        winner_plus_one_score=7,
        winner_only=5,
        one_score_only=2,
    ):
        values = [exact_score, winner_plus_one_score, winner_only, one_score_only]
        if any(not _is_score(v) for v in values):
            raise ValueError(f"Tier points must be non-negative integers: {values}")
        if any(a <= b for a, b in zip(values, values[1:])):
            raise ValueError(
                f"Tier points must strictly decrease from exact score down: {values}"
            )

        self.exact_score = exact_score
        self.winner_plus_one_score = winner_plus_one_score
        self.winner_only = winner_only
        self.one_score_only = one_score_only

    @classmethod
    def from_config(cls, config):
        """Build rules from a Flask config mapping"""
        return cls(
            exact_score=config.get("SCORING_EXACT_SCORE", 12),
            winner_plus_one_score=config.get("SCORING_WINNER_PLUS_ONE_SCORE", 7),
            winner_only=config.get("SCORING_WINNER_ONLY", 5),
            one_score_only=config.get("SCORING_ONE_SCORE_ONLY", 2),
        )

    def points_for(self, tier):
        if tier == NO_POINTS:
            return 0
        return getattr(self, tier)

    def to_dict(self):
        return {tier: self.points_for(tier) for tier in TIERS}

    def __eq__(self, other):
        return isinstance(other, ScoringRules) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<ScoringRules {self.to_dict()}>"


DEFAULT_RULES = ScoringRules()


class PointsBreakdown:
    """Result of scoring one prediction"""

    def __init__(self, tier, base_points, multiplier, total, context):
        self.tier = tier
        self.base_points = base_points
        self.multiplier = multiplier
        self.total = total
        self.context = context

    @property
    def is_exact(self):
        return self.tier == EXACT_SCORE

    @property
    def breakdown(self):
        """Name of the tier that fired with its base points (empty for none)"""
        if self.tier == NO_POINTS:
            return {}
        return {self.tier: self.base_points}

    def to_dict(self):
        return {
            "total": self.total,
            "basePoints": self.base_points,
            "multiplier": float(self.multiplier),
            "tier": self.tier,
            "isExact": self.is_exact,
            "breakdown": self.breakdown,
            "context": self.context,
        }

    def __eq__(self, other):
        return isinstance(other, PointsBreakdown) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<PointsBreakdown {self.tier} total={self.total}>"


def get_match_result(home_score, away_score):
    """Outcome of a match from the home side's point of view"""
    if home_score > away_score:
        return HOME_WIN
    if away_score > home_score:
        return AWAY_WIN
    return DRAW


def classify(predicted_home, predicted_away, actual_home, actual_away):
    """Return the tier a prediction falls in"""
    home_correct = predicted_home == actual_home
    away_correct = predicted_away == actual_away

    if home_correct and away_correct:
        return EXACT_SCORE

    same_outcome = get_match_result(predicted_home, predicted_away) == get_match_result(
        actual_home, actual_away
    )
    one_score = home_correct or away_correct

    if same_outcome:
        return WINNER_PLUS_ONE_SCORE if one_score else WINNER_ONLY
    if one_score:
        return ONE_SCORE_ONLY
    return NO_POINTS


def apply_multiplier(base_points, multiplier):
    """Scale base points, rounding halves up"""
    scaled = Decimal(base_points) * Decimal(str(multiplier))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def evaluate(
    predicted_home,
    predicted_away,
    actual_home,
    actual_away,
    multiplier=1,
    rules=None,
    phase=None,
):
    """
    Score a single prediction.

    Args:
        predicted_home, predicted_away: Predicted goals
        actual_home, actual_away: Final goals
        multiplier: Phase points multiplier (positive, default 1)
        rules: ScoringRules to use (defaults to DEFAULT_RULES)
        phase: Phase slug, only recorded in the breakdown context

    Returns:
        PointsBreakdown
    """
    if not validate_scores(predicted_home, predicted_away):
        raise ValueError(f"Invalid predicted score: {predicted_home}-{predicted_away}")
    if not validate_scores(actual_home, actual_away):
        raise ValueError(f"Invalid actual score: {actual_home}-{actual_away}")

    multiplier = Decimal(str(multiplier))
    if multiplier <= 0:
        raise ValueError(f"Multiplier must be positive, got {multiplier}")

    rules = rules or DEFAULT_RULES
    tier = classify(predicted_home, predicted_away, actual_home, actual_away)
    base_points = rules.points_for(tier)

    return PointsBreakdown(
        tier=tier,
        base_points=base_points,
        multiplier=multiplier,
        total=apply_multiplier(base_points, multiplier),
        context={
            "predicted": {"home": predicted_home, "away": predicted_away},
            "actual": {"home": actual_home, "away": actual_away},
            "phase": phase,
        },
    )
