from .matches import MatchResultForm
from .predictions import PredictionForm

__all__ = ["MatchResultForm", "PredictionForm"]
