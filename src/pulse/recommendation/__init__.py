from pulse.recommendation.scoring import ScoringContext, score_and_rank_events, score_event
from pulse.recommendation.suggestions import get_suggestions, regenerate_suggestions
from pulse.recommendation.item_recommendations import get_item_recommendations

__all__ = [
    "ScoringContext",
    "get_item_recommendations",
    "get_suggestions",
    "regenerate_suggestions",
    "score_and_rank_events",
    "score_event",
]
