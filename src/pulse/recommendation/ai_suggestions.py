"""
AI curation of weekly and monthly picks with OpenAI.

The model may only choose among the candidate ids it is shown. Its JSON
answer is validated with pydantic; anything unusable yields None so the
caller can fall back to deterministic selection.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pulse.config import AIConfig
from pulse.records import as_datetime, as_list
from pulse.recommendation.tag_taxonomy import CATEGORY_REASONS

LOGGER = logging.getLogger(__name__)

DETERMINISTIC_WEEKLY_COUNT = 8
DETERMINISTIC_MONTHLY_COUNT = 15
DETERMINISTIC_MAX_PER_CATEGORY = 3


class SuggestionOutput(BaseModel):
    """Schema the model must answer with (camelCase JSON keys)."""

    model_config = ConfigDict(populate_by_name=True)

    weekly_pick_ids: List[str] = Field(..., alias="weeklyPickIds", min_length=1, max_length=10)
    monthly_pick_ids: List[str] = Field(..., alias="monthlyPickIds", min_length=1, max_length=20)
    reasons_by_id: Dict[str, str] = Field(..., alias="reasonsById")
    summary_text: str = Field(..., alias="summaryText", min_length=10, max_length=500)


@dataclass
class UserTasteSummary:
    liked_categories: List[str] = field(default_factory=list)
    disliked_categories: List[str] = field(default_factory=list)
    preferred_tags: List[str] = field(default_factory=list)
    avg_rating: Optional[float] = None
    total_done: int = 0
    total_pass: int = 0
    recent_activity: List[str] = field(default_factory=list)


@dataclass
class CuratedPicks:
    weekly_pick_ids: List[str]
    monthly_pick_ids: List[str]
    reasons_by_id: Dict[str, str]
    summary_text: str


# ============================================================================
# PROMPTS
# ============================================================================

def build_system_prompt(city_name: str = "Denver") -> str:
    return f"""You are a {city_name} events and places curator for the Pulse app. Your job is to select the best items for a user based on their taste profile.

CRITICAL CONSTRAINTS:
1. You may ONLY select from the provided candidate IDs
2. You must NEVER invent or create new IDs
3. Each ID in your response MUST exist in the candidates list
4. Provide a short, compelling reason for each pick (1 sentence)
5. Write a 2-3 sentence summary of your curation

OUTPUT FORMAT:
Return ONLY valid JSON matching this exact schema:
{{
  "weeklyPickIds": ["id1", "id2", ...],
  "monthlyPickIds": ["id1", "id2", ...],
  "reasonsById": {{
    "id1": "Short reason for this pick",
    "id2": "Short reason for this pick"
  }},
  "summaryText": "2-3 sentence summary of your curation approach"
}}

Pick 6-10 items for this week and 10-20 for this month.
Do not include any text outside the JSON object."""


def _format_date(value: Any) -> str:
    start = as_datetime(value)
    if start is None:
        return "Anytime"
    return f"{start:%a, %b} {start.day}"


def format_candidate(candidate: Mapping[str, Any]) -> str:
    return "\n".join([
        f"- ID: {candidate['id']}",
        f"  Type: {candidate.get('type')}",
        f"  Title: {candidate.get('title')}",
        f"  Category: {candidate.get('category')}",
        f"  Tags: {', '.join(as_list(candidate.get('tags')))}",
        f"  Date: {_format_date(candidate.get('start_time'))}",
        f"  Venue: {candidate.get('venue_name') or ''}",
        f"  Price: {candidate.get('price_range') or ''}",
        f"  Match Score: {float(candidate.get('score') or 0):.0f}",
    ])


def build_user_prompt(taste: UserTasteSummary, candidates: Sequence[Mapping[str, Any]]) -> str:
    avg_rating = f"{taste.avg_rating:.1f}" if taste.avg_rating else "No ratings yet"
    candidate_list = "\n\n".join(format_candidate(c) for c in candidates)

    return f"""USER TASTE PROFILE:
- Liked categories: {', '.join(taste.liked_categories) or 'None specified'}
- Disliked categories: {', '.join(taste.disliked_categories) or 'None specified'}
- Preferred tags: {', '.join(taste.preferred_tags) or 'None specified'}
- Average rating given: {avg_rating}
- Items completed: {taste.total_done}
- Items passed: {taste.total_pass}
- Recent activity: {', '.join(taste.recent_activity[:5]) or 'No recent activity'}

CANDIDATE ITEMS ({len(candidates)} total):
Select from these ONLY:

{candidate_list}

Please select 6-10 for weekly picks and 10-20 for monthly picks.
Prioritize variety, relevance to user taste, and upcoming dates for weekly picks."""


# ============================================================================
# AI CURATION
# ============================================================================

class AICurator:
    """Chat-completions curator. `generate` never raises."""

    def __init__(self, config: Optional[AIConfig] = None, client: Any = None, city_name: str = "Denver"):
        self.config = config or AIConfig()
        self._client = client
        self.city_name = city_name

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def client(self):
        if self._client is None and self.config.api_key:
            self._client = OpenAI(api_key=self.config.api_key)
        return self._client

    def generate(
        self,
        taste: UserTasteSummary,
        candidates: Sequence[Mapping[str, Any]],
    ) -> Optional[CuratedPicks]:
        if not self.config.enabled:
            LOGGER.info("AI suggestions disabled")
            return None
        client = self.client()
        if client is None:
            LOGGER.info("No OpenAI API key configured")
            return None
        if not candidates:
            LOGGER.info("No candidates provided for AI curation")
            return None

        valid_ids = {c["id"] for c in candidates}
        LOGGER.info("Calling %s with %d candidates", self.config.model, len(candidates))

        try:
            response = client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": build_system_prompt(self.city_name)},
                    {"role": "user", "content": build_user_prompt(taste, candidates)},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content if response.choices else None
        except Exception:
            LOGGER.exception("OpenAI API error")
            return None

        if not content:
            LOGGER.error("Empty response from OpenAI")
            return None

        try:
            output = SuggestionOutput.model_validate(json.loads(content))
        except json.JSONDecodeError as e:
            LOGGER.error("Failed to parse AI JSON: %s", e)
            return None
        except ValidationError as e:
            LOGGER.error("AI output failed schema validation: %s", e)
            return None

        return self._constrain(output, valid_ids)

    def _constrain(self, output: SuggestionOutput, valid_ids: set) -> Optional[CuratedPicks]:
        weekly = [i for i in output.weekly_pick_ids if i in valid_ids]
        monthly = [i for i in output.monthly_pick_ids if i in valid_ids]

        if len(weekly) < len(output.weekly_pick_ids) or len(monthly) < len(output.monthly_pick_ids):
            LOGGER.error(
                "AI returned unknown ids (weekly %d -> %d, monthly %d -> %d)",
                len(output.weekly_pick_ids), len(weekly),
                len(output.monthly_pick_ids), len(monthly),
            )
            if len(weekly) < self.config.min_weekly or len(monthly) < self.config.min_monthly:
                return None

        selected = set(weekly) | set(monthly)
        reasons = {k: v for k, v in output.reasons_by_id.items() if k in selected}
        LOGGER.info("AI curation succeeded: %d weekly, %d monthly", len(weekly), len(monthly))
        return CuratedPicks(weekly, monthly, reasons, output.summary_text)


# ============================================================================
# DETERMINISTIC FALLBACK
# ============================================================================

def generate_deterministic_reason(candidate: Mapping[str, Any], index: int) -> str:
    reasons = CATEGORY_REASONS.get(candidate.get("category"), CATEGORY_REASONS["OTHER"])
    return reasons[index % len(reasons)]


def generate_deterministic_suggestions(
    candidates: Sequence[Mapping[str, Any]],
    taste: UserTasteSummary,
    city_name: str = "Denver",
) -> CuratedPicks:
    """
    Curate without a model: the soonest events for the week, and a
    category round-robin (at most 3 per category) for the month.
    """
    ranked = sorted(candidates, key=lambda c: c.get("score") or 0, reverse=True)

    events = [c for c in ranked if c.get("type") == "EVENT" and as_datetime(c.get("start_time"))]
    events.sort(key=lambda c: as_datetime(c.get("start_time")))
    weekly = events[:DETERMINISTIC_WEEKLY_COUNT]

    buckets: Dict[str, List[Mapping[str, Any]]] = {}
    for item in ranked:
        buckets.setdefault(item.get("category"), []).append(item)

    monthly: List[Mapping[str, Any]] = []
    per_category: Dict[str, int] = {}
    chosen: set = set()
    added = True
    while added and len(monthly) < DETERMINISTIC_MONTHLY_COUNT:
        added = False
        for category, items in buckets.items():
            if len(monthly) >= DETERMINISTIC_MONTHLY_COUNT:
                break
            if per_category.get(category, 0) >= DETERMINISTIC_MAX_PER_CATEGORY or not items:
                continue
            item = items.pop(0)
            if item["id"] in chosen:
                continue
            monthly.append(item)
            chosen.add(item["id"])
            per_category[category] = per_category.get(category, 0) + 1
            added = True

    reasons: Dict[str, str] = {}
    for i, pick in enumerate(weekly):
        reasons[pick["id"]] = generate_deterministic_reason(pick, i)
    for i, pick in enumerate(monthly):
        reasons.setdefault(pick["id"], generate_deterministic_reason(pick, i))

    top = taste.liked_categories[:3]
    if top:
        summary = (
            f"Based on your love for {' and '.join(top)}, we've curated these picks just for you. "
            "Discover new favorites this week and explore more throughout the month."
        )
    else:
        summary = (
            "Here are our top picks for you this week and month. We've selected a diverse mix "
            f"of events and places to help you discover {city_name}."
        )

    return CuratedPicks(
        weekly_pick_ids=[p["id"] for p in weekly],
        monthly_pick_ids=[p["id"] for p in monthly],
        reasons_by_id=reasons,
        summary_text=summary,
    )
