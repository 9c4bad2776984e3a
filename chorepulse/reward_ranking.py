"""
Rank reward templates by blending a family's own redemption history with
global popularity.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from chorepulse.db import RewardTemplateRecord
from chorepulse.timefmt import round_half_up

PERSONALIZATION_THRESHOLD = 10
LOCAL_WEIGHT = 0.7
GLOBAL_WEIGHT = 0.3


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


def redemption_counts(redeemed_reward_names: Iterable[str]) -> Counter:
    return Counter(normalize_name(name) for name in redeemed_reward_names)


def rank_templates(
    templates: list[RewardTemplateRecord], counts: Counter
) -> tuple[list[dict], dict]:
    total = sum(counts.values())
    personalized = total >= PERSONALIZATION_THRESHOLD

    ranked = []
    for template in templates:
        popularity = template.global_popularity
        blended = False
        count = counts.get(normalize_name(template.name), 0)
        if personalized and count > 0:
            share = count / total * 100
            popularity = round_half_up(share * LOCAL_WEIGHT + template.global_popularity * GLOBAL_WEIGHT)
            blended = True
        ranked.append(
            {
                "id": template.id,
                "name": template.name,
                "description": template.description,
                "category": template.category,
                "suggestedPoints": template.suggested_points,
                "icon": template.icon,
                "ageAppropriate": template.age_appropriate,
                "popularity": popularity,
                "globalPopularity": template.global_popularity,
                "isPersonalized": blended,
                "tags": template.tags,
            }
        )
    ranked.sort(key=lambda t: t["popularity"], reverse=True)
    return ranked, {"totalRedemptions": total, "isPersonalized": personalized}
