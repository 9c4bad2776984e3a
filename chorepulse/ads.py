"""
COPPA-aware ad configuration.

Kids only ever get non-personalized, child-directed ads. Paid tiers see no ads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from chorepulse.config import Settings

AD_FREE_TIERS = frozenset({"premium", "unlimited"})
OLDER_ROLES = ("teen", "adult")


@dataclass(frozen=True)
class Placement:
    units: tuple[str, ...] = ()
    roles: Optional[tuple[str, ...]] = None
    frequency: Optional[str] = None


PLACEMENTS = {
    "rewards": Placement(units=("rectangle",), frequency="every-6-items"),
    "dashboard": Placement(units=("banner",)),
    "leaderboard": Placement(units=("leaderboard",), roles=OLDER_ROLES),
    "calendar": Placement(units=("banner",), roles=OLDER_ROLES),
    "badges": Placement(units=("native",)),
    "tasks": Placement(),
    "more": Placement(),
    "hub": Placement(),
}


def should_show_ads(settings: Settings, role: Optional[str], tier: Optional[str]) -> bool:
    if not settings.ads_enabled or not role:
        return False
    if tier and tier.lower() in AD_FREE_TIERS:
        return False
    return True


def allow_personalized_ads(role: Optional[str]) -> bool:
    return role != "kid"


def ad_unit_ids(settings: Settings) -> dict[str, Optional[str]]:
    return {
        "banner": settings.adsense_slot_banner,
        "rectangle": settings.adsense_slot_rectangle,
        "native": settings.adsense_slot_native,
        "interstitial": settings.adsense_slot_interstitial,
        "leaderboard": settings.adsense_slot_leaderboard,
    }


def ad_config(
    settings: Settings, role: Optional[str], tier: Optional[str], page: Optional[str] = None
) -> dict:
    show = should_show_ads(settings, role, tier)
    personalized = allow_personalized_ads(role)
    slots = []
    if show and page:
        placement = PLACEMENTS.get(page, Placement())
        if placement.roles is None or role in placement.roles:
            unit_ids = ad_unit_ids(settings)
            slots = [
                {"unit": unit, "slotId": unit_ids[unit], "frequency": placement.frequency}
                for unit in placement.units
            ]

    targeting = {"npa": "0" if personalized else "1"}
    if not personalized:
        targeting["tagForChildDirectedTreatment"] = "1"
    return {
        "shouldShowAds": show,
        "clientId": settings.adsense_client_id if show else None,
        "personalizedAds": personalized,
        "targeting": targeting,
        "page": page,
        "slots": slots,
    }
