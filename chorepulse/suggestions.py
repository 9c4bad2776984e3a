"""
Rule-based task suggestions derived from household details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from chorepulse.db import OrganizationRecord

MAX_SUGGESTIONS = 15

ALL_AGES = ["kid", "teen", "adult"]
TEEN_UP = ["teen", "adult"]


@dataclass
class Household:
    org: OrganizationRecord
    task_names: set[str]
    categories: set[str]
    roles: set[str]

    def has_feature(self, feature: str) -> bool:
        return feature in (self.org.home_features or [])

    def has_pet(self, pet: str) -> bool:
        return bool(self.org.has_pets) and pet in (self.org.pet_types or [])

    def has_age_group(self, *groups: str) -> bool:
        return any(g in (self.org.age_groups or []) for g in groups)


@dataclass
class Rule:
    when: Callable[[Household], bool]
    name: str
    description: str
    category: str
    emoji: str
    points: int
    frequency: str
    reason: str | Callable[[Household], str]
    ages: list[str] = field(default_factory=lambda: list(TEEN_UP))
    priority: int = 3
    # Category-gap rules are offered regardless of existing task names.
    dedupe: bool = True


def _plural(count: int, noun: str) -> str:
    return f"You have {count} {noun}{'s' if count > 1 else ''}"


def _has_pool(h: Household) -> bool:
    return h.org.has_pool is True or h.has_feature("pool")


def _has_fireplace(h: Household) -> bool:
    return h.org.has_fireplace is True or h.has_feature("fireplace")


RULES = [
    Rule(lambda h: h.has_pet("dog"), "Walk the Dog", "Take the dog for a walk around the neighborhood",
         "pet_care", "🐕", 15, "daily", "You have a dog in your household", priority=5),
    Rule(lambda h: h.has_pet("dog"), "Feed the Dog", "Fill food and water bowls",
         "pet_care", "🐕", 5, "daily", "You have a dog in your household", ALL_AGES, 5),
    Rule(lambda h: h.has_pet("cat"), "Clean Litter Box", "Scoop and clean the cat litter box",
         "pet_care", "🐱", 10, "daily", "You have a cat in your household", priority=5),
    Rule(lambda h: h.has_pet("cat"), "Feed the Cat", "Fill food and water bowls",
         "pet_care", "🐱", 5, "daily", "You have a cat in your household", ALL_AGES, 5),
    Rule(lambda h: h.has_pet("fish"), "Feed the Fish", "Feed fish and check water levels",
         "pet_care", "🐠", 5, "daily", "You have fish in your household", ALL_AGES, 4),
    Rule(lambda h: h.has_pet("bird"), "Clean Bird Cage", "Clean cage and replace liner",
         "pet_care", "🐦", 15, "weekly", "You have a bird in your household", priority=4),
    Rule(_has_pool, "Skim Pool", "Remove leaves and debris from pool surface",
         "outdoor", "🏊", 15, "daily", "You have a pool", priority=5),
    Rule(_has_pool, "Check Pool Chemicals", "Test and adjust pool pH and chlorine levels",
         "maintenance", "🧪", 20, "weekly", "Pool maintenance is essential for safety", ["adult"], 5),
    Rule(_has_pool, "Vacuum Pool", "Vacuum pool floor and walls",
         "outdoor", "🏊", 25, "weekly", "You have a pool", priority=4),
    Rule(lambda h: h.has_feature("hot_tub"), "Clean Hot Tub Filter", "Remove and rinse hot tub filter",
         "maintenance", "🛁", 15, "weekly", "You have a hot tub", ["adult"], 4),
    Rule(_has_fireplace, "Clean Fireplace", "Remove ash and debris from fireplace",
         "cleaning", "🔥", 20, "weekly", "You have a fireplace"),
    Rule(_has_fireplace, "Stock Firewood", "Bring firewood inside and stack near fireplace",
         "outdoor", "🪵", 15, "weekly", "You have a fireplace"),
    Rule(lambda h: h.has_feature("garden"), "Water Plants", "Water garden plants and flowers",
         "outdoor", "🌱", 10, "daily", "You have a garden", ALL_AGES, 4),
    Rule(lambda h: h.has_feature("garden"), "Weed Garden", "Pull weeds from garden beds",
         "outdoor", "🌿", 20, "weekly", "You have a garden"),
    Rule(lambda h: h.has_feature("indoor_plants"), "Water Indoor Plants", "Water all indoor plants",
         "cleaning", "🪴", 10, "weekly", "You have indoor plants", ALL_AGES, 4),
    Rule(lambda h: (h.org.number_of_cars or 0) > 0, "Wash Car", "Wash and dry the car",
         "outdoor", "🚗", 25, "weekly", lambda h: _plural(h.org.number_of_cars, "car")),
    Rule(lambda h: (h.org.number_of_cars or 0) > 0, "Vacuum Car", "Vacuum car interior",
         "cleaning", "🚗", 15, "weekly", lambda h: _plural(h.org.number_of_cars, "car")),
    Rule(lambda h: (h.org.number_of_bikes or 0) > 0, "Clean Bike", "Wipe down and check bike condition",
         "outdoor", "🚲", 15, "weekly", lambda h: _plural(h.org.number_of_bikes, "bike"), ALL_AGES, 2),
    Rule(lambda h: h.org.has_garage is True, "Sweep Garage", "Sweep garage floor",
         "cleaning", "🧹", 15, "weekly", "You have a garage", priority=2),
    Rule(lambda h: h.has_age_group("toddler", "kid"), "Make Bed", "Make your bed in the morning",
         "personal_care", "🛏️", 5, "daily", "Great starter task for young children", ALL_AGES, 5),
    Rule(lambda h: h.has_age_group("toddler", "kid"), "Put Away Toys", "Clean up and organize toys",
         "organization", "🧸", 10, "daily", "You have young children", ["kid"], 5),
    Rule(lambda h: h.has_age_group("teen"), "Mow Lawn", "Mow the front and back yard",
         "outdoor", "🏡", 30, "weekly", "Teens can handle more responsibility"),
    Rule(lambda h: h.has_age_group("teen"), "Do Laundry", "Wash, dry, and fold a load of laundry",
         "cleaning", "👕", 20, "weekly", "Important life skill for teens", priority=4),
    Rule(lambda h: "cleaning" not in h.categories, "Vacuum Living Room", "Vacuum the main living areas",
         "cleaning", "🧹", 15, "weekly", "Essential household cleaning task", priority=4, dedupe=False),
    Rule(lambda h: "cooking" not in h.categories and "teen" in h.roles, "Help Prepare Dinner",
         "Assist with cooking dinner", "cooking", "🍳", 20, "daily",
         "Cooking skills are valuable life skills", dedupe=False),
    Rule(lambda h: "homework" not in h.categories and bool(h.roles & {"kid", "teen"}), "Complete Homework",
         "Finish all homework assignments", "homework", "📚", 15, "daily", "Academic responsibility",
         ["kid", "teen"], 5, dedupe=False),
]


def suggest_tasks(household: Household) -> list[dict]:
    suggestions = []
    for rule in RULES:
        if not rule.when(household):
            continue
        if rule.dedupe and rule.name.lower() in household.task_names:
            continue
        suggestions.append(
            {
                "name": rule.name,
                "description": rule.description,
                "category": rule.category,
                "emoji": rule.emoji,
                "defaultPoints": rule.points,
                "defaultFrequency": rule.frequency,
                "reason": rule.reason(household) if callable(rule.reason) else rule.reason,
                "ageAppropriate": list(rule.ages),
                "priority": rule.priority,
            }
        )
    # sorted() is stable, so equal priorities keep rule order.
    return sorted(suggestions, key=lambda s: -s["priority"])[:MAX_SUGGESTIONS]


def household_context(org: OrganizationRecord) -> dict:
    return {
        "hasPets": org.has_pets,
        "petTypes": org.pet_types,
        "homeFeatures": org.home_features,
        "ageGroups": org.age_groups,
        "vehicles": {"cars": org.number_of_cars, "bikes": org.number_of_bikes},
    }
