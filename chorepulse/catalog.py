"""
Starter catalog: achievement definitions, reward templates and task templates.

``seed_catalog`` inserts whatever is missing and leaves existing rows alone, so
it can be run against a live database at any time.
"""

from __future__ import annotations

import logging

from chorepulse.db import (
    AchievementDefinitionRecord,
    DbClient,
    RewardTemplateRecord,
    TaskTemplateRecord,
)

logger = logging.getLogger(__name__)

ALL_AGES = ["kid", "teen", "adult"]
TEEN_UP = ["teen", "adult"]

TIER_BONUS = {"bronze": 10, "silver": 25, "gold": 50, "platinum": 100}

# (key, name, category, tier, requirement_type, max_progress, icon, description)
ACHIEVEMENTS = (
    ("first_task", "First Steps", "tasks", "bronze", "tasks_completed", 1, "🌱",
     "Complete your first task"),
    ("task_10", "Getting Going", "tasks", "bronze", "tasks_completed", 10, "⭐",
     "Complete 10 tasks"),
    ("task_50", "Task Master", "tasks", "silver", "tasks_completed", 50, "🏅",
     "Complete 50 tasks"),
    ("task_100", "Chore Champion", "tasks", "gold", "tasks_completed", 100, "🏆",
     "Complete 100 tasks"),
    ("task_500", "Household Hero", "tasks", "platinum", "tasks_completed", 500, "👑",
     "Complete 500 tasks"),
    ("points_100", "Point Collector", "points", "bronze", "points_earned", 100, "💰",
     "Earn 100 points"),
    ("points_500", "Point Hoarder", "points", "silver", "points_earned", 500, "💎",
     "Earn 500 points"),
    ("points_2000", "Point Tycoon", "points", "gold", "points_earned", 2000, "🤑",
     "Earn 2,000 points"),
    ("reward_1", "Treat Yourself", "rewards", "bronze", "rewards_redeemed", 1, "🎁",
     "Redeem your first reward"),
    ("reward_10", "Reward Regular", "rewards", "silver", "rewards_redeemed", 10, "🛍️",
     "Redeem 10 rewards"),
)

# (name, category, suggested_points, icon, age_appropriate, global_popularity, description)
REWARD_TEMPLATES = (
    ("Extra Screen Time (30 min)", "screen_time", 50, "📱", ALL_AGES, 95,
     "Thirty extra minutes of screen time"),
    ("Pick Dinner", "privileges", 75, "🍕", ALL_AGES, 88, "Choose what the family eats tonight"),
    ("Stay Up 30 Minutes Late", "privileges", 60, "🌙", ALL_AGES, 85, "A later bedtime for one night"),
    ("Movie Night Pick", "experiences", 80, "🎬", ALL_AGES, 82, "Choose the family movie"),
    ("Ice Cream Trip", "treats", 100, "🍦", ALL_AGES, 80, "A trip out for ice cream"),
    ("Skip a Chore", "privileges", 120, "🎟️", ALL_AGES, 76, "Skip one assigned chore"),
    ("Friend Sleepover", "experiences", 300, "🏕️", ALL_AGES, 70, "Host a friend for a sleepover"),
    ("$5 Allowance Bonus", "money", 200, "💵", TEEN_UP, 68, "Five dollars added to allowance"),
    ("Video Game Rental", "screen_time", 250, "🎮", TEEN_UP, 60, "Rent a new game for the weekend"),
    ("Day Trip of Choice", "experiences", 500, "🚗", ALL_AGES, 55, "Pick the destination for a family day out"),
)

# (name, category, default_points, default_frequency, emoji, age_appropriate, popularity, description)
TASK_TEMPLATES = (
    ("Make Your Bed", "cleaning", 5, "daily", "🛏️", ALL_AGES, 95, "Straighten sheets and pillows"),
    ("Set the Table", "cooking", 5, "daily", "🍽️", ALL_AGES, 90, "Plates, cups and cutlery for everyone"),
    ("Load the Dishwasher", "cleaning", 10, "daily", "🍽️", ALL_AGES, 88, "Rinse and load dirty dishes"),
    ("Take Out the Trash", "cleaning", 10, "weekly", "🗑️", ALL_AGES, 86, "Empty bins and take them to the curb"),
    ("Tidy Your Room", "organization", 10, "daily", "🧸", ALL_AGES, 85, "Put toys and clothes away"),
    ("Fold Laundry", "cleaning", 15, "weekly", "👕", ALL_AGES, 80, "Fold and put away clean clothes"),
    ("Vacuum Living Room", "cleaning", 15, "weekly", "🧹", TEEN_UP, 75, "Vacuum floors and rugs"),
    ("Homework Time", "homework", 10, "daily", "📚", ALL_AGES, 74, "Finish today's homework"),
    ("Clean the Bathroom", "cleaning", 20, "weekly", "🚽", TEEN_UP, 70, "Sink, toilet, mirror and floor"),
    ("Water the Plants", "outdoor", 5, "weekly", "🪴", ALL_AGES, 65, "Water indoor and outdoor plants"),
    ("Mow the Lawn", "outdoor", 30, "weekly", "🌱", TEEN_UP, 60, "Mow front and back yard"),
    ("Grocery Run", "errands", 20, "weekly", "🛒", ["adult"], 50, "Pick up the weekly groceries"),
)


def seed_catalog(db: DbClient) -> dict[str, int]:
    """Insert missing catalog rows. Returns how many of each kind were added."""
    added = {"achievements": 0, "rewardTemplates": 0, "taskTemplates": 0}

    for sort_order, (key, name, category, tier, requirement, maximum, icon, description) in enumerate(
        ACHIEVEMENTS
    ):
        if db.find_one(AchievementDefinitionRecord, key=key):
            continue
        db.insert(
            AchievementDefinitionRecord(
                key=key,
                name=name,
                category=category,
                tier=tier,
                max_progress=maximum,
                description=description,
                icon=icon,
                points_reward=TIER_BONUS[tier],
                requirement_type=requirement,
                sort_order=sort_order,
            )
        )
        added["achievements"] += 1

    for name, category, points, icon, ages, popularity, description in REWARD_TEMPLATES:
        if db.find_one(RewardTemplateRecord, name=name):
            continue
        db.insert(
            RewardTemplateRecord(
                name=name,
                category=category,
                suggested_points=points,
                description=description,
                icon=icon,
                age_appropriate=list(ages),
                global_popularity=popularity,
            )
        )
        added["rewardTemplates"] += 1

    for name, category, points, frequency, emoji, ages, popularity, description in TASK_TEMPLATES:
        if db.find_one(TaskTemplateRecord, name=name):
            continue
        db.insert(
            TaskTemplateRecord(
                name=name,
                category=category,
                default_points=points,
                default_frequency=frequency,
                description=description,
                emoji=emoji,
                age_appropriate=list(ages),
                popularity=popularity,
            )
        )
        added["taskTemplates"] += 1

    logger.info("Seeded catalog: %s", added)
    return added
