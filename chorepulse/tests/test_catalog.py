import unittest

from chorepulse.catalog import ACHIEVEMENTS, REWARD_TEMPLATES, TASK_TEMPLATES, seed_catalog
from chorepulse.db import AchievementDefinitionRecord, InMemoryDbClient, TaskTemplateRecord


class SeedCatalogTests(unittest.TestCase):
    def test_seed_is_idempotent(self):
        db = InMemoryDbClient()
        first = seed_catalog(db)
        self.assertEqual(
            first,
            {
                "achievements": len(ACHIEVEMENTS),
                "rewardTemplates": len(REWARD_TEMPLATES),
                "taskTemplates": len(TASK_TEMPLATES),
            },
        )
        second = seed_catalog(db)
        self.assertEqual(set(second.values()), {0})
        self.assertEqual(db.count(TaskTemplateRecord), len(TASK_TEMPLATES))

    def test_tier_bonus_points(self):
        db = InMemoryDbClient()
        seed_catalog(db)
        first = db.find_one(AchievementDefinitionRecord, key="first_task")
        self.assertEqual(first.points_reward, 10)
        self.assertEqual(db.find_one(AchievementDefinitionRecord, key="task_500").points_reward, 100)


if __name__ == "__main__":
    unittest.main()
