import unittest

from chorepulse.catalog import seed_catalog
from chorepulse.db import OrganizationRecord
from chorepulse.suggestions import MAX_SUGGESTIONS, Household, suggest_tasks
from chorepulse.tests.support import ApiTestMixin


def household(task_names=(), categories=(), roles=("adult",), **org_fields):
    return Household(
        org=OrganizationRecord(name="Test Family", **org_fields),
        task_names=set(task_names),
        categories=set(categories),
        roles=set(roles),
    )


class SuggestTasksTests(unittest.TestCase):
    def test_rules_match_household(self):
        suggestions = suggest_tasks(
            household(
                task_names={"walk the dog"},
                categories={"cleaning"},
                roles={"kid", "adult"},
                has_pets=True,
                pet_types=["dog"],
                number_of_cars=2,
                age_groups=["kid"],
            )
        )
        self.assertEqual(
            [s["name"] for s in suggestions],
            [
                "Feed the Dog",
                "Make Bed",
                "Put Away Toys",
                "Complete Homework",
                "Wash Car",
                "Vacuum Car",
            ],
        )
        wash = suggestions[4]
        self.assertEqual(wash["reason"], "You have 2 cars")
        self.assertEqual(wash["ageAppropriate"], ["teen", "adult"])

    def test_pets_need_has_pets(self):
        names = [s["name"] for s in suggest_tasks(household(pet_types=["cat"], categories={"cleaning"}))]
        self.assertEqual(names, [])

    def test_category_gaps_ignore_existing_names(self):
        names = [
            s["name"]
            for s in suggest_tasks(household(task_names={"vacuum living room"}, roles={"teen"}))
        ]
        self.assertIn("Vacuum Living Room", names)
        self.assertIn("Help Prepare Dinner", names)

    def test_capped(self):
        suggestions = suggest_tasks(
            household(
                roles={"kid", "teen", "adult"},
                has_pets=True,
                pet_types=["dog", "cat", "fish", "bird"],
                home_features=["pool", "hot_tub", "fireplace", "garden", "indoor_plants"],
                number_of_cars=1,
                number_of_bikes=3,
                has_garage=True,
                age_groups=["kid", "teen"],
            )
        )
        self.assertEqual(len(suggestions), MAX_SUGGESTIONS)
        priorities = [s["priority"] for s in suggestions]
        self.assertEqual(priorities, sorted(priorities, reverse=True))


class TaskCatalogApiTests(ApiTestMixin, unittest.TestCase):
    def test_templates_sorted_and_filtered(self):
        seed_catalog(self.db)
        templates = self.client.get("/api/tasks/templates", headers=self.owner["headers"]).json()[
            "templates"
        ]
        self.assertEqual(templates[0]["name"], "Make Your Bed")
        popularity = [t["popularity"] for t in templates]
        self.assertEqual(popularity, sorted(popularity, reverse=True))

        outdoor = self.client.get(
            "/api/tasks/templates",
            params={"category": "outdoor", "ageGroup": "kid"},
            headers=self.owner["headers"],
        ).json()["templates"]
        self.assertEqual([t["name"] for t in outdoor], ["Water the Plants"])

    def test_suggestions_endpoint(self):
        self.db.update(
            OrganizationRecord, self.owner["org"], has_pets=True, pet_types=["fish"]
        )
        body = self.client.get("/api/tasks/suggestions", headers=self.owner["headers"]).json()
        names = [s["name"] for s in body["suggestions"]]
        self.assertIn("Feed the Fish", names)
        self.assertIn("Vacuum Living Room", names)
        self.assertEqual(body["householdContext"]["petTypes"], ["fish"])


if __name__ == "__main__":
    unittest.main()
