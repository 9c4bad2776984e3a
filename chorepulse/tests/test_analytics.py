import unittest
from datetime import date, datetime, timezone

from chorepulse.analytics import compute_analytics, current_streak, format_category, was_on_time
from chorepulse.db import TaskCompletionRecord, TaskRecord, UserRecord
from chorepulse.tests.support import ApiTestMixin
from chorepulse.timefmt import age_bracket, age_from_birthday, relative_date, round_half_up, time_ago


def at(day, hour=10):
    return datetime(2026, 3, day, hour, tzinfo=timezone.utc).timestamp()


NOW = at(10, 15)


class HelperTests(unittest.TestCase):
    def test_on_time(self):
        self.assertTrue(was_on_time(at(3, 10), "12:00"))
        self.assertFalse(was_on_time(at(3, 13), "12:00"))
        self.assertTrue(was_on_time(at(3, 23), None))

    def test_streak_allows_empty_today(self):
        today = date(2026, 3, 10)
        self.assertEqual(current_streak({date(2026, 3, 9), date(2026, 3, 8)}, today), 2)
        self.assertEqual(current_streak({today, date(2026, 3, 9)}, today), 2)
        self.assertEqual(current_streak({date(2026, 3, 8)}, today), 0)
        self.assertEqual(current_streak(set(), today), 0)

    def test_format_category(self):
        self.assertEqual(format_category("pet_care"), "Pet Care")

    def test_time_ago(self):
        self.assertEqual(time_ago(NOW - 30, NOW), "Just now")
        self.assertEqual(time_ago(NOW - 60, NOW), "1 min ago")
        self.assertEqual(time_ago(NOW - 3 * 3600, NOW), "3 hours ago")
        self.assertEqual(relative_date(NOW - 2 * 86400, NOW), "2 days ago")
        self.assertEqual(relative_date(at(1), NOW), "Mar 01, 2026")

    def test_round_half_up(self):
        self.assertEqual(round_half_up(12.5), 13)
        self.assertEqual(round_half_up(36.5), 37)
        self.assertEqual(round_half_up(-2.5), -2)
        self.assertEqual(round_half_up(0.25, 1), 0.3)

    def test_ages(self):
        self.assertEqual(age_from_birthday("2016-03-11", today=date(2026, 3, 10)), 9)
        self.assertEqual(age_from_birthday("2016-03-10", today=date(2026, 3, 10)), 10)
        self.assertIsNone(age_from_birthday("not a date"))
        self.assertEqual(age_bracket(12), "under_13")
        self.assertEqual(age_bracket(40), "35_44")
        self.assertIsNone(age_bracket(None))


class ComputeAnalyticsTests(unittest.TestCase):
    def setUp(self):
        self.alex = UserRecord(organization_id="o", name="Alex", username="alex", role="teen", points=40)
        self.sam = UserRecord(organization_id="o", name="Sam", username="sam", role="kid", points=30)
        self.task = TaskRecord(
            organization_id="o",
            name="Feed cat",
            category="pet_care",
            frequency="daily",
            points=10,
            due_time="12:00",
        )
        self.completions = [
            TaskCompletionRecord(task_id=self.task.id, user_id=self.alex.id, completed_at=at(d))
            for d in (8, 9, 10)
        ] + [
            TaskCompletionRecord(task_id=self.task.id, user_id=self.sam.id, completed_at=at(d))
            for d in (7, 8, 9)
        ]

    def test_overview_and_breakdowns(self):
        result = compute_analytics([self.alex, self.sam], [self.task], self.completions, now=NOW)
        self.assertEqual(
            result["overview"],
            {"totalTasksCompleted": 6, "totalPoints": 70, "completionRate": 100, "longestStreak": 3},
        )
        self.assertEqual(len(result["completionTrends"]), 30)
        self.assertEqual(result["completionTrends"][-1], {"date": "2026-03-10", "completions": 1})
        self.assertEqual(result["memberPerformance"][0]["name"], "Alex")
        self.assertEqual(
            result["tasksByCategory"], [{"category": "pet_care", "count": 6, "percentage": 100}]
        )
        self.assertEqual(result["fairnessScore"], 100)
        self.assertEqual(result["advancedMetrics"]["mentalLoadScore"], 100)
        self.assertEqual(result["peakTimes"][0]["label"], "10:00")

    def test_streak_alert_for_member_without_completion_today(self):
        result = compute_analytics([self.alex, self.sam], [self.task], self.completions, now=NOW)
        self.assertEqual([a["memberName"] for a in result["streakAlerts"]], ["Sam"])
        titles = [i["title"] for i in result["insights"]]
        self.assertEqual(titles[0], "Streak at Risk!")
        self.assertIn("Top Performer", titles)
        self.assertIn("Category Focus", titles)
        self.assertNotIn("Opportunity", titles)

    def test_late_completions_lower_scores(self):
        late = [
            TaskCompletionRecord(task_id=self.task.id, user_id=self.sam.id, completed_at=at(9, 18))
        ]
        result = compute_analytics([self.sam], [self.task], late, now=NOW)
        self.assertEqual(result["overview"]["completionRate"], 0)
        self.assertEqual(result["advancedMetrics"]["mentalLoadScore"], 95)
        self.assertIn("Opportunity", [i["title"] for i in result["insights"]])

    def test_empty_family(self):
        result = compute_analytics([], [], [], now=NOW)
        self.assertEqual(result["overview"]["totalTasksCompleted"], 0)
        self.assertEqual(result["advancedMetrics"]["growthRate"], 0)
        self.assertEqual(result["behaviorPatterns"], [])


class AnalyticsApiTests(ApiTestMixin, unittest.TestCase):
    def test_dashboard_counts_completed_tasks(self):
        kid = self.add_member("Sam Kid")
        task = self.create_task(points=10, assignTo=[kid["id"]])
        self.client.post(f"/api/tasks/{task['id']}/complete", json={}, headers=kid["headers"])
        body = self.client.get("/api/analytics", headers=self.owner["headers"]).json()
        self.assertEqual(body["overview"]["totalTasksCompleted"], 1)
        self.assertEqual(body["tasksByCategory"][0]["category"], "cleaning")


if __name__ == "__main__":
    unittest.main()
