import unittest

from chorepulse.db import (
    EmailQueueRecord,
    OrganizationRecord,
    PostgresDbClient,
    TaskAssignmentRecord,
    UserRecord,
)


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    @classmethod
    def setUpClass(cls):
        cls.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_insert_and_get(self):
        org = self.db.insert(OrganizationRecord(name="Smiths", home_features=["pool"]))
        fetched = self.db.get(OrganizationRecord, org.id)
        self.assertEqual(fetched.name, "Smiths")
        self.assertEqual(fetched.home_features, ["pool"])
        self.assertIsNone(self.db.get(OrganizationRecord, "missing"))

    def test_find_filters_and_order(self):
        org = self.db.insert(OrganizationRecord(name="Filters"))
        for name, created in (("b", 2.0), ("a", 1.0), ("c", 3.0)):
            self.db.insert(
                UserRecord(
                    organization_id=org.id,
                    name=name,
                    username=f"filter-{name}",
                    role="kid",
                    created_at=created,
                )
            )
        names = [u.name for u in self.db.find(UserRecord, organization_id=org.id, order_by="created_at")]
        self.assertEqual(names, ["a", "b", "c"])
        newest = self.db.find(
            UserRecord, organization_id=org.id, order_by="created_at", descending=True, limit=1
        )
        self.assertEqual(newest[0].name, "c")
        picked = self.db.find(UserRecord, username=["filter-a", "filter-c"])
        self.assertEqual({u.name for u in picked}, {"a", "c"})
        self.assertEqual(self.db.count(UserRecord, organization_id=org.id, email=None), 3)

    def test_update_and_adjust_points(self):
        user = self.db.insert(
            UserRecord(organization_id="o", name="Pat", username="points-pat", role="adult")
        )
        updated = self.db.update(UserRecord, user.id, name="Patricia", is_family_manager=True)
        self.assertEqual(updated.name, "Patricia")
        self.assertTrue(updated.is_family_manager)
        self.assertEqual(self.db.adjust_points(user.id, 15), 15)
        self.assertEqual(self.db.adjust_points(user.id, -5), 10)
        self.assertIsNone(self.db.adjust_points("missing", 5))

    def test_delete(self):
        first = self.db.insert(TaskAssignmentRecord(task_id="t-del", user_id="u1"))
        self.db.insert(TaskAssignmentRecord(task_id="t-del", user_id="u2"))
        self.assertTrue(self.db.delete(TaskAssignmentRecord, first.id))
        self.assertFalse(self.db.delete(TaskAssignmentRecord, first.id))
        self.assertEqual(self.db.delete_where(TaskAssignmentRecord, task_id="t-del"), 1)

    def test_json_payload_roundtrip(self):
        item = self.db.insert(
            EmailQueueRecord(
                user_id="u1",
                email="a@example.com",
                campaign_type="weekly_report",
                subject="Report",
                data={"stats": {"tasks": 3}},
            )
        )
        self.assertEqual(self.db.get(EmailQueueRecord, item.id).data, {"stats": {"tasks": 3}})


if __name__ == "__main__":
    unittest.main()
