import unittest
from unittest import mock

from chorepulse.config import Settings
from chorepulse.db import OrganizationRecord
from chorepulse.property_data import map_property, merge_home_features
from chorepulse.tests.support import ApiTestMixin

RENTCAST_PROPERTY = {
    "id": "prop-1",
    "bedrooms": 3,
    "bathrooms": 2,
    "squareFootage": 1800,
    "propertyType": "Single Family",
    "features": {"fireplace": True, "pool": False, "garage": True},
}


class OrganizationsApiTests(ApiTestMixin, unittest.TestCase):
    def setUp(self):
        super().setUp()
        self.kid = self.add_member("Sam Kid")

    def test_current_organization(self):
        response = self.client.get("/api/organizations/current", headers=self.kid["headers"])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["organization"]["name"], "The Owners")

    def test_rename_requires_owner_and_name(self):
        url = f"/api/organizations/{self.owner['org']}"
        self.assertEqual(
            self.client.patch(url, json={"name": "Kids"}, headers=self.kid["headers"]).status_code,
            403,
        )
        empty = self.client.patch(url, json={"name": "  "}, headers=self.owner["headers"])
        self.assertEqual(empty.status_code, 400)
        renamed = self.client.patch(url, json={"name": "Team Home"}, headers=self.owner["headers"])
        self.assertEqual(renamed.json()["organization"]["name"], "Team Home")

    def test_regenerate_family_code(self):
        before = self.client.get("/api/organization/family-code", headers=self.kid["headers"]).json()
        self.assertEqual(before["version"], 1)

        denied = self.client.post("/api/organization/family-code", headers=self.kid["headers"])
        self.assertEqual(denied.status_code, 403)

        after = self.client.post(
            "/api/organization/family-code", headers=self.owner["headers"]
        ).json()
        self.assertEqual(after["version"], 2)
        self.assertNotEqual(after["familyCode"], before["familyCode"])

    def test_family_profile_create_then_merge(self):
        empty = self.client.get("/api/organization/family-profile", headers=self.owner["headers"])
        self.assertFalse(empty.json()["exists"])

        created = self.client.patch(
            "/api/organization/family-profile",
            json={"household_size": 4, "has_pets": True, "unknown": "dropped"},
            headers=self.owner["headers"],
        )
        self.assertEqual(created.json()["message"], "Family profile created successfully")
        self.assertNotIn("unknown", created.json()["profile"])

        updated = self.client.patch(
            "/api/organization/family-profile",
            json={"household_size": 5},
            headers=self.owner["headers"],
        ).json()
        self.assertEqual(updated["profile"]["household_size"], 5)
        self.assertTrue(updated["profile"]["has_pets"])

    def test_household_update(self):
        response = self.client.patch(
            "/api/organizations/household",
            json={"hasPets": True, "petTypes": ["dog"], "homeFeatures": ["yard"]},
            headers=self.owner["headers"],
        )
        self.assertEqual(response.status_code, 200)
        org = self.db.get(OrganizationRecord, self.owner["org"])
        self.assertEqual(org.pet_types, ["dog"])

    def test_sync_features_from_property_facts(self):
        self.db.update(
            OrganizationRecord,
            self.owner["org"],
            home_features=["pool", "yard"],
            has_fireplace=True,
            has_pool=False,
        )
        response = self.client.post("/api/organizations/sync-features", headers=self.owner["headers"])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "homeFeatures": ["yard", "fireplace"]})

        self.db.update(OrganizationRecord, self.owner["org"], has_fireplace=None, has_pool=None)
        unchanged = self.client.post(
            "/api/organizations/sync-features", headers=self.owner["headers"]
        ).json()
        self.assertEqual(unchanged["homeFeatures"], ["yard", "fireplace"])

        by_kid = self.client.post("/api/organizations/sync-features", headers=self.kid["headers"])
        self.assertEqual(by_kid.status_code, 403)

    def test_property_lookup_is_rate_limited(self):
        settings = Settings(rentcast_api_key="key")
        with mock.patch(
            "chorepulse.routes.organizations.get_settings", return_value=settings
        ), mock.patch(
            "chorepulse.routes.organizations.lookup_property",
            return_value=map_property(RENTCAST_PROPERTY),
        ):
            for _ in range(2):
                ok = self.client.post(
                    "/api/property/lookup",
                    json={"address": "1 Main St, Springfield, IL"},
                    headers=self.owner["headers"],
                )
                self.assertEqual(ok.status_code, 200, ok.text)
            limited = self.client.post(
                "/api/property/lookup",
                json={"address": "1 Main St, Springfield, IL"},
                headers=self.owner["headers"],
            )
        self.assertEqual(limited.status_code, 429)
        org = self.db.get(OrganizationRecord, self.owner["org"])
        self.assertTrue(org.has_fireplace)
        self.assertIn("fireplace", org.home_features)
        self.assertEqual(org.property_data["bedrooms"], 3)

    def test_property_lookup_requires_address(self):
        response = self.client.post("/api/property/lookup", json={}, headers=self.owner["headers"])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Address is required")


class HomeFeatureTests(unittest.TestCase):
    def test_merge_adds_and_removes(self):
        merged = merge_home_features(["pool", "yard"], {"hasFireplace": True, "hasPool": False})
        self.assertEqual(merged, ["yard", "fireplace"])
        self.assertEqual(merge_home_features(["yard"], {"hasPool": None}), ["yard"])


if __name__ == "__main__":
    unittest.main()
