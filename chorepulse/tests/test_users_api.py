import json
import time
import unittest
from unittest import mock

from chorepulse.db import TaskCompletionRecord, UserRecord
from chorepulse.tests.support import PASSWORD, ApiTestMixin


class UsersApiTests(ApiTestMixin, unittest.TestCase):
    def test_create_member_validation(self):
        cases = [
            ({"name": "A"}, "Name and role are required"),
            ({"name": "A", "role": "pirate"}, "Role must be adult, teen or kid"),
            ({"name": "A", "role": "adult"}, "Email is required for adult members"),
            ({"name": "A", "role": "kid", "pin": "12"}, "4-digit PIN is required for kids and teens"),
            (
                {"name": "A", "role": "adult", "email": "owner@example.com"},
                "An account with this email already exists",
            ),
        ]
        for payload, message in cases:
            response = self.client.post("/api/users", json=payload, headers=self.owner["headers"])
            self.assertEqual(response.status_code, 400, payload)
            self.assertEqual(response.json()["detail"], message)

    def test_kids_cannot_add_members(self):
        kid = self.add_member("Sam Kid")
        response = self.client.post(
            "/api/users", json={"name": "B", "role": "kid", "pin": "1111"}, headers=kid["headers"]
        )
        self.assertEqual(response.status_code, 403)

    def test_adult_invitation_round_trip(self):
        response = self.client.post(
            "/api/users",
            json={"name": "Jo Parent", "role": "adult", "email": "Jo@Example.com"},
            headers=self.owner["headers"],
        )
        self.assertEqual(response.status_code, 201)
        invitee = self.db.get(UserRecord, response.json()["user"]["id"])
        self.assertEqual(invitee.invitation_status, "pending")
        self.assertEqual(invitee.email, "jo@example.com")

        verify = self.client.get(
            "/api/invitations/verify",
            params={"token": invitee.invitation_token, "org": self.owner["org"]},
        )
        self.assertEqual(verify.json()["inviterName"], "Pat Owner")

        accepted = self.client.post(
            "/api/invitations/accept",
            json={"token": invitee.invitation_token, "orgId": self.owner["org"], "password": PASSWORD},
        )
        self.assertEqual(accepted.status_code, 200)
        again = self.client.post(
            "/api/invitations/accept",
            json={"token": invitee.invitation_token, "orgId": self.owner["org"], "password": PASSWORD},
        )
        self.assertEqual(again.status_code, 404)

        signin = self.client.post(
            "/api/auth/signin", json={"email": "jo@example.com", "password": PASSWORD}
        )
        self.assertEqual(signin.status_code, 200)

    def test_expired_invitation(self):
        response = self.client.post(
            "/api/users",
            json={"name": "Late", "role": "adult", "email": "late@example.com"},
            headers=self.owner["headers"],
        )
        invitee_id = response.json()["user"]["id"]
        self.db.update(UserRecord, invitee_id, invitation_token_expiry=time.time() - 1)
        token = self.db.get(UserRecord, invitee_id).invitation_token
        verify = self.client.get(
            "/api/invitations/verify", params={"token": token, "org": self.owner["org"]}
        )
        self.assertEqual(verify.status_code, 400)
        self.assertEqual(verify.json()["detail"], "This invitation has expired")

    def test_coppa_consent_recorded_and_emailed(self):
        with mock.patch("chorepulse.routes.users.send_parental_consent_email") as send:
            response = self.client.post(
                "/api/users",
                json={
                    "name": "Tiny",
                    "role": "kid",
                    "pin": "2468",
                    "birthday": "2020-01-15",
                    "parentConsent": True,
                },
                headers={**self.owner["headers"], "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
            )
        self.assertEqual(response.status_code, 201)
        kid = self.db.get(UserRecord, response.json()["user"]["id"])
        self.assertTrue(kid.coppa_consent_given)
        self.assertEqual(kid.coppa_consent_ip, "203.0.113.9")
        self.assertEqual(kid.coppa_consent_parent_email, "owner@example.com")
        send.assert_called_once()
        self.assertEqual(send.call_args.kwargs["child_name"], "Tiny")

    def test_list_members_with_stats(self):
        kid = self.add_member("Sam Kid")
        self.db.insert(TaskCompletionRecord(task_id="t1", user_id=kid["id"]))
        users = self.client.get("/api/users", headers=self.owner["headers"]).json()["users"]
        by_id = {u["id"]: u for u in users}
        self.assertEqual(by_id[kid["id"]]["tasksCompleted"], 1)
        self.assertEqual(by_id[kid["id"]]["currentStreak"], 1)
        self.assertTrue(by_id[kid["id"]]["hasPin"])
        self.assertTrue(by_id[self.owner["id"]]["canManageTasks"])

    def test_role_change_needs_owner(self):
        manager = self.add_member("Max", role="adult", email="max@example.com", isFamilyManager=True)
        kid = self.add_member("Sam Kid")
        by_manager = self.client.patch(
            f"/api/users/{kid['id']}", json={"role": "teen"}, headers=manager["headers"]
        )
        self.assertEqual(by_manager.status_code, 403)
        self.assertEqual(by_manager.json()["detail"], "Only account owners can change roles")

        renamed = self.client.patch(
            f"/api/users/{kid['id']}", json={"name": "Samantha"}, headers=manager["headers"]
        )
        self.assertEqual(renamed.json()["user"]["name"], "Samantha")

        by_owner = self.client.patch(
            f"/api/users/{kid['id']}", json={"role": "teen"}, headers=self.owner["headers"]
        )
        self.assertEqual(by_owner.json()["user"]["role"], "teen")

    def test_update_outside_family(self):
        outsider = self.signup("other@example.com", "Other", "Others")
        foreign = self.client.patch(
            f"/api/users/{outsider['id']}", json={"name": "Hijacked"}, headers=self.owner["headers"]
        )
        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(foreign.json()["detail"], "Cannot update users from other organizations")

        missing = self.client.patch(
            "/api/users/no-such-user", json={"name": "Ghost"}, headers=self.owner["headers"]
        )
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["detail"], "Target user not found")

    def test_delete_rules(self):
        kid = self.add_member("Sam Kid")
        own = self.client.delete(f"/api/users/{self.owner['id']}", headers=self.owner["headers"])
        self.assertEqual(own.json()["detail"], "Cannot delete your own account")

        by_kid = self.client.delete(f"/api/users/{kid['id']}", headers=kid["headers"])
        self.assertEqual(by_kid.status_code, 403)

        outsider = self.signup("other@example.com", "Other", "Others")
        foreign = self.client.delete(f"/api/users/{outsider['id']}", headers=self.owner["headers"])
        self.assertEqual(foreign.status_code, 403)

        self.db.insert(TaskCompletionRecord(task_id="t1", user_id=kid["id"]))
        deleted = self.client.delete(f"/api/users/{kid['id']}", headers=self.owner["headers"])
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.db.count(TaskCompletionRecord, user_id=kid["id"]), 0)

    def test_delete_co_owner_and_last_owner_guard(self):
        co_owner = self.db.insert(
            UserRecord(
                organization_id=self.owner["org"],
                name="Jo Owner",
                username="jo",
                role="adult",
                is_account_owner=True,
            )
        )
        # Another request demoted every other owner between the checks.
        with mock.patch.object(self.db, "count", return_value=1):
            blocked = self.client.delete(f"/api/users/{co_owner.id}", headers=self.owner["headers"])
        self.assertEqual(blocked.status_code, 400)
        self.assertEqual(blocked.json()["detail"], "Cannot delete the last account owner")
        self.assertIsNotNone(self.db.get(UserRecord, co_owner.id))

        removed = self.client.delete(f"/api/users/{co_owner.id}", headers=self.owner["headers"])
        self.assertEqual(removed.status_code, 200)
        self.assertIsNone(self.db.get(UserRecord, co_owner.id))

    def test_pin_updates(self):
        kid = self.add_member("Sam Kid")
        teen = self.add_member("Alex Teen", role="teen", pin="1111")

        by_kid = self.client.patch(
            f"/api/users/{kid['id']}/pin", json={"pin": "9999"}, headers=kid["headers"]
        )
        self.assertEqual(by_kid.status_code, 403)

        short = self.client.patch(
            f"/api/users/{teen['id']}/pin", json={"pin": "99"}, headers=teen["headers"]
        )
        self.assertEqual(short.json()["detail"], "PIN must be exactly 4 digits")
        for pin in ("1234\n", "\u0661\u0662\u0663\u0664", "12a4"):
            rejected = self.client.patch(
                f"/api/users/{teen['id']}/pin", json={"pin": pin}, headers=teen["headers"]
            )
            self.assertEqual(rejected.status_code, 400, pin)

        ok = self.client.patch(
            f"/api/users/{kid['id']}/pin", json={"pin": "8888"}, headers=self.owner["headers"]
        )
        self.assertEqual(ok.json()["message"], "PIN updated successfully")
        login = self.client.post(
            "/api/auth/pin-login",
            json={"familyCode": self.owner["familyCode"], "username": kid["username"], "pin": "8888"},
        )
        self.assertEqual(login.status_code, 200)

    def test_profile_and_export(self):
        me = self.client.get("/api/users/me", headers=self.owner["headers"]).json()["user"]
        self.assertTrue(me["isAccountOwner"])
        self.assertIsNone(me["age"])

        export = self.client.get("/api/users/export", headers=self.owner["headers"])
        self.assertEqual(export.status_code, 200)
        self.assertIn("attachment; filename=\"chorepulse-data-export-", export.headers["content-disposition"])
        document = json.loads(export.content)
        self.assertEqual(document["exportType"], "GDPR Data Export")
        self.assertEqual(document["organization"]["name"], "The Owners")
        self.assertNotIn("passwordHash", document["user"])


class HubApiTests(ApiTestMixin, unittest.TestCase):
    def test_hub_settings_default_and_save(self):
        defaults = self.client.get("/api/hub/settings", headers=self.owner["headers"]).json()
        self.assertEqual(defaults["settings"]["theme"], "light")
        saved = self.client.post(
            "/api/hub/settings", json={"theme": "dark"}, headers=self.owner["headers"]
        )
        self.assertEqual(saved.status_code, 200)
        again = self.client.get("/api/hub/settings", headers=self.owner["headers"]).json()
        self.assertEqual(again["settings"], {"theme": "dark"})

    def test_family_stats(self):
        kid = self.add_member("Sam Kid")
        done = self.create_task(points=5, assignTo=[kid["id"]])
        self.create_task(name="Later", assignTo=[kid["id"]])
        self.client.post(f"/api/tasks/{done['id']}/complete", json={}, headers=kid["headers"])

        stats = self.client.get("/api/family/stats", headers=kid["headers"]).json()["stats"]
        self.assertEqual(stats["totalTasks"], 2)
        self.assertEqual(stats["completedToday"], 1)
        self.assertEqual(stats["completionRate"], 50)
        self.assertEqual(stats["totalActivePoints"], 5)

    def test_family_stats_completion_rate_rounds_half_up(self):
        kid = self.add_member("Sam Kid")
        done = self.create_task(assignTo=[kid["id"]])
        for n in range(7):
            self.create_task(name=f"Chore {n}", assignTo=[kid["id"]])
        self.client.post(f"/api/tasks/{done['id']}/complete", json={}, headers=kid["headers"])

        stats = self.client.get("/api/family/stats", headers=kid["headers"]).json()["stats"]
        self.assertEqual(stats["totalTasks"], 8)
        # 1 / 8 = 12.5%
        self.assertEqual(stats["completionRate"], 13)


if __name__ == "__main__":
    unittest.main()
