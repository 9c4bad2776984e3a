import unittest

from chorepulse.db import UserRecord
from chorepulse.tests.support import PASSWORD, ApiTestMixin


class AuthApiTests(ApiTestMixin, unittest.TestCase):
    def test_signup_creates_owner_and_family(self):
        response = self.client.get("/api/auth/user", headers=self.owner["headers"])
        self.assertEqual(response.status_code, 200)
        user = response.json()["user"]
        self.assertTrue(user["isAccountOwner"])
        self.assertEqual(user["role"], "adult")
        self.assertNotIn("passwordHash", user)
        self.assertEqual(len(self.owner["familyCode"]), 6)

    def test_signup_rejects_short_password_and_duplicate_email(self):
        short = self.client.post(
            "/api/auth/signup",
            json={"email": "a@b.com", "password": "short", "name": "A", "familyName": "B"},
        )
        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.json()["detail"], "Password must be at least 8 characters long")

        duplicate = self.client.post(
            "/api/auth/signup",
            json={
                "email": "OWNER@example.com",
                "password": PASSWORD,
                "name": "Again",
                "familyName": "Again",
            },
        )
        self.assertEqual(duplicate.status_code, 400)

    def test_signin(self):
        ok = self.client.post(
            "/api/auth/signin", json={"email": "owner@example.com", "password": PASSWORD}
        )
        self.assertEqual(ok.status_code, 200)
        self.assertIn("chorepulse_session=", ok.headers["set-cookie"])

        bad = self.client.post(
            "/api/auth/signin", json={"email": "owner@example.com", "password": "nope-nope"}
        )
        self.assertEqual(bad.status_code, 401)
        self.assertEqual(bad.json()["detail"], "Invalid email or password")

    def test_signout_clears_session_cookie(self):
        response = self.client.post("/api/auth/signout")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        cookie = response.headers["set-cookie"]
        self.assertTrue(cookie.startswith("chorepulse_session="))
        self.assertIn("Max-Age=0", cookie)

    def test_pin_login_with_family_code(self):
        kid = self.add_member("Sam Kid", role="kid", pin="4321")
        ok = self.client.post(
            "/api/auth/pin-login",
            json={"familyCode": self.owner["familyCode"], "username": kid["username"], "pin": "4321"},
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["user"]["id"], kid["id"])

        wrong = self.client.post(
            "/api/auth/pin-login",
            json={"familyCode": self.owner["familyCode"], "username": kid["username"], "pin": "0000"},
        )
        self.assertEqual(wrong.status_code, 401)

    def test_unauthenticated_and_deleted_user(self):
        self.client.cookies.clear()
        self.assertEqual(self.client.get("/api/auth/user").status_code, 401)

        kid = self.add_member("Gone Kid")
        self.db.delete(UserRecord, kid["id"])
        response = self.client.get("/api/auth/user", headers=kid["headers"])
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "User not found")


if __name__ == "__main__":
    unittest.main()
