"""
Shared helpers for the API tests.
"""

from __future__ import annotations

import os

os.environ.setdefault("USE_IN_MEMORY_BACKENDS", "1")

from fastapi.testclient import TestClient

from chorepulse.app import create_app
from chorepulse.auth import issue_token
from chorepulse.db import InMemoryDbClient, UserRecord
from chorepulse.dependencies import get_db_client

PASSWORD = "correct-horse"


class ApiTestMixin:
    """Fresh in-memory state plus a signed-up family owner for each test."""

    def setUp(self):
        self.app = create_app()
        self.client = TestClient(self.app)
        self.db = get_db_client()
        if isinstance(self.db, InMemoryDbClient):
            self.db.reset()
        self.owner = self.signup("owner@example.com", "Pat Owner", "The Owners")

    def tearDown(self):
        self.app.dependency_overrides.clear()

    def signup(self, email: str, name: str, family_name: str) -> dict:
        response = self.client.post(
            "/api/auth/signup",
            json={"email": email, "password": PASSWORD, "name": name, "familyName": family_name},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return {
            "id": body["user"]["id"],
            "org": body["organization"]["id"],
            "familyCode": body["organization"].get("currentFamilyCode"),
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    def add_member(self, name: str, role: str = "kid", pin: str = "1234", **extra) -> dict:
        payload = {"name": name, "role": role, **extra}
        if role in ("kid", "teen"):
            payload["pin"] = pin
        response = self.client.post("/api/users", json=payload, headers=self.owner["headers"])
        assert response.status_code == 201, response.text
        user = response.json()["user"]
        return {"id": user["id"], "username": user["username"], "headers": self.login_as(user["id"])}

    def login_as(self, user_id: str) -> dict:
        user = self.db.get(UserRecord, user_id)
        return {"Authorization": f"Bearer {issue_token(user)}"}

    def create_task(self, headers=None, **fields) -> dict:
        payload = {"name": "Dishes", "category": "cleaning", "frequency": "daily", "points": 10}
        payload.update(fields)
        response = self.client.post(
            "/api/tasks", json=payload, headers=headers or self.owner["headers"]
        )
        assert response.status_code == 201, response.text
        return response.json()["task"]
