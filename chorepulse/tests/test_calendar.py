import time
import unittest
from unittest import mock
from urllib.parse import parse_qs, urlparse

from chorepulse.calendar_sync import sync_all_calendars, sync_user_calendar
from chorepulse.config import Settings, get_settings
from chorepulse.db import (
    CalendarIntegrationRecord,
    InMemoryDbClient,
    TaskAssignmentRecord,
    TaskRecord,
    UserRecord,
)
from chorepulse.google_calendar import (
    SYNCED_PROPERTY,
    TASK_ID_PROPERTY,
    GoogleCalendarClient,
    GoogleCalendarError,
    TokenRefreshError,
    decode_state,
    encode_state,
    parse_due_time,
    recurrence_for,
    task_to_event,
)
from chorepulse.tests.support import ApiTestMixin


class FakeCalendarClient:
    def __init__(self, events=None, fail_inserts=False):
        self.events = list(events or [])
        self.inserted = []
        self.updated = []
        self.deleted = []
        self.fail_inserts = fail_inserts
        self.closed = False

    def get_or_create_calendar(self, name, timezone_name):
        return "chores-calendar"

    def list_events(self, calendar_id, **params):
        return self.events

    def insert_event(self, calendar_id, event):
        if self.fail_inserts:
            raise GoogleCalendarError("quota exceeded")
        self.inserted.append(event)
        return event

    def update_event(self, calendar_id, event_id, event):
        self.updated.append(event_id)
        return event

    def delete_event(self, calendar_id, event_id):
        self.deleted.append(event_id)

    def close(self):
        self.closed = True


def synced_event(event_id, task_id):
    return {
        "id": event_id,
        "extendedProperties": {"private": {TASK_ID_PROPERTY: task_id, SYNCED_PROPERTY: "true"}},
    }


class GoogleCalendarHelperTests(unittest.TestCase):
    def test_parse_due_time(self):
        self.assertEqual(parse_due_time("7:30 PM"), (19, 30))
        self.assertEqual(parse_due_time("12:15 am"), (0, 15))
        self.assertEqual(parse_due_time("12:00 PM"), (12, 0))
        self.assertEqual(parse_due_time("12:00"), (12, 0))
        self.assertEqual(parse_due_time("06:05"), (6, 5))
        self.assertEqual(parse_due_time(None), (9, 0))
        self.assertEqual(parse_due_time("soon"), (9, 0))
        self.assertEqual(parse_due_time("ab:cd"), (9, 0))

    def test_recurrence(self):
        self.assertEqual(recurrence_for("daily", None), ["RRULE:FREQ=DAILY;INTERVAL=1"])
        self.assertEqual(recurrence_for("weekly", 2), ["RRULE:FREQ=WEEKLY;INTERVAL=2"])
        self.assertEqual(recurrence_for("monthly", 3), ["RRULE:FREQ=MONTHLY"])
        self.assertIsNone(recurrence_for("once", None))

    def test_task_to_event(self):
        event = task_to_event(
            {
                "id": "t1",
                "name": "Feed cat",
                "category": "pets",
                "points": 5,
                "frequency": "daily",
                "due_time": "5:45 PM",
                "assigned_to_names": ["Sam", "Alex"],
            },
            app_url="https://app.example.com/",
            timezone_name="America/Chicago",
        )
        self.assertEqual(event["summary"], "Feed cat (Sam, Alex)")
        self.assertIn("Points: 5", event["description"])
        self.assertIn("https://app.example.com/tasks", event["description"])
        self.assertIn("T17:45:00", event["start"]["dateTime"])
        self.assertIn("T18:45:00", event["end"]["dateTime"])
        self.assertEqual(event["extendedProperties"]["private"][TASK_ID_PROPERTY], "t1")
        self.assertEqual(event["recurrence"], ["RRULE:FREQ=DAILY;INTERVAL=1"])

    def test_unassigned_task_event(self):
        event = task_to_event(
            {"id": "t2", "name": "Mow", "frequency": "once"},
            app_url="https://app.example.com",
            timezone_name="UTC",
        )
        self.assertEqual(event["summary"], "Mow (Unassigned)")
        self.assertNotIn("recurrence", event)

    def test_client_closes_only_its_own_session(self):
        with mock.patch("chorepulse.google_calendar.requests.Session") as session_cls:
            GoogleCalendarClient("token").close()
        session_cls.return_value.close.assert_called_once_with()

        shared = mock.Mock(headers={})
        GoogleCalendarClient("token", session=shared).close()
        shared.close.assert_not_called()
        self.assertEqual(shared.headers["Authorization"], "Bearer token")

    def test_state_round_trip_and_garbage(self):
        state = encode_state({"userId": "u1", "returnUrl": "/x?y=1"})
        self.assertEqual(decode_state(state)["userId"], "u1")
        with self.assertRaises(ValueError):
            decode_state("bm90IGpzb24=")


class CalendarSyncTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.settings = Settings(google_client_id="id", google_client_secret="secret")
        self.user = self.db.insert(UserRecord(organization_id="org1", name="Sam", username="sam", role="kid"))
        self.task = self.db.insert(
            TaskRecord(
                organization_id="org1",
                name="Dishes",
                category="cleaning",
                frequency="daily",
                points=10,
            )
        )
        self.db.insert(TaskAssignmentRecord(task_id=self.task.id, user_id=self.user.id))
        self.integration = self.db.insert(
            CalendarIntegrationRecord(
                user_id=self.user.id,
                organization_id="org1",
                access_token="token",
                refresh_token="refresh",
                token_expiry=time.time() + 600,
            )
        )

    def sync(self, client):
        return sync_user_calendar(
            self.db, self.user.id, settings=self.settings, client_factory=lambda token: client
        )

    def test_inserts_new_and_removes_stale_events(self):
        client = FakeCalendarClient(events=[synced_event("ev-old", "deleted-task")])
        result = self.sync(client)
        self.assertTrue(result.success)
        self.assertEqual(result.synced_count, 1)
        self.assertEqual(client.inserted[0]["summary"], "Dishes (Sam)")
        self.assertEqual(client.deleted, ["ev-old"])
        stored = self.db.get(CalendarIntegrationRecord, self.integration.id)
        self.assertEqual(stored.last_sync_status, "success")
        self.assertTrue(client.closed)

    def test_updates_existing_event(self):
        client = FakeCalendarClient(events=[synced_event("ev-1", self.task.id)])
        self.sync(client)
        self.assertEqual(client.updated, ["ev-1"])
        self.assertEqual(client.inserted, [])

    def test_failed_event_is_not_counted(self):
        result = self.sync(FakeCalendarClient(fail_inserts=True))
        self.assertTrue(result.success)
        self.assertEqual(result.synced_count, 0)

    def test_disabled_integration_is_a_no_op(self):
        self.db.update(CalendarIntegrationRecord, self.integration.id, sync_enabled=False)
        client = FakeCalendarClient()
        result = self.sync(client)
        self.assertTrue(result.success)
        self.assertEqual(client.inserted, [])

    def test_expired_token_is_refreshed(self):
        self.db.update(CalendarIntegrationRecord, self.integration.id, token_expiry=time.time() - 5)
        seen = []
        with mock.patch(
            "chorepulse.calendar_sync.refresh_access_token",
            return_value=("fresh", time.time() + 3600),
        ):
            sync_user_calendar(
                self.db,
                self.user.id,
                settings=self.settings,
                client_factory=lambda token: seen.append(token) or FakeCalendarClient(),
            )
        self.assertEqual(seen, ["fresh"])
        self.assertEqual(
            self.db.get(CalendarIntegrationRecord, self.integration.id).access_token, "fresh"
        )

    def test_refresh_failure_is_recorded(self):
        self.db.update(CalendarIntegrationRecord, self.integration.id, token_expiry=time.time() - 5)
        with mock.patch(
            "chorepulse.calendar_sync.refresh_access_token",
            side_effect=TokenRefreshError("revoked"),
        ):
            result = self.sync(FakeCalendarClient())
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Failed to refresh access token")
        stored = self.db.get(CalendarIntegrationRecord, self.integration.id)
        self.assertEqual(stored.last_sync_status, "error")

    def test_missing_expiry_is_treated_as_expired(self):
        self.db.update(CalendarIntegrationRecord, self.integration.id, token_expiry=None)
        with mock.patch(
            "chorepulse.calendar_sync.refresh_access_token",
            return_value=("fresh", time.time() + 3600),
        ) as refresh:
            result = self.sync(FakeCalendarClient())
        self.assertTrue(result.success)
        refresh.assert_called_once_with("refresh", "id", "secret")
        stored = self.db.get(CalendarIntegrationRecord, self.integration.id)
        self.assertEqual(stored.access_token, "fresh")

    def test_client_is_closed_when_listing_fails(self):
        client = FakeCalendarClient()
        client.list_events = mock.Mock(side_effect=GoogleCalendarError("boom"))
        result = self.sync(client)
        self.assertFalse(result.success)
        self.assertTrue(client.closed)

    def test_sync_all_summary(self):
        summary = sync_all_calendars(
            self.db, settings=self.settings, client_factory=lambda token: FakeCalendarClient()
        )
        self.assertEqual(summary["totalUsers"], 1)
        self.assertEqual(summary["message"], "Synced calendars for 1 users (0 failed)")


class CalendarApiTests(ApiTestMixin, unittest.TestCase):
    def setUp(self):
        super().setUp()
        self.settings = Settings(
            google_client_id="client-id",
            google_client_secret="client-secret",
            app_url="https://app.example.com",
            cron_secret="cron-secret",
        )
        self.app.dependency_overrides[get_settings] = lambda: self.settings

    def connect_integration(self, **fields):
        values = {
            "user_id": self.owner["id"],
            "organization_id": self.owner["org"],
            "access_token": "token",
            "token_expiry": time.time() + 600,
        }
        values.update(fields)
        return self.db.insert(CalendarIntegrationRecord(**values))

    def test_connect_builds_consent_url(self):
        response = self.client.get(
            "/api/integrations/google-calendar/connect", headers=self.owner["headers"]
        )
        query = parse_qs(urlparse(response.json()["authUrl"]).query)
        self.assertEqual(query["client_id"], ["client-id"])
        self.assertEqual(query["access_type"], ["offline"])
        state = decode_state(query["state"][0])
        self.assertEqual(state["userId"], self.owner["id"])
        self.assertEqual(state["returnUrl"], "/settings?tab=integrations")

    def test_connect_without_credentials(self):
        self.settings = Settings()
        response = self.client.get(
            "/api/integrations/google-calendar/connect", headers=self.owner["headers"]
        )
        self.assertEqual(response.status_code, 500)

    def callback(self, headers=None, **params):
        return self.client.get(
            "/api/integrations/google-calendar/callback",
            params=params,
            headers=headers or self.owner["headers"],
            follow_redirects=False,
        )

    def test_callback_stores_tokens(self):
        state = encode_state({"userId": self.owner["id"], "returnUrl": "/settings?tab=integrations"})
        with mock.patch(
            "chorepulse.routes.calendar.exchange_code",
            return_value={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
        ), mock.patch(
            "chorepulse.routes.calendar.fetch_user_email", return_value="pat@gmail.com"
        ):
            response = self.callback(code="abc", state=state)
        self.assertEqual(response.status_code, 307)
        self.assertEqual(
            response.headers["location"],
            "https://app.example.com/settings?tab=integrations&success=calendar_connected",
        )
        stored = self.db.find_one(CalendarIntegrationRecord, user_id=self.owner["id"])
        self.assertEqual((stored.access_token, stored.email), ("at", "pat@gmail.com"))

    def test_callback_errors(self):
        other = self.signup("other@example.com", "Other", "Others")
        foreign_state = encode_state({"userId": other["id"]})
        cases = [
            ({"error": "access_denied"}, "oauth_failed"),
            ({"code": "abc"}, "invalid_callback"),
            ({"code": "abc", "state": "%%%"}, "invalid_callback"),
            ({"code": "abc", "state": foreign_state}, "unauthorized"),
        ]
        for params, error in cases:
            response = self.callback(**params)
            self.assertTrue(response.headers["location"].endswith(f"&error={error}"), params)

    def test_callback_token_exchange_failure(self):
        state = encode_state({"userId": self.owner["id"]})
        with mock.patch(
            "chorepulse.routes.calendar.exchange_code", side_effect=GoogleCalendarError("bad code")
        ):
            response = self.callback(code="abc", state=state)
        self.assertTrue(response.headers["location"].endswith("&error=token_exchange_failed"))

    def test_status_update_and_disconnect(self):
        path = "/api/integrations/google-calendar"
        self.assertFalse(self.client.get(path, headers=self.owner["headers"]).json()["connected"])
        missing = self.client.patch(path, json={"syncEnabled": False}, headers=self.owner["headers"])
        self.assertEqual(missing.status_code, 404)

        self.connect_integration(refresh_token="secret-refresh")
        status = self.client.get(path, headers=self.owner["headers"]).json()
        self.assertTrue(status["connected"])
        self.assertNotIn("accessToken", status["integration"])
        self.assertNotIn("refreshToken", status["integration"])

        empty = self.client.patch(path, json={}, headers=self.owner["headers"])
        self.assertEqual(empty.json()["detail"], "No settings provided to update")
        renamed = self.client.patch(
            path, json={"calendarName": "Family Jobs"}, headers=self.owner["headers"]
        )
        self.assertEqual(renamed.json()["integration"]["calendarName"], "Family Jobs")

        self.client.delete(path, headers=self.owner["headers"])
        self.assertIsNone(self.db.find_one(CalendarIntegrationRecord, user_id=self.owner["id"]))

    def test_events_filter_out_synced_tasks(self):
        self.connect_integration()
        events = [
            {
                "id": "e1",
                "summary": "Dentist",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "end": {"dateTime": "2026-03-02T11:00:00Z"},
            },
            {"id": "e2", "start": {"date": "2026-03-03"}, "end": {"date": "2026-03-04"}},
            synced_event("e3", "task-1"),
        ]
        with mock.patch("chorepulse.routes.calendar.GoogleCalendarClient") as client_cls:
            client_cls.return_value.list_events.return_value = events
            response = self.client.get(
                "/api/integrations/google-calendar/events",
                params={"start": "2026-03-01T00:00:00Z", "end": "2026-03-08"},
                headers=self.owner["headers"],
            )
        body = response.json()
        self.assertEqual(body["count"], 2)
        self.assertEqual(body["events"][1]["summary"], "Untitled Event")
        self.assertTrue(body["events"][1]["isAllDay"])
        kwargs = client_cls.return_value.list_events.call_args.kwargs
        self.assertEqual(kwargs["timeMin"], "2026-03-01T00:00:00+00:00")
        client_cls.return_value.close.assert_called_once_with()

    def test_events_errors(self):
        path = "/api/integrations/google-calendar/events"
        self.assertEqual(self.client.get(path, headers=self.owner["headers"]).status_code, 404)
        self.connect_integration(token_expiry=time.time() - 5)
        bad = self.client.get(path, params={"start": "yesterday"}, headers=self.owner["headers"])
        self.assertEqual(bad.json()["detail"], "Invalid date: yesterday")
        with mock.patch(
            "chorepulse.calendar_sync.refresh_access_token", side_effect=TokenRefreshError("x")
        ):
            expired = self.client.get(path, headers=self.owner["headers"])
        self.assertEqual(expired.status_code, 401)

    def test_manual_sync_reports_failure(self):
        self.connect_integration(token_expiry=time.time() - 5)
        with mock.patch(
            "chorepulse.calendar_sync.refresh_access_token", side_effect=TokenRefreshError("x")
        ):
            response = self.client.post(
                "/api/integrations/google-calendar/sync", headers=self.owner["headers"]
            )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Failed to refresh access token")

    def test_cron_requires_secret(self):
        path = "/api/cron/calendar-sync"
        self.assertEqual(self.client.get(path).status_code, 401)
        wrong = self.client.get(path, headers={"Authorization": "Bearer nope"})
        self.assertEqual(wrong.status_code, 401)
        ok = self.client.get(path, headers={"Authorization": "Bearer cron-secret"})
        self.assertEqual(ok.json()["totalUsers"], 0)


if __name__ == "__main__":
    unittest.main()
