"""
Tests for the GET /api/submissions endpoint.

Tests cover:
- Newest-first ordering
- Verbatim round-trip of the message text
- Unknown names yield an empty list
- Missing/empty name parameter (400)
- Isolation between users
"""

import inspect

from app import main as main_module
from conftest import VALID_MESSAGE, submit


class TestListSubmissions:

    def test_unknown_name_returns_empty_list(self, client):
        response = client.get("/api/submissions", params={"name": "Nobody"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"submissions": []}}

    def test_submit_then_list_round_trip(self, client):
        submit_response = submit(client, name="Ann", subject="Общий запрос")
        submission_id = submit_response.json()["data"]["id"]

        response = client.get("/api/submissions", params={"name": "Ann"})

        assert response.status_code == 200
        submissions = response.json()["data"]["submissions"]
        assert len(submissions) == 1
        entry = submissions[0]
        assert entry["id"] == submission_id
        assert entry["user_name"] == "Ann"
        assert entry["email"] == "ann@x.com"
        assert entry["subject"] == "Общий запрос"
        assert entry["message"] == VALID_MESSAGE
        assert entry["created_at"].endswith("Z")

    def test_message_not_trimmed(self, client):
        message = "   " + "x" * 60 + "\n\n  "
        submit(client, message=message)

        response = client.get("/api/submissions", params={"name": "Ann"})

        assert response.json()["data"]["submissions"][0]["message"] == message

    def test_newest_first(self, client):
        ids = [submit(client, message=f"{i} " + VALID_MESSAGE).json()["data"]["id"] for i in range(3)]

        response = client.get("/api/submissions", params={"name": "Ann"})

        listed = [s["id"] for s in response.json()["data"]["submissions"]]
        assert listed == list(reversed(ids))

    def test_new_submission_appears_at_index_zero(self, client):
        submit(client)
        new_id = submit(client, subject="Запрос функции").json()["data"]["id"]

        response = client.get("/api/submissions", params={"name": "Ann"})

        first = response.json()["data"]["submissions"][0]
        assert first["id"] == new_id
        assert first["subject"] == "Запрос функции"

    def test_only_own_submissions(self, client):
        submit(client, name="Ann")
        submit(client, name="Bob")

        response = client.get("/api/submissions", params={"name": "Bob"})

        submissions = response.json()["data"]["submissions"]
        assert len(submissions) == 1
        assert submissions[0]["user_name"] == "Bob"

    def test_missing_name_parameter(self, client):
        response = client.get("/api/submissions")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Параметр name обязателен"

    def test_empty_name_parameter(self, client):
        response = client.get("/api/submissions", params={"name": ""})

        assert response.status_code == 400
        assert response.json()["error"] == "Некорректные данные: Имя пользователя обязательно"

    def test_listing_runs_in_threadpool(self):
        # Plain def keeps blocking DB reads off the event loop
        assert not inspect.iscoroutinefunction(main_module.get_submissions)
        assert not inspect.iscoroutinefunction(main_module.get_ai_usage)

    def test_email_returned_as_typed(self, client):
        submit(client, email="Ann.Smith@X.COM")

        response = client.get("/api/submissions", params={"name": "Ann"})

        assert response.json()["data"]["submissions"][0]["email"] == "Ann.Smith@X.COM"
