# tests/test_tasks_api.py

from datetime import datetime, timedelta, timezone

from jose import jwt

import config


def create(client, headers, **fields):
    resp = client.post("/api/tasks", json=fields, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["task"]


def parse_ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_create_complete_delete_scenario(client, auth_headers):
    task = create(client, auth_headers, title="Write report", priority="high")
    assert task["status"] == "pending"
    assert task["priority"] == "high"
    assert task["completed"] is False

    resp = client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=auth_headers)
    assert resp.status_code == 200, resp.text

    fetched = client.get(f"/api/tasks/{task['id']}", headers=auth_headers).json()["task"]
    assert fetched["status"] == "completed"
    assert fetched["completed"] is True

    resp = client.delete(f"/api/tasks/{task['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["task"]["id"] == task["id"]

    resp = client.get(f"/api/tasks/{task['id']}", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Task not found"}


def test_create_then_get_round_trips_fields(client, auth_headers):
    due = "2026-11-01T12:30:00Z"
    task = create(
        client,
        auth_headers,
        title="  Plan sprint  ",
        description="Backlog grooming",
        status="in-progress",
        priority="low",
        dueDate=due,
    )

    fetched = client.get(f"/api/tasks/{task['id']}", headers=auth_headers).json()["task"]
    assert fetched["title"] == "Plan sprint"
    assert fetched["description"] == "Backlog grooming"
    assert fetched["status"] == "in-progress"
    assert fetched["priority"] == "low"
    assert parse_ts(fetched["dueDate"]) == parse_ts(due)
    assert {"id", "createdAt", "updatedAt", "ownerId"} <= set(fetched)


def test_create_reports_every_validation_error(client, auth_headers):
    resp = client.post(
        "/api/tasks",
        json={"title": "x" * 101, "description": "d" * 501, "status": "done", "priority": "urgent"},
        headers=auth_headers,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert set(body["details"]) == {
        "Title cannot exceed 100 characters",
        "Description cannot exceed 500 characters",
        "Invalid status value",
        "Invalid priority value",
    }
    assert client.get("/api/tasks", headers=auth_headers).json()["tasks"] == []


def test_blank_title_is_rejected(client, auth_headers):
    resp = client.post("/api/tasks", json={"title": "   "}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Title is required"]

    resp = client.post("/api/tasks", json={"description": "no title"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Title is required"]


def test_update_rejects_fields_outside_the_allowed_set(client, auth_headers):
    task = create(client, auth_headers, title="Keep owner")
    resp = client.put(f"/api/tasks/{task['id']}", json={"title": "New", "ownerId": 99}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid update fields"

    fetched = client.get(f"/api/tasks/{task['id']}", headers=auth_headers).json()["task"]
    assert fetched["title"] == "Keep owner"


def test_update_is_partial_and_can_clear_due_date(client, auth_headers):
    task = create(client, auth_headers, title="Dentist", priority="high", dueDate="2026-12-01T09:00:00Z")
    resp = client.put(f"/api/tasks/{task['id']}", json={"dueDate": None}, headers=auth_headers)
    updated = resp.json()["task"]
    assert updated["dueDate"] is None
    assert updated["priority"] == "high"
    assert updated["title"] == "Dentist"


def test_update_validates_values(client, auth_headers):
    task = create(client, auth_headers, title="Validate me")
    resp = client.put(f"/api/tasks/{task['id']}", json={"status": "archived"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Invalid status value"]


def test_other_users_tasks_are_invisible(client, make_user):
    alice = make_user()
    bob = make_user(name="Bob Example", email="bob@example.com")
    task = create(client, alice, title="Alice only")

    assert client.get(f"/api/tasks/{task['id']}", headers=bob).status_code == 404
    assert client.put(f"/api/tasks/{task['id']}", json={"title": "Hijacked"}, headers=bob).status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}", headers=bob).status_code == 404
    assert client.get("/api/tasks", headers=bob).json()["tasks"] == []

    still_there = client.get(f"/api/tasks/{task['id']}", headers=alice).json()["task"]
    assert still_there["title"] == "Alice only"


def test_list_filters_sorts_and_paginates(client, auth_headers):
    create(client, auth_headers, title="Low one", priority="low")
    create(client, auth_headers, title="High report", priority="high")
    create(client, auth_headers, title="Medium report", priority="medium", status="completed")
    create(client, auth_headers, title="High chore", priority="high")

    resp = client.get("/api/tasks", params={"sortBy": "priority", "sortOrder": "desc"}, headers=auth_headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["High chore", "High report", "Medium report", "Low one"]

    resp = client.get("/api/tasks", params={"search": "REPORT", "status": "pending"}, headers=auth_headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["High report"]

    resp = client.get(
        "/api/tasks", params={"sortBy": "title", "sortOrder": "asc", "page": 2, "limit": 3}, headers=auth_headers
    )
    body = resp.json()
    assert [t["title"] for t in body["tasks"]] == ["Medium report"]
    assert body["pagination"] == {
        "page": 2,
        "limit": 3,
        "totalCount": 4,
        "totalPages": 2,
        "hasNextPage": False,
        "hasPrevPage": True,
    }


def test_list_defaults_to_newest_first(client, auth_headers):
    for title in ("first", "second", "third"):
        create(client, auth_headers, title=title)
    resp = client.get("/api/tasks", headers=auth_headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["third", "second", "first"]


def test_list_rejects_unknown_sort_key(client, auth_headers):
    resp = client.get("/api/tasks", params={"sortBy": "ownerId"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["details"] == ["Invalid sortBy value"]


def test_requests_without_token_are_rejected(client):
    resp = client.get("/api/tasks")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Authentication token required"


def test_tampered_and_expired_tokens_are_rejected(client, auth_headers):
    token = auth_headers["Authorization"].split()[1]
    resp = client.get("/api/tasks", headers={"Authorization": f"Bearer {token}x"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid or expired token"

    claims = jwt.get_unverified_claims(token)
    claims["exp"] = datetime.now(timezone.utc) - timedelta(minutes=1)
    expired = jwt.encode(claims, config.SECRET_KEY, algorithm=config.ALGORITHM)
    resp = client.get("/api/tasks", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401


def test_invalid_task_id_is_a_validation_error(client, auth_headers):
    resp = client.get("/api/tasks/not-a-number", headers=auth_headers)
    assert resp.status_code == 400
