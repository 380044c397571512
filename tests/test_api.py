"""
Test API endpoints end to end on the in-memory store.
"""

import pytest


@pytest.fixture
def users(alice, bob, khan, lee, admin):
    return {"alice": alice, "bob": bob, "khan": khan, "lee": lee, "admin": admin}


@pytest.fixture
def headers(users, login_headers):
    return {name: login_headers(p_email) for name, p_email in {
        "alice": "alice@campus.edu",
        "bob": "bob@campus.edu",
        "khan": "khan@campus.edu",
        "lee": "lee@campus.edu",
        "admin": "admin@campus.edu",
    }.items()}


def test_root_and_diagnostics(client, portal):
    assert client.get("/").status_code == 200
    body = client.get("/test").json()
    assert body["store"] == portal.store.name


def test_register_login_me(client):
    response = client.post("/api/auth/register", json={
        "name": "Dana", "email": "dana@campus.edu", "password": "pw123456", "role": "faculty",
    })
    assert response.status_code == 201
    assert "password_hash" not in response.json()
    assert client.post("/api/auth/register", json={
        "name": "Dana", "email": "dana@campus.edu", "password": "pw123456",
    }).status_code == 400
    assert client.post("/api/auth/login", json={"email": "dana@campus.edu", "password": "bad"}).status_code == 401

    token = client.post("/api/auth/login", json={"email": "dana@campus.edu", "password": "pw123456"}).json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert (me["name"], me["role"]) == ("Dana", "faculty")
    assert client.get("/api/auth/me").status_code == 401


def test_news_like_toggle(client, headers, users):
    created = client.post("/api/news", json={"title": "Hello", "body": "x"}, headers=headers["alice"])
    assert created.status_code == 201
    news_id = created.json()["id"]

    liked = client.post(f"/api/news/{news_id}/like", headers=headers["bob"]).json()
    assert liked["likes"] == 1
    assert liked["liked_by"][0]["name"] == "Bob"
    unliked = client.post(f"/api/news/{news_id}/like", headers=headers["bob"]).json()
    assert (unliked["likes"], unliked["liked_by"]) == (0, [])

    assert client.post(f"/api/news/{news_id}/like").status_code == 401
    assert client.post("/api/news/missing/like", headers=headers["bob"]).status_code == 404


def test_news_ownership(client, headers):
    news_id = client.post("/api/news", json={"title": "Hello", "body": "x"}, headers=headers["alice"]).json()["id"]
    assert client.put(f"/api/news/{news_id}", json={"title": "Nope"}, headers=headers["bob"]).status_code == 403
    assert client.delete(f"/api/news/{news_id}", headers=headers["bob"]).status_code == 403
    assert client.put(f"/api/news/{news_id}", json={"title": "Yes"}, headers=headers["alice"]).json()["title"] == "Yes"
    assert client.delete(f"/api/news/{news_id}", headers=headers["admin"]).status_code == 204
    assert client.get("/api/news").json() == []


def test_comment_requires_text(client, headers):
    news_id = client.post("/api/news", json={"title": "Hello", "body": "x"}, headers=headers["alice"]).json()["id"]
    assert client.post(f"/api/news/{news_id}/comment", json={"text": ""}, headers=headers["bob"]).status_code == 422
    commented = client.post(f"/api/news/{news_id}/comment", json={"text": "Nice"}, headers=headers["bob"]).json()
    assert commented["comments"][0]["author_name"] == "Bob"


def test_event_interest_and_share(client, headers, users):
    event_id = client.post("/api/events", json={"title": "AI Seminar", "date": "2025-12-20"},
                           headers=headers["khan"]).json()["id"]
    client.post(f"/api/events/{event_id}/interest", headers=headers["alice"])
    both = client.post(f"/api/events/{event_id}/interest", headers=headers["bob"]).json()
    assert [m["id"] for m in both["interested_by"]] == [users["alice"].id, users["bob"].id]
    assert both["interested"] == 2

    link = client.post(f"/api/events/{event_id}/share", headers=headers["alice"]).json()["link"]
    assert link == client.post(f"/api/events/{event_id}/share", headers=headers["bob"]).json()["link"]

    listed = client.get("/api/events", params={"department": "GENERAL"}).json()
    assert [e["id"] for e in listed] == [event_id]


def test_rooms(client, headers):
    assert client.post("/api/rooms", json={"name": "Lab", "building": "Eng"}, headers=headers["khan"]).status_code == 403
    room_id = client.post("/api/rooms", json={"name": "Lab", "building": "Eng"}, headers=headers["admin"]).json()["id"]
    assert client.put(f"/api/rooms/{room_id}/status", json={"status": "Occupied"},
                      headers=headers["alice"]).status_code == 403
    assert client.put(f"/api/rooms/{room_id}/status", json={"status": "Occupied"},
                      headers=headers["khan"]).json()["status"] == "Occupied"
    assert client.put(f"/api/rooms/{room_id}/status", json={"status": "Flooded"},
                      headers=headers["khan"]).status_code == 422
    favorite = client.post(f"/api/rooms/{room_id}/favorite", headers=headers["alice"]).json()
    assert favorite["favorites"] == 1


def test_menu(client, headers):
    assert client.post("/api/cafeteria/menu", json={"name": "Wrap", "price": 5.5},
                       headers=headers["khan"]).status_code == 403
    client.post("/api/cafeteria/menu", json={"name": "Wrap", "price": 5.5, "allergies": ["gluten"]},
                headers=headers["admin"])
    client.post("/api/cafeteria/menu", json={"name": "Soup", "price": 3}, headers=headers["admin"])
    names = [i["name"] for i in client.get("/api/cafeteria/menu", params={"allergy": "gluten"}).json()]
    assert names == ["Soup"]


def test_thesis_workflow(client, headers):
    slot = client.post("/api/thesis", json={"topic": "IoT Security"}, headers=headers["khan"])
    assert slot.status_code == 201
    slot_id = slot.json()["id"]

    request = client.post(f"/api/thesis/{slot_id}/request", json={"topic": "topic X", "group_members": []},
                          headers=headers["alice"])
    assert request.status_code == 201
    request_id = request.json()["id"]
    assert request.json()["status"] == "pending"

    status_url = f"/api/thesis/{slot_id}/requests/{request_id}/status"
    assert client.post(status_url, json={"status": "accepted"}, headers=headers["lee"]).status_code == 403
    accepted = client.post(status_url, json={"status": "accepted"}, headers=headers["khan"])
    assert accepted.json()["status"] == "accepted"
    again = client.post(status_url, json={"status": "rejected"}, headers=headers["khan"])
    assert again.status_code == 409

    assert client.post(f"/api/thesis/{slot_id}/toggle", headers=headers["alice"]).status_code == 403
    closed = client.post(f"/api/thesis/{slot_id}/toggle", headers=headers["khan"]).json()
    assert (closed["open"], closed["status"]) == (False, "closed")
    assert client.post(f"/api/thesis/{slot_id}/request", json={"topic": "late"},
                       headers=headers["bob"]).status_code == 409

    assert client.delete(f"/api/thesis/{slot_id}/requests/{request_id}", headers=headers["bob"]).status_code == 403
    assert client.delete(f"/api/thesis/{slot_id}/requests/{request_id}", headers=headers["khan"]).status_code == 204
    assert client.get("/api/thesis").json()[0]["requests"] == []


def test_unknown_thesis_slot(client, headers):
    assert client.post("/api/thesis/missing/toggle", headers=headers["khan"]).status_code == 404


@pytest.mark.parametrize("body", [
    {"name": "", "email": "", "password": ""},
    {"name": "Dana", "email": "not-an-email", "password": "pw123456"},
    {"name": "Dana", "email": "dana@campus.edu", "password": "12345"},
    {"name": "", "email": "dana@campus.edu", "password": "pw123456"},
])
def test_register_rejects_bad_input(client, body):
    assert client.post("/api/auth/register", json=body).status_code == 422
    assert client.post("/api/auth/login", json={"email": "dana@campus.edu", "password": "pw123456"}).status_code == 401


def test_profile(client, headers):
    profile = client.get("/api/auth/profile", headers=headers["alice"]).json()
    assert (profile["name"], profile["email"]) == ("Alice", "alice@campus.edu")
    assert "password_hash" not in profile

    updated = client.put("/api/auth/profile", json={"department": "CSE", "student_id": "2021-001", "role": "admin"},
                         headers=headers["alice"]).json()
    assert (updated["department"], updated["student_id"], updated["role"]) == ("CSE", "2021-001", "student")
    assert client.get("/api/auth/me", headers=headers["alice"]).json()["role"] == "student"

    assert client.get("/api/auth/profile").status_code == 401
    assert client.put("/api/auth/profile", json={"name": "x"}).status_code == 401
