import hashlib
import hmac
import importlib
import os

import pytest
from fastapi.testclient import TestClient

from campus_library import database
from campus_library.config import settings

ADMIN = {"X-API-Key": settings.api_key}


@pytest.fixture
def api(tmp_path, request):
    # Per-test DB; reload api so its module-level Library() uses it
    db_file = str(tmp_path / f"api_test_{request.node.name}.db")
    os.environ["LIBRARY_DB_FILE"] = db_file
    previous = database.DATABASE_FILE

    import campus_library.api as api_module
    importlib.reload(api_module)
    try:
        yield api_module
    finally:
        os.environ.pop("LIBRARY_DB_FILE", None)
        database.DATABASE_FILE = previous


@pytest.fixture
def client(api):
    return TestClient(api.app)


@pytest.fixture
def member(api, client, user_values):
    response = client.post("/auth/sign-up", json=user_values)
    assert response.status_code == 201
    user_id = response.json()["data"]["id"]
    client.post(f"/users/{user_id}/status", json={"status": "APPROVED"}, headers=ADMIN)
    api.auth_limiter.reset()
    return user_id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["db"] is True


def test_imagekit_auth_signs_triple(client, monkeypatch):
    monkeypatch.setattr(settings, "imagekit_private_key", "private_test_key")
    response = client.get("/api/auth/imagekit")
    assert response.status_code == 200
    data = response.json()
    expected = hmac.new(b"private_test_key", f"{data['token']}{data['expire']}".encode(), hashlib.sha1).hexdigest()
    assert data["signature"] == expected


def test_imagekit_auth_without_key_is_plain_text_error(client, monkeypatch):
    monkeypatch.setattr(settings, "imagekit_private_key", None)
    response = client.get("/api/auth/imagekit")
    assert response.status_code == 500
    assert response.headers["content-type"].startswith("text/plain")


def test_render_form(client):
    response = client.get("/forms/sign-up")
    assert response.status_code == 200
    names = [field["name"] for field in response.json()["fields"]]
    assert names == ["fullName", "email", "universityId", "universityCard", "password"]
    assert client.get("/forms/nope").status_code == 404


def test_create_book_requires_api_key(client, book_values):
    response = client.post("/books", json=book_values, headers={"X-API-Key": "invalid-key"})
    assert response.status_code == 403


def test_book_lifecycle(client, book_values):
    response = client.post("/books", json=book_values, headers=ADMIN)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    book_id = body["data"]["id"]

    assert client.get(f"/books/{book_id}").json()["available_copies"] == 3
    assert [b["id"] for b in client.get("/books").json()] == [book_id]
    assert len(client.get("/books/search", params={"q": "haig"}).json()) == 1

    book_values["title"] = "The Midnight Library (Anniversary Edition)"
    response = client.put(f"/books/{book_id}", json=book_values, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["data"]["title"].endswith("(Anniversary Edition)")

    assert client.delete(f"/books/{book_id}", headers=ADMIN).status_code == 200
    assert client.get(f"/books/{book_id}").status_code == 404


def test_create_book_reports_field_errors(client, book_values):
    book_values["totalCopies"] = 0
    response = client.post("/books", json=book_values, headers=ADMIN)
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert "total_copies" in body["errors"]


def test_sign_in(client, member, user_values):
    ok = client.post("/auth/sign-in", json={"email": user_values["email"], "password": user_values["password"]})
    assert ok.status_code == 200
    assert ok.json()["success"] is True

    bad = client.post("/auth/sign-in", json={"email": user_values["email"], "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json() == {"success": False, "error": "Invalid email or password."}


def test_auth_is_rate_limited(api, client):
    api.auth_limiter.reset()
    payload = {"email": "nobody@university.edu", "password": "whatever-123"}
    statuses = [client.post("/auth/sign-in", json=payload).status_code for _ in range(settings.rate_limit_requests + 1)]
    assert statuses[-1] == 429
    assert set(statuses[:-1]) == {401}
    assert client.post("/auth/sign-in", json=payload).json()["detail"] == "Whoa, slow down there, speed racer!"


def test_borrow_flow(client, member, book_values):
    book_id = client.post("/books", json=book_values, headers=ADMIN).json()["data"]["id"]

    eligibility = client.get(f"/books/{book_id}/eligibility", params={"user_id": member}).json()
    assert eligibility == {"isEligible": True, "message": ""}

    response = client.post("/borrow", json={"userId": member, "bookId": book_id})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 2

    again = client.post("/borrow", json={"userId": member, "bookId": book_id})
    assert again.status_code == 400
    assert again.json() == {"success": False, "error": "You have already borrowed this book."}

    borrowed = client.get(f"/users/{member}/borrowed-books").json()
    assert [item["id"] for item in borrowed] == [book_id]

    returned = client.post("/return", json={"userId": member, "bookId": book_id})
    assert returned.json()["success"] is True
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 3


def test_pending_user_cannot_borrow(client, user_values, book_values):
    user_id = client.post("/auth/sign-up", json=user_values).json()["data"]["id"]
    book_id = client.post("/books", json=book_values, headers=ADMIN).json()["data"]["id"]
    response = client.post("/borrow", json={"userId": user_id, "bookId": book_id})
    assert response.json() == {"success": False, "error": "You are not eligible to borrow this book."}


def test_activity_touch(client, member):
    assert client.post(f"/users/{member}/activity").json() == {"updated": True}
    assert client.post(f"/users/{member}/activity").json() == {"updated": False}
    assert client.post("/users/missing/activity").status_code == 404
