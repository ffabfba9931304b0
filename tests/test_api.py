import pytest
from flask import abort

from conftest import DATES, bearer, make_book, make_user


def borrow(client, token, book_id):
    return client.post(
        "/student/borrow-requests", json={"book_id": book_id}, headers=bearer(token)
    )


def set_status(client, token, request_id, status, **extra):
    return client.patch(
        f"/admin/requests/{request_id}",
        json={"status": status, **extra},
        headers=bearer(token),
    )


# ----------------------------
# Auth
# ----------------------------
def test_register_login_and_me(app):
    client = app.test_client()

    resp = client.post("/auth/register", json={
        "name": "Grace Hopper",
        "email": "grace@example.com",
        "password": "cobol1959",
        "department": "Navy",
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["roles"] == ["student"]
    assert body["profile"]["department"] == "Navy"
    assert body["token"]

    resp = client.post("/auth/login", json={"email": "grace@example.com", "password": "nope"})
    assert resp.status_code == 401

    resp = client.post("/auth/login", json={"email": "grace@example.com", "password": "cobol1959"})
    assert resp.status_code == 200

    # logged into the session as well
    assert client.get("/auth/me").get_json()["email"] == "grace@example.com"

    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401


def test_profile_is_own_row(app, client, student):
    _, token = student

    resp = client.patch("/auth/profile", json={"roll_no": "R-7", "year": "3"}, headers=bearer(token))
    assert resp.status_code == 200
    assert resp.get_json()["roll_no"] == "R-7"
    assert resp.get_json()["year"] == 3

    resp = client.patch("/auth/profile", json={"name": "x"}, headers=bearer(token))
    assert resp.status_code == 400


def test_role_self_service(app, client, student):
    _, token = student

    resp = client.post("/auth/roles", json={"role": "admin"}, headers=bearer(token))
    assert resp.status_code == 403

    resp = client.post("/auth/roles", json={"role": "student"}, headers=bearer(token))
    assert resp.status_code == 200
    assert resp.get_json()["created"] is False

    roles = client.get("/auth/roles", headers=bearer(token)).get_json()
    assert [r["role"] for r in roles] == ["student"]


# ----------------------------
# Books
# ----------------------------
def test_catalog_is_public(app, client, book_id):
    resp = client.get("/books")
    assert resp.status_code == 200
    assert [b["title"] for b in resp.get_json()] == ["Dune"]

    resp = client.get(f"/books/{book_id}/availability")
    assert resp.get_json() == {"available": 2, "total": 2}

    assert client.get("/books/999").status_code == 404


def test_only_admins_manage_books(app, client, admin, student):
    _, admin_token = admin
    _, student_token = student
    new_book = {"title": "Emma", "author": "Jane Austen", "category": "Classics", "total_count": 2}

    assert client.post("/books", json=new_book).status_code == 401
    assert client.post("/books", json=new_book, headers=bearer(student_token)).status_code == 403

    resp = client.post("/books", json=new_book, headers=bearer(admin_token))
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["available_count"] == 2

    resp = client.put(f"/books/{created['id']}", json={"total_count": 4}, headers=bearer(admin_token))
    assert resp.get_json()["available_count"] == 4

    resp = client.delete(f"/books/{created['id']}", headers=bearer(admin_token))
    assert resp.status_code == 200


# ----------------------------
# Borrow flow
# ----------------------------
def test_full_borrow_flow(app, client, admin, student, book_id):
    _, admin_token = admin
    _, student_token = student

    resp = borrow(client, student_token, book_id)
    assert resp.status_code == 201
    request_id = resp.get_json()["id"]
    assert resp.get_json()["status"] == "pending"

    resp = borrow(client, student_token, book_id)
    assert resp.status_code == 409
    assert resp.get_json()["kind"] == "duplicate_active_request"

    # students cannot approve their own request
    assert set_status(client, student_token, request_id, "approved", **DATES).status_code == 403

    resp = set_status(client, admin_token, request_id, "approved")
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "missing_dates"

    resp = set_status(client, admin_token, request_id, "approved", **DATES)
    assert resp.status_code == 200
    assert resp.get_json()["due_date"] == "2026-10-15"
    assert client.get(f"/books/{book_id}/availability").get_json()["available"] == 1

    resp = set_status(client, admin_token, request_id, "approved", **DATES)
    assert resp.status_code == 409
    assert resp.get_json()["kind"] == "invalid_transition"

    active = client.get("/student/borrow-requests?view=active", headers=bearer(student_token)).get_json()
    assert [r["id"] for r in active] == [request_id]
    assert active[0]["book"]["title"] == "Dune"

    resp = set_status(client, admin_token, request_id, "returned", remarks="good condition")
    assert resp.status_code == 200
    assert resp.get_json()["remarks"] == "good condition"
    assert client.get(f"/books/{book_id}/availability").get_json()["available"] == 2

    history = client.get("/student/borrow-requests?view=history", headers=bearer(student_token)).get_json()
    assert [r["status"] for r in history] == ["returned"]

    assert client.get("/admin/inventory/audit", headers=bearer(admin_token)).get_json() == []


def test_students_see_only_their_own_requests(app, client, student, book_id):
    _, token = student
    _, other_token = make_user(app, "other@example.com")

    request_id = borrow(client, token, book_id).get_json()["id"]

    assert client.get(f"/student/borrow-requests/{request_id}", headers=bearer(token)).status_code == 200
    assert client.get(f"/student/borrow-requests/{request_id}", headers=bearer(other_token)).status_code == 404
    assert client.get("/student/borrow-requests", headers=bearer(other_token)).get_json() == []


def test_borrow_unknown_book(app, client, student):
    _, token = student
    resp = borrow(client, token, 4242)
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Book not found"


# ----------------------------
# Admin views
# ----------------------------
def test_admin_requests_and_stats(app, client, admin, student):
    _, admin_token = admin
    _, student_token = student
    first = make_book(app, title="Dune", total=2)
    second = make_book(app, title="Emma", author="Jane Austen", total=1)

    a = borrow(client, student_token, first).get_json()["id"]
    borrow(client, student_token, second)
    set_status(client, admin_token, a, "approved", **DATES)

    rows = client.get("/admin/requests?status=pending", headers=bearer(admin_token)).get_json()
    assert [r["book"]["title"] for r in rows] == ["Emma"]
    assert rows[0]["student"]["email"] == "student@example.com"

    stats = client.get("/admin/stats", headers=bearer(admin_token)).get_json()
    assert stats == {
        "total_books": 3,
        "available_books": 2,
        "total_titles": 2,
        "total_students": 2,
        "pending_requests": 1,
        "active_loans": 1,
    }

    assert client.get("/admin/stats", headers=bearer(student_token)).status_code == 403


def test_default_dates_and_report(app, client, admin, student, book_id):
    _, admin_token = admin
    _, student_token = student

    dates = client.get("/admin/requests/default-dates", headers=bearer(admin_token)).get_json()
    request_id = borrow(client, student_token, book_id).get_json()["id"]
    set_status(client, admin_token, request_id, "approved", **dates)

    resp = client.get("/admin/export/borrow-report/pdf", headers=bearer(admin_token))
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF")


def test_admin_delete_request_releases_copy(app, client, admin, student, book_id):
    _, admin_token = admin
    _, student_token = student

    request_id = borrow(client, student_token, book_id).get_json()["id"]
    set_status(client, admin_token, request_id, "approved", **DATES)

    resp = client.delete(f"/admin/requests/{request_id}", headers=bearer(admin_token))
    assert resp.status_code == 200
    assert client.get(f"/books/{book_id}/availability").get_json()["available"] == 2


# ----------------------------
# Malformed payloads
# ----------------------------
@pytest.mark.parametrize("body,message", [
    ({"name": "Ada Lovelace", "email": 5, "password": "secret123"}, "Email must be a string"),
    ({"name": ["Ada"], "email": "ada@example.com", "password": "secret123"}, "Name must be a string"),
    ({"name": "Ada Lovelace", "email": "ada@example.com", "password": 123456}, "Password must be a string"),
])
def test_register_rejects_non_string_fields(client, body, message):
    resp = client.post("/auth/register", json=body)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": message, "kind": "bad_request"}


def test_login_rejects_non_string_fields(client, student):
    resp = client.post("/auth/login", json={"email": {"$ne": ""}, "password": "x"})
    assert resp.status_code == 400

    resp = client.post("/auth/login", json={"email": "student@example.com", "password": 1})
    assert resp.status_code == 400


def test_profile_update_rejects_non_string_fields(client, student):
    _, token = student

    resp = client.patch("/auth/profile", json={"name": 42}, headers=bearer(token))
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "bad_request"

    resp = client.patch("/auth/profile", json={"department": {"x": 1}}, headers=bearer(token))
    assert resp.status_code == 400


def test_book_create_rejects_non_string_fields(client, admin):
    _, admin_token = admin
    body = {"title": 12, "author": "Frank Herbert", "category": "Fiction", "total_count": 1}

    resp = client.post("/books", json=body, headers=bearer(admin_token))

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "title must be a string", "kind": "bad_request"}


def test_bad_date_in_approval(client, admin, student, book_id):
    _, admin_token = admin
    _, student_token = student
    request_id = borrow(client, student_token, book_id).get_json()["id"]

    resp = set_status(
        client, admin_token, request_id, "approved",
        issue_date="2026-10-01garbage", due_date="2026-10-15"
    )

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "bad_request"
    assert client.get(f"/books/{book_id}/availability").get_json()["available"] == 2


def test_unexpected_error_returns_json(app):
    def explode():
        raise RuntimeError("boom")

    app.add_url_rule("/explode", "explode", explode)

    resp = app.test_client().get("/explode")

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Unexpected error", "kind": "internal"}


def test_http_errors_keep_their_status(app):
    def teapot():
        abort(418)

    app.add_url_rule("/teapot", "teapot", teapot)

    assert app.test_client().get("/teapot").status_code == 418
