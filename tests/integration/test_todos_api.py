import pytest

from conftest import STRONG_PASSWORD

pytestmark = pytest.mark.integration

DUE = "2030-01-01T12:00:00Z"


def login(client, email="jane@example.com", name="Jane"):
    client.post("/api/auth/register", json={"email": email, "name": name, "password": STRONG_PASSWORD})
    r = client.post("/api/auth/login", json={"email": email, "password": STRONG_PASSWORD})
    client.cookies.clear()
    return {"Authorization": f"Bearer {r.json()['data']['accessToken']}"}


@pytest.fixture
def auth(client):
    return login(client)


def create(client, auth, **fields):
    r = client.post("/api/todos", json={"title": "Task", "dueDate": DUE, **fields}, headers=auth)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def test_requires_authentication(client):
    r = client.get("/api/todos")
    assert r.status_code == 401
    assert r.json()["error"] == "UNAUTHORIZED"


def test_end_to_end_flow(verifying_client, email_queue):
    client = verifying_client
    client.post("/api/auth/register", json={"email": "jane@example.com", "name": "Jane", "password": STRONG_PASSWORD})
    client.post("/api/auth/verify-email", json={"token": email_queue.last_token_for("jane@example.com")})
    r = client.post("/api/auth/login", json={"email": "jane@example.com", "password": STRONG_PASSWORD})
    auth = {"Authorization": f"Bearer {r.json()['data']['accessToken']}"}

    todo = create(client, auth, title="Buy milk", priority="HIGH")
    create(client, auth, title="Walk dog")

    listing = client.get("/api/todos", headers=auth).json()["data"]
    assert listing["counts"] == {"all": 2, "active": 2, "completed": 0}

    r = client.patch(f"/api/todos/{todo['id']}/toggle", headers=auth)
    assert r.status_code == 200
    assert r.json()["data"]["completed"] is True

    listing = client.get("/api/todos", headers=auth).json()["data"]
    assert listing["counts"] == {"all": 2, "active": 1, "completed": 1}
    assert listing["total"] == listing["filtered"] == 2

    done = client.get("/api/todos", params={"completed": "true"}, headers=auth).json()["data"]
    assert [t["title"] for t in done["todos"]] == ["Buy milk"]
    assert done["filtered"] == 1
    assert done["total"] == 2


def test_create_response_shape(client, auth):
    data = create(client, auth, title="Write tests", description="all of them")
    assert set(data) == {
        "id",
        "title",
        "description",
        "priority",
        "status",
        "completed",
        "pinned",
        "dueDate",
        "userId",
        "createdAt",
        "updatedAt",
    }
    assert data["priority"] == "MEDIUM"
    assert data["status"] == "TODO"
    assert data["dueDate"].startswith("2030-01-01T12:00:00")


@pytest.mark.parametrize(
    "body",
    [
        {"title": "", "dueDate": DUE},
        {"title": "No date"},
        {"title": "Bad priority", "dueDate": DUE, "priority": "URGENT"},
        {"title": "x" * 256, "dueDate": DUE},
    ],
)
def test_create_validation(client, auth, body):
    r = client.post("/api/todos", json=body, headers=auth)
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_list_query_params(client, auth):
    create(client, auth, title="Alpha", priority="LOW")
    create(client, auth, title="Bravo", priority="HIGH")
    pinned = create(client, auth, title="Charlie", priority="MEDIUM")
    client.patch(f"/api/todos/{pinned['id']}/pin", headers=auth)

    data = client.get(
        "/api/todos", params={"sortBy": "priority", "sortOrder": "desc", "priority": "ALL"}, headers=auth
    ).json()["data"]
    assert [t["title"] for t in data["todos"]] == ["Charlie", "Bravo", "Alpha"]

    data = client.get("/api/todos", params={"sortBy": "title", "sortOrder": "asc", "limit": 1, "page": 2}, headers=auth)
    body = data.json()["data"]
    assert [t["title"] for t in body["todos"]] == ["Alpha"]
    assert body["totalPages"] == 3
    assert body["page"] == 2

    data = client.get("/api/todos", params={"search": "brav"}, headers=auth).json()["data"]
    assert [t["title"] for t in data["todos"]] == ["Bravo"]


@pytest.mark.parametrize(
    "params",
    [{"limit": 0}, {"limit": 101}, {"page": 0}, {"sortBy": "color"}, {"completed": "maybe"}, {"status": "LATER"}],
)
def test_list_rejects_bad_params(client, auth, params):
    r = client.get("/api/todos", params=params, headers=auth)
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_update_status_and_delete(client, auth):
    todo = create(client, auth, title="Ship it")

    r = client.put(f"/api/todos/{todo['id']}", json={"description": "v2"}, headers=auth)
    assert r.json()["data"]["description"] == "v2"
    assert r.json()["data"]["title"] == "Ship it"

    r = client.patch(f"/api/todos/{todo['id']}/status", json={"status": "DONE"}, headers=auth)
    assert r.json()["data"]["status"] == "DONE"
    assert r.json()["data"]["completed"] is False

    r = client.delete(f"/api/todos/{todo['id']}", headers=auth)
    assert r.status_code == 200
    assert r.json()["message"] == "Todo deleted successfully"
    assert client.get(f"/api/todos/{todo['id']}", headers=auth).status_code == 404


def test_update_rejects_explicit_null(client, auth):
    todo = create(client, auth)
    r = client.put(f"/api/todos/{todo['id']}", json={"title": None}, headers=auth)
    assert r.status_code == 400


def test_other_users_todos_are_invisible(client, auth):
    todo = create(client, auth, title="Private")
    other = login(client, email="mallory@example.com", name="Mallory")

    foreign = client.get(f"/api/todos/{todo['id']}", headers=other)
    missing = client.get("/api/todos/does-not-exist", headers=other)
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json()["message"] == missing.json()["message"] == "Todo not found"

    assert client.delete(f"/api/todos/{todo['id']}", headers=other).status_code == 404
    assert client.patch(f"/api/todos/{todo['id']}/toggle", headers=other).status_code == 404
    assert client.get("/api/todos", headers=other).json()["data"]["total"] == 0
    assert client.get(f"/api/todos/{todo['id']}", headers=auth).status_code == 200


def test_counts_endpoint(client, auth):
    todo = create(client, auth)
    create(client, auth)
    client.patch(f"/api/todos/{todo['id']}/toggle", headers=auth)
    r = client.get("/api/todos/counts", headers=auth)
    assert r.json()["data"] == {"all": 2, "active": 1, "completed": 1}
