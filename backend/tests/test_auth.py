from datetime import datetime, timedelta

from express_learning.cleanup import purge_stale_sessions
from express_learning.models import AuthSession


def _register(client, username="ada", password="correct-horse"):
    return client.post("/auth/register", json={"username": username, "password": password})


def _login(client, username="ada", password="correct-horse"):
    res = client.post("/auth/token", data={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


def test_register_and_login(client):
    assert _register(client).json() == {"ok": True}
    headers = _login(client)
    assert client.get("/auth/me", headers=headers).json() == {"username": "ada"}


def test_register_validation(client):
    assert _register(client, username="ab").status_code == 400
    assert _register(client, password="short").status_code == 400
    assert _register(client).status_code == 201
    assert _register(client).status_code == 409


def test_wrong_password(client):
    _register(client)
    res = client.post("/auth/token", data={"username": "ada", "password": "nope-nope"})
    assert res.status_code == 401


def test_bad_token_rejected(client):
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.get("/auth/me").status_code == 401


def test_revoked_session_rejected(client, db_session):
    _register(client)
    headers = _login(client)
    db_session.query(AuthSession).delete()
    db_session.commit()
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_library_lists_own_plans(client):
    _register(client, username="ada")
    _register(client, username="grace")
    ada = _login(client, username="ada")
    grace = _login(client, username="grace")

    client.post("/plans", data={"topic": "Engines"}, headers=ada)
    client.post("/plans", data={"topic": "Compilers"}, headers=grace)
    client.post("/plans", data={"topic": "Guest topic"})

    topics = [p["topic"] for p in client.get("/plans", headers=ada).json()["plans"]]
    assert topics == ["Engines"]
    assert client.get("/plans").status_code == 401


def test_purge_stale_sessions(db_session):
    old = datetime.utcnow() - timedelta(days=40)
    db_session.add_all([
        AuthSession(session_id="old", username="ada", created_at=old, last_activity_at=old),
        AuthSession(session_id="fresh", username="ada"),
    ])
    db_session.commit()

    assert purge_stale_sessions(db_session, days=30) == 1
    assert [s.session_id for s in db_session.query(AuthSession)] == ["fresh"]
