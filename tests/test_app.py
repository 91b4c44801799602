"""
Tests for the KanaSchool Flask API.
Exercises the JSON endpoints, the identity cookie and error mapping end to end.
"""

import os
import tempfile
from typing import Any, Generator

import pytest
from sqlalchemy.exc import OperationalError

from kana_school import db

PASSWORD = "pw-secret"


@pytest.fixture(scope="function")
def store() -> Generator[db.Store, None, None]:
    """Setup transient SQLite DB for testing."""
    fd, path = tempfile.mkstemp()
    os.close(fd)
    store = db.Store(f"sqlite:///{path}")
    db.init_db(store)
    db.seed_kanas(store)
    yield store
    store.dispose()
    os.unlink(path)


@pytest.fixture
def flask_app(store: db.Store) -> Any:
    import app as app_module
    return app_module.create_app(
        {"TESTING": True, "SECRET_KEY": "test-secret", "DISCORD_WEBHOOK_URL": None},
        store=store,
    )


@pytest.fixture
def client(flask_app: Any) -> Generator[Any, None, None]:
    """Create a Flask test client."""
    with flask_app.test_client() as c:
        yield c


def _signup(client: Any, name: str = "alice") -> dict:
    resp = client.post("/api/users/signup", json={"name": name, "password": PASSWORD})
    assert resp.status_code == 201
    return resp.get_json()["user"]


def _create_session(client: Any, **config: Any) -> int:
    resp = client.post("/api/sessions/create", json=config)
    assert resp.status_code == 200
    return resp.get_json()["sessionId"]


def _kana_id(store: db.Store, reading: str = "a", is_katakana: bool = False) -> int:
    return db.get_kana_by_reading(store, reading, is_katakana).id


def _me(client: Any) -> Any:
    return client.get("/api/me").get_json()["user"]


# ── Signup, login, logout ─────────────────────────────────────────────

class TestAccounts:

    def test_signup_sets_cookie(self, client: Any) -> None:
        resp = client.post("/api/users/signup", json={"name": "alice", "password": PASSWORD})
        assert resp.status_code == 201
        user = resp.get_json()["user"]
        assert user["name"] == "alice"
        assert user["is_public"] is False
        assert "password_hash" not in user

        set_cookie = resp.headers.get("Set-Cookie")
        assert set_cookie.startswith("auth=")
        assert "HttpOnly" in set_cookie
        assert "SameSite=Lax" in set_cookie
        assert "Max-Age=2592000" in set_cookie
        assert "Secure" not in set_cookie

        assert _me(client) == user

    def test_signup_errors(self, client: Any) -> None:
        _signup(client)
        taken = client.post("/api/users/signup", json={"name": "alice", "password": "x"})
        assert taken.status_code == 400
        assert taken.get_json() == {"error": "Username already taken"}

        bad_name = client.post("/api/users/signup", json={"name": "a b", "password": "x"})
        assert bad_name.status_code == 400
        assert "URL-friendly" in bad_name.get_json()["error"]

        missing = client.post("/api/users/signup", json={"name": "bob"})
        assert missing.status_code == 400

        garbage = client.post("/api/users/signup", data="{nope", content_type="application/json")
        assert garbage.status_code == 400

    def test_login(self, flask_app: Any, client: Any) -> None:
        created = _signup(client)
        other = flask_app.test_client()

        wrong = other.post("/api/users/login", json={"name": "alice", "password": "bad"})
        unknown = other.post("/api/users/login", json={"name": "nobody", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json() == {"error": "Invalid username or password"}
        assert other.get_cookie("auth") is None

        ok = other.post("/api/users/login", json={"name": "alice", "password": PASSWORD})
        assert ok.status_code == 200
        assert ok.get_json()["user"] == created
        assert other.get_cookie("auth") is not None

    def test_logout_clears_cookie(self, client: Any) -> None:
        _signup(client)
        resp = client.post("/api/users/logout")
        assert resp.get_json() == {"success": True}
        assert client.get_cookie("auth") is None
        assert _me(client) is None


# ── Identity cookie ───────────────────────────────────────────────────

class TestIdentityCookie:

    def test_tampered_cookie_is_cleared(self, client: Any) -> None:
        client.set_cookie("auth", "not-a-signed-value")
        assert _me(client) is None
        assert client.get_cookie("auth") is None

    def test_cookie_signed_with_other_key_is_rejected(self, flask_app: Any, store: db.Store) -> None:
        import app as app_module
        foreign = app_module.create_app({"TESTING": True, "SECRET_KEY": "someone-else"}, store=store)
        with foreign.test_client() as c:
            _signup(c)
            token = c.get_cookie("auth").value

        with flask_app.test_client() as c:
            c.set_cookie("auth", token)
            assert _me(c) is None

    def test_deleted_user_cookie_is_cleared(self, client: Any, store: db.Store) -> None:
        user = _signup(client)
        db.soft_delete_user(store, user["id"])
        assert _me(client) is None
        assert client.get_cookie("auth") is None

    def test_cookie_trusted_when_store_unavailable(self, flask_app: Any, client: Any,
                                                   monkeypatch: pytest.MonkeyPatch) -> None:
        import app as app_module
        user = _signup(client)

        def store_down(store: Any, user_id: int) -> None:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(app_module.auth, "load_user", store_down)
        assert _me(client) == user

        flask_app.config["TRUST_COOKIE_ON_STORE_UNAVAILABLE"] = False
        assert _me(client) is None

    def test_secure_cookie_in_production(self, store: db.Store) -> None:
        import app as app_module
        prod = app_module.create_app({"TESTING": True, "SECRET_KEY": "k", "PRODUCTION": True}, store=store)
        with prod.test_client() as c:
            resp = c.post("/api/users/signup", json={"name": "alice", "password": PASSWORD})
            assert "Secure" in resp.headers.get("Set-Cookie")


# ── Account updates ───────────────────────────────────────────────────

class TestUpdate:

    def test_requires_login(self, client: Any) -> None:
        resp = client.post("/api/users/update", json={"action": "updateVisibility", "isPublic": True})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Not authenticated"}

    def test_update_password(self, flask_app: Any, client: Any) -> None:
        _signup(client)
        wrong = client.post("/api/users/update", json={
            "action": "updatePassword", "oldPassword": "bad", "newPassword": "next"})
        assert wrong.status_code == 400
        assert wrong.get_json() == {"error": "Current password is incorrect"}

        ok = client.post("/api/users/update", json={
            "action": "updatePassword", "oldPassword": PASSWORD, "newPassword": "next"})
        assert ok.get_json() == {"success": True}

        other = flask_app.test_client()
        assert other.post("/api/users/login", json={"name": "alice", "password": "next"}).status_code == 200

    def test_update_username_refreshes_cookie(self, client: Any) -> None:
        _signup(client)
        _signup(client.application.test_client(), "bob")

        taken = client.post("/api/users/update", json={"action": "updateUsername", "newUsername": "bob"})
        assert taken.status_code == 400

        resp = client.post("/api/users/update", json={"action": "updateUsername", "newUsername": "alicia"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["name"] == "alicia"
        assert _me(client)["name"] == "alicia"

    def test_update_visibility(self, client: Any) -> None:
        _signup(client)
        bad = client.post("/api/users/update", json={"action": "updateVisibility", "isPublic": "yes"})
        assert bad.status_code == 400

        resp = client.post("/api/users/update", json={"action": "updateVisibility", "isPublic": True})
        body = resp.get_json()
        assert body["success"] is True
        assert body["user"]["is_public"] is True
        assert _me(client)["is_public"] is True

    def test_delete_session(self, flask_app: Any, client: Any) -> None:
        _signup(client)
        session_id = _create_session(client)

        intruder = flask_app.test_client()
        _signup(intruder, "mallory")
        refused = intruder.post("/api/users/update", json={"action": "deleteSession", "sessionId": session_id})
        assert refused.status_code == 400
        assert "permission" in refused.get_json()["error"]

        missing = client.post("/api/users/update", json={"action": "deleteSession", "sessionId": 9999})
        assert missing.status_code == 400

        huge = client.post("/api/users/update", json={"action": "deleteSession", "sessionId": 10 ** 30})
        assert huge.status_code == 400
        assert huge.get_json() == {"error": "Invalid session ID"}

        ok = client.post("/api/users/update", json={"action": "deleteSession", "sessionId": session_id})
        assert ok.get_json() == {"success": True}
        assert client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_delete_account(self, client: Any) -> None:
        _signup(client)
        wrong = client.post("/api/users/update", json={"action": "deleteAccount", "password": "bad"})
        assert wrong.status_code == 400
        assert _me(client) is not None

        ok = client.post("/api/users/update", json={"action": "deleteAccount", "password": PASSWORD})
        assert ok.get_json() == {"success": True}
        assert client.get_cookie("auth") is None
        assert client.post("/api/users/login", json={"name": "alice", "password": PASSWORD}).status_code == 401

    def test_unknown_action(self, client: Any) -> None:
        _signup(client)
        resp = client.post("/api/users/update", json={"action": "becomeAdmin"})
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Invalid action"}


# ── Quiz sessions ─────────────────────────────────────────────────────

class TestSessions:

    def test_create_requires_login(self, client: Any) -> None:
        assert client.post("/api/sessions/create", json={}).status_code == 401

    def test_create_validation(self, client: Any) -> None:
        _signup(client)
        resp = client.post("/api/sessions/create", json={"mult": 0})
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "mult must be at least 1"}

        huge = client.post("/api/sessions/create", json={"mult": 10 ** 30})
        assert huge.status_code == 400
        assert huge.get_json() == {"error": "mult must be a number"}

        garbage = client.post("/api/sessions/create", data="[", content_type="application/json")
        assert garbage.status_code == 400
        assert garbage.get_json() == {"error": "Invalid request body"}

    def test_guess_and_finish_flow(self, client: Any, store: db.Store) -> None:
        _signup(client)
        session_id = _create_session(client, hiragana=1, katakana=0, mods=0, mult=1)
        kana_id = _kana_id(store)

        view = client.get(f"/api/sessions/{session_id}").get_json()
        assert len(view["remainingKanas"]) == 46
        assert view["isOwner"] is True

        resp = client.post(f"/api/sessions/{session_id}/guess", json={"kanaId": kana_id, "isCorrect": True})
        assert resp.get_json() == {"success": True}

        view = client.get(f"/api/sessions/{session_id}").get_json()
        assert len(view["remainingKanas"]) == 45
        assert view["guessedKanas"][0]["id"] == kana_id

        assert client.post(f"/api/sessions/{session_id}/finish").get_json() == {"success": True}
        view = client.get(f"/api/sessions/{session_id}").get_json()
        assert view["isFinished"] is True
        assert view["remainingKanas"] == []

    def test_guess_errors(self, flask_app: Any, client: Any, store: db.Store) -> None:
        _signup(client)
        session_id = _create_session(client)
        kana_id = _kana_id(store)

        assert client.post("/api/sessions/abc/guess", json={"kanaId": kana_id, "isCorrect": True}).status_code == 400
        assert client.post("/api/sessions/999/guess", json={"kanaId": kana_id, "isCorrect": True}).status_code == 404
        huge_id = client.post("/api/sessions/99999999999999999999999/guess", json={"kanaId": kana_id, "isCorrect": True})
        assert huge_id.status_code == 400
        assert client.post("/api/sessions/99999999999999999999999/finish").status_code == 400
        assert client.get("/api/sessions/99999999999999999999999").status_code == 400

        bad = client.post(f"/api/sessions/{session_id}/guess", json={"kanaId": kana_id, "isCorrect": "yes"})
        assert bad.status_code == 400
        assert bad.get_json() == {"error": "isCorrect must be a boolean"}

        unknown = client.post(f"/api/sessions/{session_id}/guess", json={"kanaId": 99999, "isCorrect": True})
        assert unknown.status_code == 400
        huge_kana = client.post(f"/api/sessions/{session_id}/guess", json={"kanaId": 10 ** 30, "isCorrect": True})
        assert huge_kana.status_code == 400
        assert huge_kana.get_json() == {"error": "Unknown kana"}

        intruder = flask_app.test_client()
        _signup(intruder, "mallory")
        stolen = intruder.post(f"/api/sessions/{session_id}/guess", json={"kanaId": kana_id, "isCorrect": True})
        assert stolen.status_code == 404
        assert intruder.post(f"/api/sessions/{session_id}/finish").status_code == 404
        assert db.get_session_guessed_kanas(store, session_id) == []

    def test_view_permissions(self, flask_app: Any, client: Any) -> None:
        _signup(client)
        session_id = _create_session(client)
        anonymous = flask_app.test_client()

        ongoing = anonymous.get(f"/api/sessions/{session_id}")
        assert ongoing.status_code == 403
        assert ongoing.get_json() == {"error": "Cannot view ongoing sessions that are not yours"}

        client.post(f"/api/sessions/{session_id}/finish")
        private = anonymous.get(f"/api/sessions/{session_id}")
        assert private.status_code == 403
        assert private.get_json() == {"error": "This session is private"}

        resp = client.post(f"/api/sessions/{session_id}/visibility", json={"sessionId": session_id, "isPublic": True})
        assert resp.get_json() == {"success": True}
        public = anonymous.get(f"/api/sessions/{session_id}")
        assert public.status_code == 200
        assert public.get_json()["isOwner"] is False

        assert anonymous.get("/api/sessions/not-a-number").status_code == 400
        assert anonymous.get("/api/sessions/4242").status_code == 404

    def test_visibility_validation(self, client: Any) -> None:
        _signup(client)
        session_id = _create_session(client)

        mismatch = client.post(f"/api/sessions/{session_id}/visibility",
                               json={"sessionId": session_id + 1, "isPublic": True})
        assert mismatch.status_code == 400

        missing = client.post(f"/api/sessions/{session_id}/visibility", json={"sessionId": session_id})
        assert missing.status_code == 400

        # sessionId in the body is optional
        ok = client.post(f"/api/sessions/{session_id}/visibility", json={"isPublic": True})
        assert ok.status_code == 200

    def test_my_sessions(self, client: Any) -> None:
        assert client.get("/api/sessions/my").status_code == 401
        _signup(client)
        first = _create_session(client)
        second = _create_session(client)
        client.post(f"/api/sessions/{second}/finish")

        data = client.get("/api/sessions/my").get_json()
        assert [s["id"] for s in data["unfinishedSessions"]] == [first]
        assert [s["id"] for s in data["finishedSessions"]] == [second]


# ── Stats, profiles and kanas ─────────────────────────────────────────

class TestReadEndpoints:

    def test_stats_pages(self, client: Any) -> None:
        _signup(client)
        _create_session(client)

        home = client.get("/api/stats").get_json()["stats"]
        assert home["allTime"]["userCount"] == 1
        assert home["lastMonth"]["sessionCount"] == 1

        sessions = client.get("/api/stats/sessions").get_json()["stats"]
        assert sessions["sessions"] == {"total": 1, "lastMonth": 1}

        users = client.get("/api/stats/users").get_json()["stats"]
        assert users["maxSessionsForUser"] == 1

    def test_user_profile(self, flask_app: Any, client: Any) -> None:
        _signup(client)
        anonymous = flask_app.test_client()
        assert anonymous.get("/api/users/alice").status_code == 404
        assert anonymous.get("/api/users/ghost").get_json() == {"error": "User not found"}

        own = client.get("/api/users/alice").get_json()
        assert own["isOwnProfile"] is True

        client.post("/api/users/update", json={"action": "updateVisibility", "isPublic": True})
        public = anonymous.get("/api/users/alice")
        assert public.status_code == 200
        assert public.get_json()["user"]["name"] == "alice"

        far = anonymous.get(f"/api/users/alice?page={2 ** 62}")
        assert far.status_code == 400
        assert far.get_json() == {"error": "Invalid page"}

    def test_kana_lists(self, client: Any) -> None:
        both = client.get("/api/kanas").get_json()
        assert len(both["hiraganas"]) == len(both["katakanas"]) == 71

        katakana = client.get("/api/kanas?script=katakana").get_json()["kanas"]
        assert all(k["is_katakana"] for k in katakana)

        assert client.get("/api/kanas?script=kanji").status_code == 400

    def test_kana_detail(self, client: Any) -> None:
        ji = client.get("/api/hiraganas/ji").get_json()
        assert ji["kana"]["unicode"] == "じ"
        assert ji["alternativeKana"]["unicode"] == "ぢ"

        ka = client.get("/api/katakanas/ka").get_json()
        assert ka["kana"]["unicode"] == "カ"
        assert ka["alternativeKana"] is None

        assert client.get("/api/hiraganas/xyz").status_code == 404


# ── Contact & error handling ──────────────────────────────────────────

class TestContactAndErrors:

    def test_contact_without_webhook(self, client: Any) -> None:
        empty = client.post("/api/contact/message", json={"message": "  "})
        assert empty.status_code == 400
        assert empty.get_json() == {"error": "Message is required"}

        resp = client.post("/api/contact/message", json={"message": "hello"})
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Server configuration error"}

    def test_contact_posts_to_webhook(self, flask_app: Any, client: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        from kana_school import contact

        class Accepted:
            ok = True
            status_code = 204
            reason = "No Content"

        sent = []
        monkeypatch.setattr(contact.requests, "post", lambda url, **kw: sent.append((url, kw)) or Accepted())
        flask_app.config["DISCORD_WEBHOOK_URL"] = "https://discord.example/hook"

        resp = client.post("/api/contact/message", json={"message": "hello"})
        assert resp.get_json() == {"success": True}
        assert sent[0][0] == "https://discord.example/hook"

    def test_unknown_route_is_json(self, client: Any) -> None:
        resp = client.get("/api/does/not/exist")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_unexpected_error_is_hidden(self, client: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        import app as app_module

        def explode(store: Any) -> None:
            raise RuntimeError("secret internals")

        monkeypatch.setattr(app_module.stats, "home_stats", explode)
        resp = client.get("/api/stats")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}

    def test_failed_startup_check_is_retried(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import app as app_module
        fd, path = tempfile.mkstemp()
        os.close(fd)
        empty = db.Store(f"sqlite:///{path}")
        fresh = app_module.create_app({"TESTING": True, "SECRET_KEY": "test-secret"}, store=empty)

        real_check = db.is_db_initialized
        calls = []

        def flaky_check(store: db.Store) -> bool:
            calls.append(store)
            if len(calls) == 1:
                raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))
            return real_check(store)

        monkeypatch.setattr(app_module.db, "is_db_initialized", flaky_check)
        try:
            with fresh.test_client() as c:
                assert c.get("/api/kanas").status_code == 500
                assert fresh.extensions.get("kana_school.initialized") is not True

                resp = c.get("/api/kanas")
                assert resp.status_code == 200
                assert len(resp.get_json()["hiraganas"]) == 71
                assert fresh.extensions["kana_school.initialized"] is True
        finally:
            empty.dispose()
            os.unlink(path)
