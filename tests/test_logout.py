from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

import lawlzer.api.server as srv


def _session_set_cookies(r):  # type: ignore[no-untyped-def]
    return [h for h in r.headers.get_list("set-cookie") if h.startswith("session_token=")]


def test_logout_without_cookie_redirects_to_referer_without_destroying(monkeypatch) -> None:
    sessions = MagicMock()
    monkeypatch.setattr(srv.app.state, "session_store", sessions)

    c = TestClient(srv.app)
    r = c.get("/api/auth/logout", headers={"referer": "http://testserver/cooking"}, follow_redirects=False)

    assert r.status_code == 307
    assert r.headers["location"] == "http://testserver/cooking"
    sessions.destroy.assert_not_called()
    assert _session_set_cookies(r) == []


def test_logout_destroys_session_and_clears_cookie(stores, login_as) -> None:  # type: ignore[no-untyped-def]
    token = login_as()
    c = TestClient(srv.app)
    c.cookies.set("session_token", token)

    r = c.get("/api/auth/logout", headers={"referer": "/cooking/recipes"}, follow_redirects=False)

    assert r.status_code == 307
    assert r.headers["location"] == "/cooking/recipes"
    assert stores.sessions.get(token) is None
    cleared = _session_set_cookies(r)
    assert len(cleared) == 1
    assert "Max-Age=0" in cleared[0]
    assert "1970" in cleared[0]


def test_logout_with_unknown_token_still_clears_cookie() -> None:
    c = TestClient(srv.app)
    c.cookies.set("session_token", "not-a-session")
    r = c.get("/api/auth/logout", follow_redirects=False)
    assert r.headers["location"] == "/"
    assert len(_session_set_cookies(r)) == 1


def test_logout_falls_back_to_root_without_referer(login_as) -> None:  # type: ignore[no-untyped-def]
    c = TestClient(srv.app)
    c.cookies.set("session_token", login_as())
    r = c.get("/api/auth/logout", follow_redirects=False)
    assert r.headers["location"] == "/"


def test_logout_does_not_redirect_off_site(login_as) -> None:  # type: ignore[no-untyped-def]
    c = TestClient(srv.app)
    c.cookies.set("session_token", login_as())
    for referer in ("https://evil.example.com/phish", "//evil.example.com/", "javascript:alert(1)"):
        r = c.get("/api/auth/logout", headers={"referer": referer}, follow_redirects=False)
        assert r.headers["location"] == "/"


def test_logout_allows_sibling_subdomain_referer(login_as) -> None:  # type: ignore[no-untyped-def]
    c = TestClient(srv.app)
    c.cookies.set("session_token", login_as())
    r = c.get(
        "/api/auth/logout",
        headers={"host": "lawlzer.com", "referer": "https://cooking.lawlzer.com/recipes"},
        follow_redirects=False,
    )
    assert r.headers["location"] == "https://cooking.lawlzer.com/recipes"


def test_logout_failure_redirects_to_error_page(monkeypatch) -> None:
    sessions = MagicMock()
    sessions.destroy.side_effect = RuntimeError("database went away")
    monkeypatch.setattr(srv.app.state, "session_store", sessions)

    c = TestClient(srv.app)
    c.cookies.set("session_token", "tok")
    r = c.get("/api/auth/logout", follow_redirects=False)

    assert r.status_code == 307
    assert r.headers["location"] == "/error/auth?error=logout_failed"
    sessions.destroy.assert_called_once_with("tok")
