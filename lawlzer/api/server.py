"""
HTTP server for the lawlzer site.

Hosts the auth boundary (login, OAuth callback, logout, current session) and the
cooking API. Sessions are opaque tokens in the `session_token` cookie, resolved per
request by `lawlzer.auth.deps.current_user`.
"""

from __future__ import annotations

import html
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import requests
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from lawlzer.api.cooking import router as cooking_router
from lawlzer.auth.callback import auth_error_url, check_callback, issue_callback_ticket, read_callback_ticket
from lawlzer.auth.config import AUTH_STATE_COOKIE_NAME, SESSION_COOKIE_NAME, AuthConfig, load_auth_config
from lawlzer.auth.cookies import (
    apply_cookie,
    auth_state_cookie,
    cleared_auth_state_cookie,
    cleared_session_cookie,
    read_cookie,
    resolve_cookie_domain,
    session_cookie,
)
from lawlzer.auth.deps import current_user, get_session_store, get_user_store
from lawlzer.auth.models import AuthUser
from lawlzer.auth.oauth import (
    PROVIDERS,
    Provider,
    build_authorize_url,
    callback_url,
    exchange_code,
    fetch_profile,
    get_provider,
)
from lawlzer.auth.session import SessionStore
from lawlzer.auth.users import UserStore
from lawlzer.auth.util import random_token, sanitize_redirect_target
from lawlzer.errors import AppError, InvalidState, StorageError, ValidationError

logger = logging.getLogger(__name__)

app = FastAPI(title="lawlzer")
app.include_router(cooking_router)

_AUTH_ERROR_MESSAGES = {
    "invalid_state": "The sign-in request could not be verified. Please try again.",
    "server_error": "Something went wrong while signing you in.",
    "logout_failed": "Something went wrong while signing you out.",
    "invalid_provider": "That sign-in provider is not supported.",
}
_DEFAULT_AUTH_ERROR_MESSAGE = "An authentication error occurred."


def _request_host(request: Request) -> str:
    return request.headers.get("host") or request.url.netloc or ""


def _redirect(url: str) -> RedirectResponse:
    resp = RedirectResponse(url=url)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        # Storage and other server-side failures: log the detail, answer generically.
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        loc = ".".join(str(x) for x in first.get("loc", ()) if x != "body")
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    return JSONResponse(status_code=ValidationError.status_code, content={"error": message})


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


@app.on_event("startup")
def _startup_maybe_migrate_db() -> None:
    """
    Optional dev behavior: auto-apply DB migrations when DB_AUTO_MIGRATE=1.

    This should never prevent the server from starting; failures are logged.
    """
    from lawlzer.db.migrate import maybe_auto_migrate

    try:
        applied = maybe_auto_migrate()
    except StorageError as e:
        logger.warning("DB migrations: startup auto-migrate failed: %s", e.message)
    else:
        if applied is not None:
            logger.info("DB migrations: %d applied (%s)", len(applied), ", ".join(m.version for m in applied) or "up to date")

    cfg = load_auth_config()
    # Avoid logging secrets; provider names and cookie policy are fine.
    logger.info(
        "Auth config: env=%s providers=%s cookie_secure=%s cookie_domain=%s signing=%s",
        cfg.app_env,
        ",".join(cfg.enabled_providers()) or "none",
        cfg.cookie_secure,
        cfg.cookie_domain or "auto",
        "configured" if cfg.session_secret else "missing",
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/api/auth/login")
def auth_login(request: Request, provider: Optional[str] = Query(None)) -> RedirectResponse:
    """Start the OAuth flow: set the anti-forgery state cookie and send the browser to the provider."""
    if not (provider or "").strip():
        raise ValidationError("Provider is required")
    p = get_provider(provider)
    if p is None:
        raise ValidationError("Unsupported provider")

    cfg = load_auth_config()
    host = _request_host(request)
    state = random_token(32)
    url = build_authorize_url(
        cfg,
        p,
        state=state,
        redirect_uri=callback_url(cfg, str(request.base_url), p.id),
    )

    resp = _redirect(url)
    apply_cookie(resp, auth_state_cookie(cfg, state, host=host))
    logger.info("OAuth login started: provider=%s", p.id)
    return resp


def _complete_login(
    cfg: AuthConfig,
    provider: Provider,
    code: str,
    *,
    request_base_url: str,
    sessions: SessionStore,
    users: UserStore,
) -> Tuple[str, Optional[str]]:
    """
    Exchange the verified code, upsert the user and open a session.

    Returns (redirect target, session token or None on failure).
    """
    redirect_uri = callback_url(cfg, request_base_url, provider.id)
    try:
        tokens = exchange_code(cfg, provider, code=code, redirect_uri=redirect_uri)
        profile = fetch_profile(provider, tokens)
        user = users.upsert_oauth_user(profile)
        token = sessions.create(user.id)
    except (ValueError, KeyError, requests.RequestException, AppError) as e:
        logger.warning("OAuth completion failed: provider=%s error=%s", provider.id, type(e).__name__)
        return auth_error_url("server_error"), None

    logger.info("OAuth login completed: provider=%s user_id=%s", provider.id, user.id)
    return "/", token


@app.get("/api/auth/callback/{provider}")
def auth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    ticket: Optional[str] = Query(None),
    sessions: SessionStore = Depends(get_session_store),
    users: UserStore = Depends(get_user_store),
) -> RedirectResponse:
    """
    OAuth callback.

    Without a `ticket`: verify `state` against the `auth_state` cookie and dispatch to the
    provider's completion hop. With a `ticket`: exchange the code and create the session.
    The `auth_state` cookie is cleared on every outcome.
    """
    cfg = load_auth_config()
    host = _request_host(request)
    token: Optional[str] = None

    p = get_provider(provider)
    if p is None:
        target = auth_error_url("invalid_provider")
    elif ticket is not None:
        verified_code = read_callback_ticket(cfg, ticket, provider=p.id)
        if verified_code is None:
            target = auth_error_url("invalid_state")
        else:
            target, token = _complete_login(
                cfg,
                p,
                verified_code,
                request_base_url=str(request.base_url),
                sessions=sessions,
                users=users,
            )
    else:
        try:
            verified_code = check_callback(
                code=code,
                state=state,
                error=error,
                saved_state=read_cookie(request.cookies, AUTH_STATE_COOKIE_NAME),
            )
        except InvalidState as e:
            logger.info("OAuth callback rejected: provider=%s error=%s", p.id, e.reason)
            target = auth_error_url(e.reason)
        else:
            signed = issue_callback_ticket(cfg, provider=p.id, code=verified_code)
            if signed is None:
                logger.error("OAuth callback cannot be dispatched: AUTH_SESSION_SECRET is not configured")
                target = auth_error_url("server_error")
            else:
                target = f"/api/auth/callback/{p.id}?{urlencode({'ticket': signed})}"

    resp = _redirect(target)
    apply_cookie(resp, cleared_auth_state_cookie(cfg, host=host))
    if token is not None:
        apply_cookie(resp, session_cookie(cfg, token, host=host))
    return resp


@app.get("/api/auth/logout")
def auth_logout(request: Request, sessions: SessionStore = Depends(get_session_store)) -> RedirectResponse:
    """Destroy the caller's session, clear the cookie and return to the referring page."""
    cfg = load_auth_config()
    host = _request_host(request)
    target = sanitize_redirect_target(
        request.headers.get("referer"),
        request_host=host,
        cookie_domain=resolve_cookie_domain(cfg, host),
    )

    token = read_cookie(request.cookies, SESSION_COOKIE_NAME)
    if token is None:
        return _redirect(target)

    try:
        sessions.destroy(token)
    except Exception:
        logger.exception("Logout failed")
        return _redirect(auth_error_url("logout_failed"))

    resp = _redirect(target)
    apply_cookie(resp, cleared_session_cookie(cfg, host=host))
    return resp


@app.get("/api/auth/session")
def auth_session(request: Request, user: Optional[AuthUser] = Depends(current_user)) -> JSONResponse:
    if user is None:
        resp = JSONResponse(content=None)
        if read_cookie(request.cookies, SESSION_COOKIE_NAME) is not None:
            # Stale or unknown token.
            apply_cookie(resp, cleared_session_cookie(load_auth_config(), host=_request_host(request)))
        resp.headers["Cache-Control"] = "no-store"
        return resp

    session = request.state.session
    resp = JSONResponse(
        content={
            "id": user.id,
            "userId": user.id,
            "email": user.email,
            "name": user.name,
            "image": user.image,
            "expiresAt": session.expires_at.isoformat(),
        }
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.get("/api/auth/providers")
def auth_providers() -> Dict[str, Any]:
    """Providers with configured credentials. Public; returns no secrets."""
    cfg = load_auth_config()
    providers: List[Dict[str, str]] = []
    for pid in cfg.enabled_providers():
        p = PROVIDERS.get(pid)
        if p is None:
            continue
        providers.append({"id": p.id, "name": p.name, "loginUrl": f"/api/auth/login?{urlencode({'provider': p.id})}"})
    return {"ok": True, "providers": providers}


@app.get("/error/auth", response_class=HTMLResponse)
def auth_error_page(error: Optional[str] = Query(None)) -> HTMLResponse:
    code = (error or "").strip()
    message = _AUTH_ERROR_MESSAGES.get(code, _DEFAULT_AUTH_ERROR_MESSAGE)
    body = (
        "<!doctype html>\n"
        "<html><head><meta charset=\"utf-8\"><title>Sign-in error</title></head><body>\n"
        "<h1>Sign-in error</h1>\n"
        f"<p>{html.escape(message)}</p>\n"
        + (f"<p><code>{html.escape(code)}</code></p>\n" if code else "")
        + "<p><a href=\"/\">Back to home</a></p>\n"
        "</body></html>\n"
    )
    return HTMLResponse(content=body)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting lawlzer server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
