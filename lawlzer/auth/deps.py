from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from fastapi import Depends, Request

from lawlzer.auth.config import SESSION_COOKIE_NAME, load_auth_config
from lawlzer.auth.cookies import read_cookie
from lawlzer.auth.models import AuthUser
from lawlzer.auth.session import SessionStore, build_session_store
from lawlzer.auth.users import UserStore, build_user_store
from lawlzer.cooking.days import DayStore, build_day_store
from lawlzer.cooking.store import RecipeStore, build_recipe_store
from lawlzer.errors import Unauthorized

logger = logging.getLogger(__name__)


def _state_store(request: Request, name: str, factory: Callable[[], Any]) -> Any:
    store = getattr(request.app.state, name, None)
    if store is None:
        store = factory()
        setattr(request.app.state, name, store)
    return store


def get_session_store(request: Request) -> SessionStore:
    return _state_store(request, "session_store", lambda: build_session_store(load_auth_config()))


def get_user_store(request: Request) -> UserStore:
    return _state_store(request, "user_store", build_user_store)


def get_recipe_store(request: Request) -> RecipeStore:
    return _state_store(request, "recipe_store", build_recipe_store)


def get_day_store(request: Request) -> DayStore:
    return _state_store(request, "day_store", build_day_store)


def current_user(request: Request) -> Optional[AuthUser]:
    """
    Resolve the caller from the `session_token` cookie and attach it to `request.state`.

    Returns None for anonymous callers; storage failures propagate.
    """
    request.state.session = None
    request.state.user = None

    token = read_cookie(request.cookies, SESSION_COOKIE_NAME)
    if token is None:
        return None

    sessions = get_session_store(request)
    session = sessions.get(token)
    if session is None:
        return None

    user = get_user_store(request).get(session.user_id)
    if user is None:
        logger.warning("Session for missing user %s; destroying it", session.user_id)
        sessions.destroy(token)
        return None

    request.state.session = session
    request.state.user = user
    return user


def require_user(user: Optional[AuthUser] = Depends(current_user)) -> AuthUser:
    if user is None:
        raise Unauthorized()
    return user
