"""
Operator session handling.

The session itself lives in a signed cookie (Starlette SessionMiddleware).
Handlers never read it directly: they receive a SessionContext built per
request by get_session_context.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.utils import utc_now

logger = logging.getLogger(__name__)

SESSION_MAX_AGE = 24 * 60 * 60  # 24 hours


@dataclass
class SessionContext:
    authenticated: bool = False
    login_time: Optional[str] = None


def get_session_context(request: Request) -> SessionContext:
    """FastAPI dependency: snapshot of the caller's session."""
    session = request.session
    return SessionContext(
        authenticated=bool(session.get("authenticated")),
        login_time=session.get("login_time"),
    )


def require_auth(context: SessionContext = Depends(get_session_context)) -> SessionContext:
    """FastAPI dependency: reject callers that have not entered the PIN."""
    if not context.authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please verify PIN.",
        )
    return context


def verify_pin(candidate: Optional[str], expected: str) -> bool:
    """Constant-time PIN comparison."""
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def start_session(request: Request) -> SessionContext:
    context = SessionContext(authenticated=True, login_time=utc_now())
    request.session["authenticated"] = True
    request.session["login_time"] = context.login_time
    logger.info("Operator session started")
    return context


def end_session(request: Request) -> None:
    request.session.clear()
    logger.info("Operator session ended")
