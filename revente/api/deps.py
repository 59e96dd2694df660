# api/deps.py
from __future__ import annotations
from fastapi import Request, HTTPException, status

from revente.core.context import AppContext
from revente.core.models import Session
from revente.utils.security import issue_session_token, read_session_token

def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx

def session_token(ctx: AppContext, session: Session, remember: bool = False) -> str:
    # « se souvenir de moi » : durée du jeton de rafraîchissement
    sec = ctx.cfg.security
    minutes = int(sec["access_token_minutes"])
    if remember:
        minutes = int(sec["refresh_token_days"]) * 24 * 60
    return issue_session_token(session.to_dict(), sec["secret_key"], minutes)

def _bearer(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None

def current_user(request: Request) -> Session:
    """Cookie de session (ou en-tête Bearer) -> Session ; 401 sinon."""
    sec = get_ctx(request).cfg.security
    token = request.cookies.get(sec["cookie_name"]) or _bearer(request)
    data = read_session_token(token, sec["secret_key"]) if token else None
    if data is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session requise")
    return Session(**data)
