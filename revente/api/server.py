# api/server.py
# Point d'entrée HTTP (JSON uniquement).

from pathlib import Path

from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from revente.api.deps import get_ctx, current_user, session_token
from revente.core.context import AppContext, build_context
from revente.core.models import Session
from revente.core.services import dashboard
from revente.utils.config import load_config
from revente.utils.exceptions import (
    ReventeError, NotFound, ValidationError, AuthError, EmailInUse, WeakPassword,
    InvalidEmail, TooManyAttempts, StorageError, Unavailable, PermissionDenied,
    QuotaExceeded, DataImportError,
)
from revente.utils.logging import get_logger

logger = get_logger("api")

# ordre important : la sous-classe la plus précise d'abord
ERROR_STATUS = [
    (ValidationError, 422),
    (NotFound, 404),
    (EmailInUse, 409),
    (WeakPassword, 400),
    (InvalidEmail, 400),
    (TooManyAttempts, 429),
    (AuthError, 401),
    (Unavailable, 503),
    (PermissionDenied, 403),
    (QuotaExceeded, 413),
    (StorageError, 502),
    (DataImportError, 400),
]


def _status_for(exc: ReventeError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 400


class Credentials(BaseModel):
    email: str
    password: str
    remember: bool = False


def create_app(ctx: AppContext | None = None) -> FastAPI:
    """Fabrique : `uvicorn revente.api.server:create_app --factory`."""
    ctx = ctx or build_context(load_config())
    app = FastAPI(title=f"{ctx.cfg.app_name} API")
    app.state.ctx = ctx

    photos = Path(ctx.cfg.paths["photos_dir"])
    photos.mkdir(parents=True, exist_ok=True)
    app.mount("/photos", StaticFiles(directory=str(photos)), name="photos")

    @app.exception_handler(ReventeError)
    async def revente_error(request: Request, exc: ReventeError):
        code = _status_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {code} {exc.code}")
        body = {"error": exc.code, "message": exc.user_message}
        if isinstance(exc, ValidationError):
            body["fields"] = exc.errors
        return JSONResponse(status_code=code, content=body)

    def _login_response(session: Session, remember: bool = False) -> JSONResponse:
        resp = JSONResponse({"user": session.to_dict()})
        resp.set_cookie(key=ctx.cfg.security["cookie_name"], value=session_token(ctx, session, remember),
                        httponly=True, samesite="lax")
        return resp

    # —— authentification —— #
    @app.post("/auth/signup")
    def signup(body: Credentials):
        session = ctx.auth.sign_up(body.email, body.password)
        return _login_response(session, body.remember)

    @app.post("/auth/login")
    def login(body: Credentials):
        session = ctx.auth.sign_in(body.email, body.password)
        return _login_response(session, body.remember)

    @app.post("/auth/anonymous")
    def anonymous():
        return _login_response(ctx.auth.sign_in_anonymously())

    @app.post("/auth/logout")
    def logout():
        ctx.auth.sign_out()
        resp = JSONResponse({"ok": True})
        resp.delete_cookie(ctx.cfg.security["cookie_name"])
        return resp

    @app.get("/me")
    def me(user: Session = Depends(current_user)):
        return {"user": user.to_dict(), "mode": ctx.mode}

    @app.get("/dashboard")
    def dashboard_view(request: Request, user: Session = Depends(current_user)):
        c = get_ctx(request)
        records = c.products.list(user.user_id)
        prefs = c.preferences.load(user.user_id)
        return dashboard.summary(records, prefs)

    from revente.api.routes_inventory import router as inv_router
    app.include_router(inv_router, prefix="", tags=["inventory"])

    from revente.api.routes_settings import router as settings_router
    app.include_router(settings_router, prefix="", tags=["settings"])

    from revente.api.routes_transfer import router as transfer_router
    app.include_router(transfer_router, prefix="", tags=["transfer"])

    return app
