from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from Security.activity_logging import ActivityLoggingMiddleware
from Security.error_handling import register_error_handlers
from Security.lockout_countdown import LockoutExpiryScheduler
from Security.metrics import render_latest
from Security.request_context import RequestContextMiddleware
from Security.security_config import SECURITY_SETTINGS, session_secret

from .admin_routes import register_admin_routes
from .app_context import login_guard
from .database import init_db
from .web_auth_routes import register_web_auth_routes

logger = logging.getLogger("backoffice")

DASHBOARD_REDIRECT = "/dashboard"


def create_app(guard=None, create_tables: bool = True) -> FastAPI:
    guard = guard or login_guard

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if create_tables:
            init_db()
        countdown = LockoutExpiryScheduler(guard)
        countdown.start()
        app.state.lockout_countdown = countdown
        logger.info("Back-office started (lockout scope=%s)", guard.scope)
        try:
            yield
        finally:
            countdown.shutdown()

    app = FastAPI(title="GenRide Back-Office", lifespan=lifespan)
    app.state.login_guard = guard

    @app.middleware("http")
    async def add_no_cache_headers(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(("/api/auth", "/api/admin", "/dashboard")):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
        return response

    @app.middleware("http")
    async def expire_idle_sessions(request: Request, call_next):
        if "session" not in request.scope:
            return await call_next(request)
        session = request.session
        if session.get("uid"):
            now_ts = int(time.time())
            max_age = int(SECURITY_SETTINGS["SESSION_MAX_AGE"])
            last_seen = int(session.get("_last_seen", now_ts))
            if max_age and (now_ts - last_seen) > max_age:
                session.clear()
            else:
                session["_last_seen"] = now_ts
        return await call_next(request)

    # Last added runs first: request context wraps sessions wraps activity logging.
    app.add_middleware(ActivityLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret(),
        max_age=SECURITY_SETTINGS["SESSION_MAX_AGE"],
        same_site="strict",
    )
    app.add_middleware(RequestContextMiddleware)

    register_web_auth_routes(app)
    register_admin_routes(app)
    register_error_handlers(app)

    @app.get("/")
    def root_redirect():
        return RedirectResponse(DASHBOARD_REDIRECT, status_code=303)

    @app.get("/metrics")
    def metrics():
        body, content_type = render_latest()
        return Response(content=body, media_type=content_type)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backoffice.main:app", host="127.0.0.1", port=8000)
