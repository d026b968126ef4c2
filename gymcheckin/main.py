# gymcheckin/main.py
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import ResponseValidationError
from fastapi.exception_handlers import http_exception_handler
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gymcheckin.config import Settings
from gymcheckin.database import Base, build_engine, engine_info, make_session_factory
from gymcheckin.errors import CheckinError
from gymcheckin.gateway import InstantPaymentGateway, LinePayGateway
from gymcheckin.integrations import LineIdentityProvider
from gymcheckin.lifecycle import make_clock
from gymcheckin.repository import LocalCheckinRepository
from gymcheckin.routers import checkin, payments, prices, users
from gymcheckin.auth import get_db
from gymcheckin import models  # noqa: F401  (registers tables on Base.metadata)


def _build_gateway(settings: Settings):
    if settings.payment_bypassed:
        print("[PAYMENT] Payment bypass enabled: checkins are marked PAID on creation.")
        return None
    if settings.is_local:
        return InstantPaymentGateway(settings.public_base_url)
    return LinePayGateway(
        channel_id=settings.line_pay_channel_id,
        channel_secret=settings.line_pay_channel_secret or "",
        public_base_url=settings.public_base_url,
        sandbox=settings.line_pay_sandbox,
        timeout=settings.gateway_timeout_seconds,
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckinError)
    async def checkin_error_handler(request: Request, exc: CheckinError):
        tag = f" checkin={exc.checkin_id}" if exc.checkin_id else ""
        if exc.status_code >= 500:
            print(f"[API] {type(exc).__name__}{tag}: {exc.detail[:240]}")
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
        # Ensure clients never get plain-text "Internal Server Error" on DB issues.
        print(f"[DB] SQLAlchemy error on {request.url.path}: {str(exc)[:240]}")
        return JSONResponse(status_code=503, content={"detail": "Database connection unavailable"})

    @app.exception_handler(ResponseValidationError)
    async def response_validation_error_handler(request: Request, exc: ResponseValidationError):
        print(f"[API] Response validation error: {str(exc)[:240]}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Preserve FastAPI's HTTPException behavior.
        if isinstance(exc, HTTPException):
            return await http_exception_handler(request, exc)

        print(f"[UNHANDLED] {type(exc).__name__} on {request.url.path}: {str(exc)[:240]}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and every collaborator it needs, once per process.

    Run with: uvicorn gymcheckin.main:create_app --factory
    """
    settings = settings or Settings.from_env()

    app = FastAPI(title="Gym Check-in")
    app.state.settings = settings
    app.state.clock = make_clock(settings.facility_timezone)
    app.state.gateway = _build_gateway(settings)
    app.state.identity_provider = LineIdentityProvider(
        allow_development_bypass=settings.allow_development_bypass,
        timeout=settings.identity_timeout_seconds,
    )
    app.state.engine = None
    app.state.db_source = None
    app.state.session_factory = None
    app.state.local_repository = None

    # -----------------------------------------
    # Storage
    # -----------------------------------------
    if settings.is_local:
        app.state.local_repository = LocalCheckinRepository(settings.local_store_path)
        print(f"[LOCAL] Local mode: no database, store={settings.local_store_path or 'memory'}")
    else:
        engine, source = build_engine(settings)
        Base.metadata.create_all(bind=engine)
        app.state.engine = engine
        app.state.db_source = source
        app.state.session_factory = make_session_factory(engine)
        print("[DB] Database connected successfully")

    _register_error_handlers(app)

    # -----------------------------------------
    # CORS Settings
    # -----------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    @app.get("/health")
    def health(db=Depends(get_db)):
        """
        Lightweight health check for deploy debugging.
        """
        state = app.state
        payload = {
            "ok": True,
            "mode": settings.deployment_mode,
            "payment_bypassed": settings.payment_bypassed,
            "gateway": type(state.gateway).__name__ if state.gateway else None,
            "db": None,
            "db_source": state.db_source,
            "db_driver": engine_info(state.engine).get("driver") if state.engine else None,
        }
        if db is None:
            return payload
        try:
            db.execute(text("select 1"))
            payload["db"] = "ok"
        except SQLAlchemyError as e:
            print(f"[HEALTH] Database error: {str(e)[:200]}")
            payload["ok"] = False
            payload["db"] = "error"
        return payload

    # -----------------------------------------
    # Routers
    # -----------------------------------------
    app.include_router(users.router)
    app.include_router(prices.router)
    app.include_router(checkin.router)
    app.include_router(payments.router)

    return app
