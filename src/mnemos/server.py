import logging
import logging.handlers
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from mnemos.application.config import resolve_config
from mnemos.application.factory import Services, build_services
from mnemos.consts import VERSION
from mnemos.domain.errors import (
    InvalidInputError,
    InvariantViolation,
    MnemosError,
    NotFoundError,
    TransientStoreError,
)
from mnemos.domain.models import ModuleType

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mnemos.server")

_STATUS_CODES: dict[type[MnemosError], int] = {
    InvalidInputError: 400,
    NotFoundError: 404,
    InvariantViolation: 409,
    TransientStoreError: 503,
}


def http_error(e: MnemosError) -> HTTPException:
    """Map a domain error to its HTTP status."""
    for error_type, status in _STATUS_CODES.items():
        if isinstance(e, error_type):
            return HTTPException(status_code=status, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def attach_file_log(log_dir: Path) -> Path:
    """Mirror the mnemos loggers into a rotating `server.log` under log_dir."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logging.getLogger("mnemos").addHandler(handler)
    return log_file


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the HTTP app. Without explicit services they are built from the
    resolved config at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if getattr(app.state, "services", None) is None:
            config = resolve_config()
            log_file = attach_file_log(config.log_dir)
            logger.info(f"Writing server logs to {log_file}")
            app.state.services = build_services(config)
        logger.info(f"mnemos server v{VERSION} starting up...")
        yield
        # Shutdown
        logger.info("mnemos server shutting down...")

    app = FastAPI(
        title="mnemos",
        description="Spaced-repetition memory and session progression engine.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.start_time = time.time()
    _register_routes(app)
    return app


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class StartSessionRequest(BaseModel):
    user_id: str
    lesson_id: str
    restart: bool = False


class AnswerRequest(BaseModel):
    user_id: str
    item_id: str
    outcome: str
    attempts: int | None = Field(default=None, ge=1)
    lesson_id: str | None = None


class SkipRequest(BaseModel):
    user_id: str
    skipped: bool = True


class ReviewRequest(BaseModel):
    user_id: str
    quality: int | str


class DailyLimitRequest(BaseModel):
    daily_limit: int | None = Field(default=None, ge=0)


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """
        Simple health check to verify server is reachable.
        """
        return HealthResponse(
            status="ok",
            version=VERSION,
            uptime_seconds=time.time() - request.app.state.start_time,
        )

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.get("/lessons")
    async def list_lessons(request: Request):
        return get_services(request).catalog.lessons

    # ---------------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------------

    @app.post("/sessions")
    async def start_session(req: StartSessionRequest, request: Request):
        logger.info(f"Session start requested: {req.user_id}/{req.lesson_id}")
        try:
            return await get_services(request).sessions.start_session(
                req.user_id, req.lesson_id, restart=req.restart
            )
        except MnemosError as e:
            raise http_error(e) from e

    @app.get("/sessions/{user_id}/{lesson_id}")
    async def get_session_state(user_id: str, lesson_id: str, request: Request):
        try:
            snapshot = await get_services(request).sessions.get_session_state(user_id, lesson_id)
        except MnemosError as e:
            raise http_error(e) from e
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"No session for {user_id}/{lesson_id}")
        return snapshot

    @app.get("/sessions/{user_id}/{lesson_id}/next")
    async def get_next_item(user_id: str, lesson_id: str, request: Request):
        try:
            item = await get_services(request).sessions.get_next_item(user_id, lesson_id)
        except MnemosError as e:
            raise http_error(e) from e
        return {"item": item}

    @app.post("/sessions/answer")
    async def submit_answer(req: AnswerRequest, request: Request):
        try:
            return await get_services(request).sessions.submit_answer(
                req.user_id,
                req.item_id,
                req.outcome,
                attempts=req.attempts,
                lesson_id=req.lesson_id,
            )
        except MnemosError as e:
            raise http_error(e) from e

    @app.post("/sessions/{user_id}/{lesson_id}/evaluate")
    async def evaluate_round(user_id: str, lesson_id: str, request: Request):
        try:
            return await get_services(request).sessions.evaluate_round(user_id, lesson_id)
        except MnemosError as e:
            raise http_error(e) from e

    @app.delete("/sessions/{user_id}/{lesson_id}")
    async def abandon_session(user_id: str, lesson_id: str, request: Request):
        try:
            cleared = await get_services(request).sessions.abandon_session(user_id, lesson_id)
        except MnemosError as e:
            raise http_error(e) from e
        return {"cleared": cleared}

    # ---------------------------------------------------------------------------
    # Users and items
    # ---------------------------------------------------------------------------

    @app.get("/users/{user_id}/unlock")
    async def get_unlock_info(user_id: str, request: Request):
        try:
            return await get_services(request).sessions.get_unlock_info(user_id)
        except MnemosError as e:
            raise http_error(e) from e

    @app.get("/users/{user_id}/stats")
    async def get_statistics(user_id: str, request: Request, module: ModuleType | None = None):
        try:
            return await get_services(request).stats.get_statistics(user_id, module_type=module)
        except MnemosError as e:
            raise http_error(e) from e

    @app.get("/users/{user_id}/progress")
    async def get_user_progress(user_id: str, request: Request):
        try:
            return await get_services(request).sessions.get_user_progress(user_id)
        except MnemosError as e:
            raise http_error(e) from e

    @app.put("/users/{user_id}/daily-limit")
    async def set_daily_limit(user_id: str, req: DailyLimitRequest, request: Request):
        try:
            progress = await get_services(request).sessions.set_daily_limit(
                user_id, req.daily_limit
            )
        except MnemosError as e:
            raise http_error(e) from e
        return {"user_id": progress.user_id, "daily_limit": progress.daily_limit}

    @app.post("/items/{item_id}/skip")
    async def set_skipped(item_id: str, req: SkipRequest, request: Request):
        try:
            return await get_services(request).sessions.set_skipped(
                req.user_id, item_id, skipped=req.skipped
            )
        except MnemosError as e:
            raise http_error(e) from e

    @app.post("/items/{item_id}/review")
    async def record_review(item_id: str, req: ReviewRequest, request: Request):
        try:
            return await get_services(request).sessions.record_review(
                req.user_id, item_id, req.quality
            )
        except MnemosError as e:
            raise http_error(e) from e


app = create_app()
