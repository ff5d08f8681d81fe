"""HTTP control surface for the sync engine."""

import time
import uuid

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import get_logger
from bansync import __version__
from bansync.engine import SyncEngine
from bansync.exceptions import (
    BanNotFoundError,
    BanSyncException,
    DataShapeError,
    EngineHaltedError,
)
from bansync.host import InMemoryBanList
from bansync.scheduler import SyncScheduler
from bansync.schemas import (
    BanCreatedResponse,
    BanListResponse,
    BanRequest,
    BanResponse,
    ErrorResponse,
    HealthResponse,
    SyncTriggerResponse,
    UnbanResponse,
)

logger = get_logger(__name__)


def get_engine(request: Request) -> SyncEngine:
    """Dependency to get the sync engine"""
    return request.app.state.engine


def get_host(request: Request) -> InMemoryBanList:
    """Dependency to get the host ban list"""
    return request.app.state.host


def get_scheduler(request: Request) -> SyncScheduler:
    """Dependency to get the sync scheduler"""
    return request.app.state.scheduler


def _error(status_code: int, exc: Exception, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


def create_app(engine: SyncEngine, host: InMemoryBanList, scheduler: SyncScheduler) -> FastAPI:
    """
    Build the control API around an engine, its host and its scheduler.

    The scheduler is started on application startup and stopped on shutdown.
    """
    app = FastAPI(
        title="BanSync",
        description="Ban list synchronization across server processes",
        version=__version__,
    )
    app.state.engine = engine
    app.state.host = host
    app.state.scheduler = scheduler

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.debug(
            f"{request.method} {request.url.path} status={response.status_code} "
            f"duration={duration:.3f}s [request_id={request_id}]"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.on_event("startup")
    async def startup_event():
        logger.info("BanSync service starting up...")
        await scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await scheduler.stop()
        logger.info("BanSync service shut down")

    @app.exception_handler(EngineHaltedError)
    async def engine_halted_handler(request: Request, exc: EngineHaltedError):
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc, "ENGINE_HALTED")

    @app.exception_handler(BanNotFoundError)
    async def ban_not_found_handler(request: Request, exc: BanNotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, exc, "BAN_NOT_FOUND")

    @app.exception_handler(DataShapeError)
    async def data_shape_handler(request: Request, exc: DataShapeError):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, "INVALID_IDENTITY")

    @app.exception_handler(BanSyncException)
    async def bansync_exception_handler(request: Request, exc: BanSyncException):
        logger.error(f"BanSync exception: {exc} path={request.url.path}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc, "INTERNAL_ERROR")

    @app.get("/")
    async def root():
        return {"message": "BanSync API", "status": "running", "version": __version__}

    @app.get("/health", response_model=HealthResponse)
    def health_check(engine: SyncEngine = Depends(get_engine)):
        return HealthResponse(
            status="halted" if engine.halted else "healthy",
            state=engine.state.value,
            halted=engine.halted,
            bootstrapped=engine.bootstrapped,
            backend=engine.store.backend_name,
            snapshot_size=len(engine.snapshot),
            cycles_completed=engine.cycles_completed,
            last_error=engine.last_error,
        )

    @app.get("/bans", response_model=BanListResponse)
    def list_bans(engine: SyncEngine = Depends(get_engine)):
        bans = [BanResponse(**record.to_dict()) for record in engine.snapshot]
        return BanListResponse(bans=bans, count=len(bans))

    @app.post(
        "/bans",
        response_model=BanCreatedResponse,
        status_code=status.HTTP_201_CREATED,
        responses={422: {"model": ErrorResponse}},
    )
    def ban_user(
        body: BanRequest,
        engine: SyncEngine = Depends(get_engine),
        host: InMemoryBanList = Depends(get_host),
    ):
        record = host.ban_user(body.user_id, body.name, body.reason)
        return BanCreatedResponse(
            **record.to_dict(),
            synchronized=engine.snapshot_contains(record),
        )

    @app.delete(
        "/bans/{user_id}",
        response_model=UnbanResponse,
        responses={404: {"model": ErrorResponse}},
    )
    def unban_user(
        user_id: str,
        engine: SyncEngine = Depends(get_engine),
        host: InMemoryBanList = Depends(get_host),
    ):
        if not host.unban_user(user_id):
            raise BanNotFoundError(f"User {user_id} is not banned")
        return UnbanResponse(
            user_id=user_id,
            synchronized=not engine.halted and engine.snapshot_get(user_id) is None,
        )

    @app.post(
        "/sync",
        response_model=SyncTriggerResponse,
        status_code=status.HTTP_202_ACCEPTED,
        responses={503: {"model": ErrorResponse}},
    )
    async def trigger_sync(
        engine: SyncEngine = Depends(get_engine),
        scheduler: SyncScheduler = Depends(get_scheduler),
    ):
        if engine.halted:
            raise EngineHaltedError("Sync engine is halted; restart the service to resume synchronization")
        scheduler.trigger()
        return SyncTriggerResponse(triggered=scheduler.running, state=engine.state.value)

    return app
