import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import AsyncSessionLocal, create_tables
from app.core.redis import close_redis
from app.api.v1.compliance import router as compliance_router
from app.services.compliance_service import _log_adjustment_result
from app.services.time_account_service import apply_compliance_adjustment
from app.tasks.background import BackgroundWorker


def build_adjustment_dispatcher():
    if settings.USE_CELERY:
        from app.tasks.compliance_tasks import CeleryAdjustmentDispatcher
        return CeleryAdjustmentDispatcher()
    return BackgroundWorker(
        handler=partial(apply_compliance_adjustment, session_factory=AsyncSessionLocal),
        on_result=_log_adjustment_result,
        maxsize=settings.ADJUSTMENT_QUEUE_SIZE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Tabellen beim Start anlegen (SQLite / lokale Entwicklung)
    await create_tables()

    dispatcher = build_adjustment_dispatcher()
    if isinstance(dispatcher, BackgroundWorker):
        await dispatcher.start()
    app.state.adjustment_dispatcher = dispatcher
    yield
    if isinstance(dispatcher, BackgroundWorker):
        await dispatcher.stop()
    await close_redis()


app = FastAPI(
    title="Compliance API",
    description="Arbeitszeit-Compliance: Regel-Sets, Verstöße, Reports",
    version="1.0.0",
    lifespan=lifespan,
    # Swagger UI nur in Entwicklung – in Produktion DEBUG=false setzen
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = "/api/v1"

app.include_router(compliance_router, prefix=API_PREFIX)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "Compliance API", "version": "1.0.0"}
