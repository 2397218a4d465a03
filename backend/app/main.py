import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import configure_logging, get_settings
from db.engine import dispose_engine, init_db
from routes import captions, music, videos
from services.admission import AdmissionGate
from services.container import build_services
from services.orchestrator import PipelineOrchestrator
from services.worker import PipelineWorker

load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    for issue in settings.validate():
        logger.warning("[config] %s", issue)
    init_db()

    services = build_services(settings)
    worker = PipelineWorker(
        PipelineOrchestrator(services).run,
        concurrency=settings.worker_concurrency,
        stale_after_seconds=settings.stale_job_timeout_seconds,
        watchdog_interval=settings.watchdog_interval_seconds,
    )
    app.state.services = services
    app.state.worker = worker
    app.state.gate = AdmissionGate(settings.spool_dir, worker.enqueue)
    await worker.start()
    try:
        yield
    finally:
        await worker.stop()
        await services.aclose()
        dispose_engine()


app = FastAPI(title="Listing Reels API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(videos.router, prefix="/api")
app.include_router(music.router, prefix="/api")
app.include_router(captions.router, prefix="/api")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
