import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .ai_routes import router as ai_router
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import check_connection, get_engine
from .logging_config import configure_logging
from .profile_routes import router as profile_router
from .progress_routes import router as progress_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="NexusLearn Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(progress_router)
app.include_router(profile_router)
app.include_router(ai_router)

settings_snapshot = get_settings()
logger.info("Backend starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("OpenAI API key configured: %s", settings_snapshot.ai_configured)


@app.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        check_connection(engine)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "pool": get_pool_snapshot(engine),
        "persistence_mode": settings.persistence_mode,
    }


@app.get("/info")
def info(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {
        "name": app.title,
        "version": app.version,
        "ai_configured": settings.ai_configured,
        "persistence_mode": settings.persistence_mode,
        "agent_model": settings.agent_model,
    }
