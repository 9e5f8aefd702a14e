# app.py
"""
midicompare main entry (FastAPI)

- App Factory pattern for testing & packaging
- Dev CORS: allow localhost any port (supports credentials)
- Prod CORS: MUST specify explicit origins (no wildcard with credentials)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from routers.compare import router as compare_router
from routers.health import SERVICE_VERSION
from routers.health import router as health_router

logger = logging.getLogger("midicompare")


def _is_dev(app_env: str) -> bool:
    v = (app_env or "").strip().lower()
    return v in {"dev", "development", "local"}


def _parse_origins(raw: Optional[str]) -> list[str]:
    """
    Parse comma-separated origins string into list.
    Example: "https://a.com,https://b.com"
    """
    if not raw:
        return []
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


@asynccontextmanager
async def lifespan(_: FastAPI):
    s = get_settings()
    logger.info(
        "Service starting (env=%s, timing_tolerance=%.3fs, pitch_tolerance=%d)",
        s.app_env,
        s.timing_tolerance_sec,
        s.pitch_tolerance_semitones,
    )
    yield
    logger.info("Service shutting down...")


def create_app() -> FastAPI:
    s = get_settings()

    # logging once (avoid duplicated handlers in reload/test)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, s.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    app = FastAPI(
        title="midicompare",
        version=SERVICE_VERSION,
        description="Transcribed MIDI vs. reference MIDI similarity API",
        lifespan=lifespan,
    )

    # expose settings for debugging
    app.state.settings = s

    # ---- CORS ----
    if _is_dev(s.app_env):
        allow_origins: list[str] = []
        allow_origin_regex = r"http://(?:localhost|127\.0\.0\.1)(?::\d+)?"
        allow_credentials = True
    else:
        allow_origins = _parse_origins(s.cors_allow_origins)
        allow_origin_regex = None
        # no explicit origins -> no credentials
        allow_credentials = bool(allow_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Routers ----
    app.include_router(health_router)
    app.include_router(compare_router)

    @app.get("/", include_in_schema=False)
    def root():
        return {"service": "midicompare", "docs_url": "/docs", "version": SERVICE_VERSION}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
