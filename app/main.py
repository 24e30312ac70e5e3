# app/main.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import FastAPI

# Load .env file before any config loading
repo_root = Path(__file__).resolve().parents[1]
env_file = repo_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

from app.config import load_config
from app.logging_config import APP_LOGGER, setup_logging
from app.routes.imports import router as imports_router
from app.routes.journal import router as journal_router
from app.services import journal_db
from app.services.import_sessions import ImportSessionStore


cfg: Dict[str, Any] = load_config()
setup_logging(cfg)
logger = logging.getLogger(APP_LOGGER)

app = FastAPI(
    title="Trade Journal API",
    description="Trade journal with playbooks, performance summaries and CSV import",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

imports_cfg = cfg.get("imports", {})

# Bind shared objects on app.state
app.state.config = cfg
app.state.imports = ImportSessionStore(
    preview_rows=int(imports_cfg.get("preview_rows", 5)),
    max_upload_bytes=int(imports_cfg.get("max_upload_bytes", 5 * 1024 * 1024)),
    max_sessions=int(imports_cfg.get("max_sessions", 100)),
    idle_ttl_seconds=float(imports_cfg.get("session_ttl_seconds", 3600)),
)

logger.info("Trade Journal API starting up...")

# Routes
app.include_router(journal_router)
app.include_router(imports_router)


@app.on_event("startup")
async def startup_event() -> None:
    """Bind the configured journal database and make sure its tables exist."""
    db_path = cfg.get("journal", {}).get("db_path")
    if db_path:
        journal_db.configure(db_path)
    journal_db.ensure_schema()
    logger.info("Journal database: %s", journal_db.JOURNAL_DB)
    logger.info("API documentation available at /docs")


@app.get("/health")
async def health() -> Dict[str, Any]:
    store: ImportSessionStore = app.state.imports
    return {
        "status": "ok",
        "journal_db": str(journal_db.JOURNAL_DB),
        "import_sessions": len(store),
    }
