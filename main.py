# FILE: main.py
"""
Scribe Backend - FastAPI Application

Applies the actions embedded in AI responses (file writes, renames, deletes,
search-replace patches, package installs, SQL) to a project on disk and
records each applied response as one git commit.

Run with: python -m uvicorn main:app --port 8000

Routers:
- /memory  - projects, chats and messages
- /actions - parse, dry-run, type-check and apply responses
"""
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

from scribe import __version__
from scribe.db import init_db
from scribe.memory.router import router as memory_router
from scribe.actions.router import router as actions_router
from scribe.actions.config import PROJECTS_ROOT, REMOTE_API_TOKEN, WRITE_SQL_MIGRATIONS

logging.basicConfig(
    level=os.getenv("SCRIBE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Scribe",
    version=__version__,
    description="Applies AI response actions to projects and commits them",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:8000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====== STARTUP ======

@app.on_event("startup")
def on_startup():
    os.makedirs("data", exist_ok=True)
    init_db()
    logger.info("[startup] Database initialized")
    logger.info("[startup] Projects root: %s", PROJECTS_ROOT)
    if REMOTE_API_TOKEN:
        logger.info("[startup] SCRIBE_REMOTE_API_TOKEN: [OK] set (enables SQL and function deploys)")
    else:
        logger.warning("[startup] SCRIBE_REMOTE_API_TOKEN: [X] NOT SET - linked-database actions will fail")
    logger.info("[startup] SQL migration files: %s", "enabled" if WRITE_SQL_MIGRATIONS else "disabled")


# ====== ROUTERS ======

app.include_router(memory_router)
app.include_router(actions_router)


# ====== PUBLIC ENDPOINTS ======

@app.get("/ping")
def ping():
    """Health check."""
    return {"status": "ok", "version": __version__}

