from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
from pathlib import Path
from dotenv import load_dotenv


# ---- load .env files (backend/.env then repo .env) ----------------------
CURRENT_FILE = Path(__file__).resolve()
BACKEND_DIR = CURRENT_FILE.parents[1]
REPO_ROOT = CURRENT_FILE.parents[2]

# Collect candidate .env files in priority order
_env_candidates = [
    BACKEND_DIR / ".env.local",
    BACKEND_DIR / ".env",
    REPO_ROOT / ".env.local",
    REPO_ROOT / ".env",
]
_loaded = []
for env_path in _env_candidates:
    if env_path.exists():
        # Do not override already-set env vars; load in priority order
        load_dotenv(env_path, override=False)
        _loaded.append(str(env_path))

# ---- logging -------------------------------------------------------------
logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("edi_outbound")

if _loaded:
    logger.info("Loaded env files: %s", ", ".join(_loaded))
else:
    logger.info("No .env file found next to backend/ or repo root.")

# Routers are imported after the .env files are loaded
from edi_outbound.core.celery_app import init_celery  # noqa: E402
from edi_outbound.core.config import get_settings  # noqa: E402
from edi_outbound.routers import shipments, upload  # noqa: E402


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # fail at boot on a bad GS1 prefix instead of on the first order
    settings = get_settings()
    logger.info(
        "EDI outbound: transport=%s supplier=%s gs1_prefix=%s capacity=%s",
        settings.transport, settings.supplier_id or "-", settings.gs1_company_prefix, settings.parcel_capacity,
    )
    init_celery()
    yield


app = FastAPI(title="Outbound EDI Dispatch API", lifespan=lifespan)


# ---- CORS (dev-friendly) ----------------------------------------------
_default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_env = os.getenv("FRONTEND_ORIGINS") or os.getenv("FRONTEND_ORIGIN") or ""
_env_list = [o.strip() for o in _env.split(",") if o and o.strip()]
origins = sorted(set(_default_origins + _env_list))

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=86400,
)

# ---- register routers ------------------------------------------------------
app.include_router(shipments.router)
app.include_router(upload.router)


# ---- simple health check ---------------------------------------------------
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}
