"""
Bulletin Engine — grade aggregation and class ranking.
FastAPI backend entry point.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before the routers read PASS_MARK.
load_dotenv()

from routes.bulletins import router as bulletins_router  # noqa: E402
from routes.palmares import router as palmares_router  # noqa: E402
from routes.ranks import router as ranks_router  # noqa: E402
from routes.payload import PASS_MARK  # noqa: E402
from engine.aggregation import PERIOD_GROUPS  # noqa: E402
from engine.curriculum import KNOWN_LEVELS  # noqa: E402

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Bulletin Engine API")
    yield
    logger.info("Shutting down Bulletin Engine API")


app = FastAPI(
    title="Bulletin Engine API",
    description=(
        "Period, semester and annual totals, mentions and class rankings "
        "for primary and secondary report cards."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(ranks_router, prefix="/api/ranks", tags=["Ranks"])
app.include_router(palmares_router, prefix="/api", tags=["Palmares"])
app.include_router(bulletins_router, prefix="/api/bulletins", tags=["Bulletins"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "pass_mark": PASS_MARK,
    }


@app.get("/api/config")
async def get_config():
    """Return engine configuration to the frontend."""
    return {
        "pass_mark": PASS_MARK,
        "levels": list(KNOWN_LEVELS),
        "periods": list(PERIOD_GROUPS),
    }
