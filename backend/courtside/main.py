import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtside import __version__, config
from courtside.database import init_db
from courtside.routes import brackets, matches, scheduling

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Courtside Tournament Engine API", version=__version__)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(config.CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(brackets.router, prefix="/api", tags=["brackets"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(scheduling.router, prefix="/api", tags=["scheduling"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Courtside %s started (database: %s)", __version__, config.DATABASE_URL.split("://", 1)[0])


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Courtside Tournament Engine API", "version": __version__, "status": "healthy"}
