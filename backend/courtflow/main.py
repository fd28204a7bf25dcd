import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtflow.database import init_db
from courtflow.routes import courts, events, schedule, templates

logger = logging.getLogger(__name__)

app = FastAPI(title="Courtflow Scheduling API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(courts.router, prefix="/api", tags=["courts"])
app.include_router(templates.router, prefix="/api", tags=["templates"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    logger.info("Registered %d routes", len(app.routes))


@app.get("/api/health")
def health_check():
    """Liveness probe"""
    return {"app_name": "Courtflow Scheduling API", "status": "healthy"}
