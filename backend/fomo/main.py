"""FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fomo.config import settings
from fomo.database import Base, engine

# Import routers
from fomo.routers import events, responses

# Import all models so Base.metadata knows about them
from fomo.models.event import EventRecord        # noqa: F401
from fomo.models.response import ResponseRecord  # noqa: F401

app = FastAPI(
    title="FOMO Reactions",
    description="Event reactions with optimistic history, calendar periods and filter-bar counts",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(responses.router, prefix="/api/responses", tags=["Responses"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
