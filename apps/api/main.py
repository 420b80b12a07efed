"""
Content Family Engine - FastAPI Backend
Main application entry point with health check and API routing.
"""

import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_cache_settings
from database import async_session_maker, engine, Base
from dependencies import build_services
import models  # noqa: F401
from routers import (
    health,
    graph,
    analytics,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("🚀 Starting Content Family Engine API...")
    validate_cache_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(async_session_maker)
    print(f"🧮 Aggregate cache backend: {settings.AGGREGATE_CACHE_BACKEND}")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Content Family Engine API",
    description="Track cross-platform content families and aggregate their performance",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(graph.router, prefix="/graph", tags=["Graph"])
app.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Content Family Engine API",
        "version": "0.1.0",
        "status": "running"
    }


def run() -> None:
    """Serve the API with uvicorn on API_HOST:API_PORT."""
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
