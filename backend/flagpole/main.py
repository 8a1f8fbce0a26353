"""Main FastAPI application."""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from flagpole.api import api_keys, auth, flags, projects
from flagpole.config import settings
from flagpole.database import init_db
from flagpole.utils.exceptions import (
    AppException,
    app_exception_handler,
    database_exception_handler,
)
from flagpole.utils.logger import logger

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables (in production, use migrations)
    init_db()
    logger.info(f"Flagpole API started ({settings.environment})")
    yield


app = FastAPI(
    title="Flagpole API",
    description="Backend API for Flagpole feature flags",
    version=VERSION,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)

# Include routers
app.include_router(auth.router)
app.include_router(api_keys.router)
app.include_router(projects.router)
app.include_router(flags.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Flagpole API",
        "version": VERSION,
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
