"""
Main FastAPI application entry point.
Hosts the transcript analysis workflow for the tenant console.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api import transcripts
from backend.app.config import WorkflowConfig
from backend.app.services.workflow_registry import WorkflowRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = WorkflowConfig.from_env()
    app.state.workflows = WorkflowRegistry(config)
    logger.info(f"Transcript workflows using job API at {config.api_base_url}")
    yield
    # Stop every poller before the loop goes away
    closed = app.state.workflows.close_all()
    logger.info(f"Shutdown: closed {closed} workflow(s)")


app = FastAPI(title="Tenant Console Transcript API", lifespan=lifespan)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(transcripts.router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "message": "API is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
