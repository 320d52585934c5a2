"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assistant import __version__
from assistant.api.endpoints import router
from assistant.config import load_config
from assistant.utils.logging import LogConfig, setup_logging

setup_logging(LogConfig(level=load_config().log_level))

# Create FastAPI application
app = FastAPI(
    title="Personal Assistant",
    description=(
        "A conversational assistant that streams model turns and runs tools for tasks, "
        "contacts and notes between rounds."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {
            "name": "Conversation",
            "description": "Run conversation turns, blocking or streamed as server-sent events.",
        },
        {
            "name": "Relay",
            "description": "Stream a single model round for clients that orchestrate turns themselves.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("assistant.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
