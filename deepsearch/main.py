"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deepsearch import __version__
from deepsearch.api.endpoints import router
from deepsearch.utils.logging import setup_logging

setup_logging()

# Create FastAPI application
app = FastAPI(
    title="Deep Search",
    description=(
        "A chat assistant that answers questions by searching the web and reading pages, "
        "streaming its progress while it works."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {
            "name": "Chat",
            "description": (
                "Run a turn of the deep search assistant and browse stored chats. "
                "Requires the X-User-Id header."
            ),
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

    uvicorn.run("deepsearch.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
