"""
FastAPI application entry point.
"""

from fastapi import FastAPI

from prbuilder.config import settings
from prbuilder.api import webhooks
from prbuilder.utils.logging import setup_logging, get_logger

# Configure structured logging
setup_logging(settings.log_level)

logger = get_logger(__name__)

app = FastAPI(
    title="Pull Request Builder",
    description="Builds pull requests and the pull requests that include them across submodule repositories",
    version="0.1.0"
)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "pull-request-builder",
        "version": "0.1.0",
        "docs": "/docs"
    }


app.include_router(webhooks.router)


@app.on_event("startup")
async def startup_event():
    """Start the event workers and queue the initial configuration sync."""
    logger.info("Starting pull request builder")

    from prbuilder.services.orchestrator import get_orchestrator
    await get_orchestrator().start()
    logger.info("Orchestrator started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the event workers."""
    logger.info("Shutting down pull request builder")

    from prbuilder.services.orchestrator import get_orchestrator
    await get_orchestrator().stop()


def run() -> None:
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
