"""FastAPI application."""
from fastapi import FastAPI

from weaveflow import __version__
from weaveflow.api.routes import graph, health, runs
from weaveflow.observability import setup_logging

# Setup logging
setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Weaveflow",
    description="Workflow graph engine for LLM and media processing nodes",
    version=__version__,
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(graph.router, tags=["graph"])
app.include_router(runs.router, tags=["runs"])


@app.get("/")
def root() -> dict:
    """Root endpoint."""
    return {
        "service": "weaveflow",
        "version": __version__,
        "docs": "/docs",
    }
