"""
FastAPI application: payment webhook ingestion, health probes and metrics.
"""
from fastapi import FastAPI

from editions.api.routes import health, payments
from editions.core.logging import configure_logging
from editions.utils.metrics import router as metrics_router


configure_logging()

app = FastAPI(
    title="Editions API",
    description="Payment webhook ingestion for the editions release and settlement pipeline",
    version="1.0.0",
)

app.include_router(health.router, tags=["health"])
app.include_router(payments.router)
app.include_router(metrics_router)
