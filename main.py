"""
Elta CRM Backend - Main Application

Calculation and supplier catalog backend for an electrical and solar
contractor: offer pricing, Kalkia estimates, electrical and solar
calculators, auto-project estimation and supplier price sync.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
import logging

from elta.routers import calculator, electrical, solar, estimation, offers, suppliers
from elta.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Elta CRM Backend...")
    start_scheduler()
    yield
    logger.info("Shutting down Elta CRM Backend...")
    stop_scheduler()


app = FastAPI(
    title="Elta CRM Backend",
    description="Pricing, estimation and supplier sync for Elta Solar",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(calculator.router, prefix="/api/calculator", tags=["Calculator"])
app.include_router(electrical.router, prefix="/api/electrical", tags=["Electrical"])
app.include_router(solar.router, prefix="/api/solar", tags=["Solar"])
app.include_router(estimation.router, prefix="/api/estimation", tags=["Auto-Project Estimation"])
app.include_router(offers.router, prefix="/api/offers", tags=["Offers"])
app.include_router(suppliers.router, prefix="/api/suppliers", tags=["Suppliers"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Elta CRM Backend",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "supabase_configured": bool(os.getenv("SUPABASE_URL")),
        "sync_enabled": os.getenv("SYNC_ENABLED", "true").lower() == "true",
        "ao_base_url": os.getenv("AO_BASE_URL", "https://ao.dk"),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
