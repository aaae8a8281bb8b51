import logging

from fastapi import FastAPI
from app.routers import alert, analytics, imports, lead, market, property

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(
    title="Business Conector Lead Engine",
    version="1.0.0"
)

# --- Register Routers ---
app.include_router(lead.router)         # /api/v1/leads/*
app.include_router(property.router)     # /api/v1/properties/*
app.include_router(market.router)       # /api/v1/markets/*
app.include_router(analytics.router)    # /api/v1/analytics/*
app.include_router(alert.router)        # /api/v1/alerts/*
app.include_router(imports.router)      # /api/v1/imports/*


# --- Root health check ---
@app.get("/")
async def root():
    return {"message": "Business Conector Lead Engine is running"}
