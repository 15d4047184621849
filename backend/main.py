"""
COG metadata catalog - FastAPI application
"""
import os
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api import auth, metadata, product, satellite, users
from common.security import get_cors_origins

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="COG Metadata Catalog API",
    description="Metadata catalog for Cloud-Optimized GeoTIFF satellite imagery",
    version="0.1.0"
)

origins_list = get_cors_origins()
logger.info(f"CORS Origins configured: {origins_list}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins_list,
    allow_credentials=True if origins_list != ["*"] else False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One line per request with its status code"""
    response = await call_next(request)
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    logger.info(f"{timestamp} - {request.method} {request.url} ---- STATUS CODE: {response.status_code}")
    return response


app.include_router(metadata.router)
app.include_router(product.router)
app.include_router(satellite.router)
app.include_router(auth.router)
app.include_router(users.router)


@app.get("/")
async def root():
    """Root endpoint - health check"""
    return {
        "status": "ok",
        "message": "COG metadata catalog API is running",
        "version": "0.1.0"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "cog-metadata-catalog"
    }


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host=host, port=port)
