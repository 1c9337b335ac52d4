#!/usr/bin/env python3
"""
Vendor Catalog Backend Startup Script
This script starts the FastAPI server with all services.
"""

import logging

import uvicorn

from src.config import LOG_LEVEL

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("Starting Vendor Catalog Backend...")
    logger.info("Available endpoints:")
    logger.info("  - Health Check: GET /health")
    logger.info("  - Products: GET/POST /api/products, GET/PUT/DELETE /api/products/{id}")
    logger.info("  - Product Search: GET /api/products/search?category=...")
    logger.info("  - Vendor Products: GET/POST /api/vendor/products, PUT/DELETE /api/vendor/products/{id}")
    logger.info("  - Vendors: GET/DELETE /api/vendors/{id}, PATCH /api/vendors/{id}/demote")
    logger.info("  - Media: GET /object/public/{bucket}/{path}")
    logger.info("  - API Docs: http://localhost:8000/docs")

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
