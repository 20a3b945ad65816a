#!/usr/bin/env python3
"""
Startup script for the Pulse Recommendations API.
"""

import logging
import sys
from pathlib import Path

import uvicorn

# Add src to path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("start_api")
    logger.info("Starting Pulse Recommendations API...")
    logger.info("API Documentation: http://localhost:8000/docs")
    logger.info("Health Check: http://localhost:8000/health")

    uvicorn.run(
        "pulse.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
