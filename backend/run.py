#!/usr/bin/env python3
"""
Start the SlideKit render server.
"""

import logging

import uvicorn

from slidekit.config import get_settings
from slidekit.logging_config import setup_logging

settings = get_settings()

if __name__ == "__main__":
    setup_logging(settings.log_level)
    logger = logging.getLogger("slidekit")
    logger.info(f"Starting server at http://{settings.host}:{settings.port}")
    logger.info(f"API Docs: http://localhost:{settings.port}/docs")

    uvicorn.run(
        "slidekit.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )
