#!/usr/bin/env python3

import uvicorn

from rizara.config import settings
from rizara.utils.logger import app_logger


if __name__ == "__main__":
    app_logger.info("=" * 80)
    app_logger.info(f"Starting {settings.app_name}")
    app_logger.info("=" * 80)

    uvicorn.run(
        "rizara.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info",
        access_log=True
    )
