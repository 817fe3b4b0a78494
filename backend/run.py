#!/usr/bin/env python3
"""
Production run script for the agent telemetry collector.
"""

import uvicorn
from collector.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "collector.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
        access_log=True,
        use_colors=True
    )
