#!/usr/bin/env python3
"""Web server entry point for the quiz tournament engine."""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import get_default_config
from main import setup_logging
from web.api import app


if __name__ == "__main__":
    config = get_default_config()
    setup_logging(config.system.log_level)

    import uvicorn

    print("🏆 Starting Quiz Tournament Web Server...")
    print(f"📡 API Documentation: http://localhost:{config.system.port}/docs")

    uvicorn.run(
        app,
        host=config.system.host,
        port=config.system.port,
        log_level="info",
        access_log=True,
    )
