#!/usr/bin/env python3
import logging
import os

import uvicorn
from tablestats.app import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create the FastAPI app
app = create_app()


if __name__ == "__main__":
    reload_enabled = os.getenv("TABLESTATS_DEV_MODE", "false").lower() == "true"
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))

    print(f"Starting tablestats on {host}:{port}")
    uvicorn.run("main:app", host=host, port=port, reload=reload_enabled)
