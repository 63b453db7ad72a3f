#!/usr/bin/env python3
"""
Standalone script to run the bundle pricing API locally
"""
import os
import sys
from pathlib import Path

# Add current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))
    env = os.getenv("NODE_ENV", "development")
    reload = env == "development"

    print(f"Starting bundle pricing API on {host}:{port} (env={env}, reload={reload})")
    print(f"Docs: http://{host}:{port}/api/docs")
    if not os.getenv("DATABASE_URL"):
        print("DATABASE_URL not set, using in-memory SQLite (data is lost on restart)")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if reload else "info"
    )
