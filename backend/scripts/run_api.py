#!/usr/bin/env python3
"""
Run the live sync API (poll session control + event stream).

Usage:
    python3 scripts/run_api.py
    python3 scripts/run_api.py --port 8080 --no-reload
"""
import argparse
import os
import sys
from pathlib import Path

backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend / "src"))
os.chdir(backend)

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the live sync API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload in development")
    args = parser.parse_args()

    # Poll sessions live in the API process; reload restarts them from the stored baseline
    reload = os.getenv("ENVIRONMENT", "development") == "development" and not args.no_reload
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=reload)


if __name__ == "__main__":
    main()
