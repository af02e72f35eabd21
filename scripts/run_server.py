#!/usr/bin/env python
"""
Run the schematic vision API locally.

    python scripts/run_server.py --port 8000
"""
import argparse
import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("run_server")


def main():
    parser = argparse.ArgumentParser(description="Schematic vision API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    # Load .env at repo root
    repo_root = Path(__file__).resolve().parents[1]
    env_path = repo_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)

    uvicorn.run("schematic_vision.app.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
