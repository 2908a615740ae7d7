#!/usr/bin/env python3
"""
CityBridge server startup script.

Reads host and port from the SERVER_* settings and runs citybridge.main:app
under uvicorn. Pass --reload during local development.
"""

import argparse
import os
import sys
from pathlib import Path

import uvicorn

from citybridge.config import get_config


def main() -> None:
    """Start the CityBridge server with uvicorn."""
    parser = argparse.ArgumentParser(description="Run the CityBridge API server")
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")
    args = parser.parse_args()

    os.chdir(Path(__file__).parent)

    config = get_config()
    app_module = "citybridge.main:app"

    print(f"Starting CityBridge server on {config.server.host}:{config.server.port}")

    try:
        uvicorn_config = uvicorn.Config(
            app_module,
            host=config.server.host,
            port=config.server.port,
            reload=args.reload,
            reload_excludes=["citybridge/tests/*"] if args.reload else None,
            log_level=config.logging.level.lower(),
            access_log=True,
        )
        uvicorn.Server(uvicorn_config).run()
    except KeyboardInterrupt:
        print("\nServer shutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
