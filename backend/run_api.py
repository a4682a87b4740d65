#!/usr/bin/env python3
"""
Run the FastAPI backend server.

Usage:
    python run_api.py [--host HOST] [--port PORT] [--no-reload]

Host and port default to BT_API_HOST and BT_API_PORT.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from config.settings import API_HOST, API_PORT, APP_NAME


def main() -> int:
    parser = argparse.ArgumentParser(description=f"Serve the {APP_NAME} API")
    parser.add_argument('--host', default=API_HOST, help=f'Bind address (default: {API_HOST})')
    parser.add_argument('--port', type=int, default=API_PORT, help=f'Port (default: {API_PORT})')
    parser.add_argument('--no-reload', action='store_true', help='Disable auto-reload')
    args = parser.parse_args()

    print(f"Starting {APP_NAME} API server on http://{args.host}:{args.port} (docs at /docs)")
    try:
        # reload needs the app as an import path
        uvicorn.run("api.main:app", host=args.host, port=args.port, reload=not args.no_reload)
    except Exception as e:
        print(f"Error starting server: {e}")
        import traceback
        traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
