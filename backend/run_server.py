#!/usr/bin/env python3
"""
Launch script for the Road Inspection Survey Backend.

Usage:
    python run_server.py [source] [--port PORT] [--host HOST]

Examples:
    python run_server.py                              # Survey server at http://localhost:8081
    python run_server.py /data/surveys/2024-05-14     # Local session folder
    python run_server.py http://survey-box:8081 -p 9000
"""

import argparse
import os
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from roadview.config import DEFAULT_SERVER_URL, SOURCE_ENV


def main():
    parser = argparse.ArgumentParser(description="Road Inspection Survey Backend Server")
    parser.add_argument(
        "source",
        nargs="?",
        default=DEFAULT_SERVER_URL,
        help=f"Survey server URL or session folder (default: {DEFAULT_SERVER_URL})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode"
    )

    args = parser.parse_args()

    source = args.source
    if not source.startswith(("http://", "https://")):
        folder = Path(source)
        if not folder.exists():
            print(f"\nWarning: Session folder does not exist: {folder}")
            print("You can load a session later via POST /session/load")
        source = str(folder.absolute())

    print("Road Inspection Survey Backend")
    print("=" * 40)
    print(f"Source: {source}")
    print(f"Server: http://{args.host}:{args.port}")
    print("=" * 40)

    # Picked up by the FastAPI lifespan
    os.environ[SOURCE_ENV] = source

    print("\nAPI Endpoints:")
    print("  GET  /                      - Health check")
    print("  GET  /health                - Detailed health")
    print("  POST /session/load          - Load a session")
    print("  GET  /session               - Session summary")
    print("  GET  /session/timeline      - Timeline frames")
    print("  GET  /session/frames/{i}    - One frame")
    print("  GET  /playback              - Playback state")
    print("  POST /playback/play|pause   - Control playback")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "roadview.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
