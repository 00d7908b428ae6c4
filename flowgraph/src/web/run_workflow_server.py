#!/usr/bin/env python3
"""
Direct entry point for the workflow server.

Runs uvicorn with the app object from ``workflow_server`` so the database URL
and engine settings are read from the environment (or ``.env``).
"""
import argparse
import sys

import uvicorn
from dotenv import load_dotenv


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Serve the FlowGraph workflow API")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8002, help="Port to listen on")
    parser.add_argument("--log-level", default="info", help="uvicorn log level")
    return parser.parse_args(argv)


def main(argv=None):
    """Launch the workflow server."""
    load_dotenv()
    args = parse_args(argv)

    print("🚀 Starting FlowGraph workflow server...")
    print(f"📍 Server will be available at: http://{args.host}:{args.port}")
    print(f"🔧 API docs available at: http://{args.host}:{args.port}/docs")
    print("⏹️  Press Ctrl+C to stop the server")
    print()

    from flowgraph.src.web.workflow_server import app

    try:
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")
    except OSError as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
