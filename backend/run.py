"""
Run the Prior Authorization Workflow API with uvicorn.

Usage:
    python run.py
    python run.py --reload    # Development mode with auto-reload
    python run.py --port 8080 # Custom port

Each worker process keeps its own per-authorization locks; across workers
the storage-level compare-and-set guards still apply.
"""
import argparse
import uvicorn

from priorauth.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the Prior Authorization Workflow API server")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )

    args = parser.parse_args()

    print("Starting Prior Authorization Workflow API server...")
    print(f"  Environment: {settings.environment}")
    print(f"  Database: {settings.mongo_db}")
    print(f"  Listening: http://{args.host}:{args.port}")
    print()

    uvicorn.run(
        "priorauth.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
