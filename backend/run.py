"""
Audit Ledger — development server launcher.

Usage:
    python run.py
    python run.py --port 8100 --reload
    python run.py --init-db          # create tables, then serve
"""
import argparse

import uvicorn

from audit_ledger.config import get_settings


def main(argv=None):
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Serve the audit ledger API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes (ignored with --reload)")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL.lower(), help="Uvicorn log level")
    parser.add_argument("--init-db", action="store_true", help="Create ledger tables before serving")
    args = parser.parse_args(argv)

    if args.init_db:
        from audit_ledger.database import init_db
        init_db()

    print(f"  {settings.APP_NAME} v{settings.APP_VERSION}")
    print(f"  database: {settings.DATABASE_URL}")
    print(f"  docs:     http://{args.host}:{args.port}/docs")

    uvicorn.run(
        "audit_ledger.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
