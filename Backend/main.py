#!/usr/bin/env python
"""
Run the tenant RBAC API with uvicorn.

    python main.py                 # settings from env / .env
    python main.py --port 9000     # override host, port or reload

Equivalent to `uvicorn app.main:app` from this directory. Debug mode
(APP_DEBUG=true) forces a single worker and, with DEV_AUTO_RELOAD,
enables reload on changes under app/.
"""

import argparse
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).parent.resolve()
sys.path.insert(0, str(BACKEND_DIR))

import uvicorn

from app.core.config import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tenant RBAC API server")
    parser.add_argument("--host", default=settings.app.api_host)
    parser.add_argument("--port", type=int, default=settings.app.api_port)
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=settings.app.app_debug and settings.dev_auto_reload,
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    # uvicorn ignores workers when reloading
    workers = 1 if (settings.app.app_debug or args.reload) else settings.app.api_workers

    print(
        f"{settings.app.app_name} {settings.app.app_version} ({settings.app.app_env}) "
        f"on {args.host}:{args.port}, workers={workers}, reload={args.reload}"
    )

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
        log_level=settings.log.level.lower(),
        access_log=settings.log.requests,
        reload_dirs=[str(BACKEND_DIR / "app")] if args.reload else None,
    )


if __name__ == "__main__":
    main()
