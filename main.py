#!/usr/bin/env python3
"""
Auth service launcher.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 127.0.0.1 --reload

Environment variables (or .env):
  ACCESS_TOKEN_SECRET, REFRESH_TOKEN_SECRET, RESET_TOKEN_SECRET
                Required unless DEBUG=true. One distinct key per token kind,
                32+ characters each.
  EMAIL_USER, EMAIL_PASS
                SMTP credentials for OTP and reset emails. Required unless DEBUG=true.
  CLIENT_URL    Base URL used to build password reset links.
  DATABASE_URL  SQLAlchemy URL. Defaults to a SQLite file beside auth/store.py.
  PORT          Listen port (default 3000). --port overrides it.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the auth service HTTP API.")
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Listen port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    args = parser.parse_args()

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
