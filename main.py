"""
Studio Ops Hub — Entry Point
==============================

Run the API server:

    python main.py
    python main.py --port 9000 --reload
"""

import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from scripts.lib.logger import setup_logger  # noqa: E402

logger = setup_logger("studio-ops-hub")

DEFAULT_PORT = int(os.getenv("DASHBOARD_PORT", "8001"))


def _configured(*names: str) -> str:
    return "configured" if all(os.getenv(n) for n in names) else "not configured"


def log_banner(host: str, port: int):
    logger.info("Studio Ops Hub starting on http://%s:%d", host, port)
    logger.info("  Environment : %s", os.getenv("ENVIRONMENT", "development"))
    logger.info("  API docs    : http://localhost:%d/docs", port)
    logger.info("  Live feed   : ws://localhost:%d/ws/dashboard", port)
    logger.info("  Supabase    : %s", _configured("SUPABASE_URL"))
    logger.info("  Monday.com  : %s", _configured("MONDAY_API_TOKEN"))
    logger.info("  Xero        : %s", _configured("XERO_CLIENT_ID", "XERO_CLIENT_SECRET"))
    logger.info("  API keys    : %s", "required" if os.getenv("REQUIRE_API_KEY", "false").lower() == "true"
                else "optional (development)")


def main() -> int:
    parser = argparse.ArgumentParser(description="Studio Ops Hub API server")
    parser.add_argument("--host", default=os.getenv("DASHBOARD_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--reload", action="store_true",
                        default=os.getenv("DEBUG", "false").lower() == "true",
                        help="Reload on code changes (development)")
    args = parser.parse_args()

    import uvicorn

    log_banner(args.host, args.port)
    uvicorn.run("dashboard.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
