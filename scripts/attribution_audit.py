#!/usr/bin/env python3
"""Runs the attribution audit as a foreground batch job and prints JSON.

Reads legacy leads, legacy orders and visitors page by page; writes nothing.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date, timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings  # noqa: E402
from app.services.attribution_audit import AuditOptions, build_attribution_audit  # noqa: E402


def _resolve_database_url(cli_value: str | None) -> str | None:
    return cli_value or os.getenv("DATABASE_URL") or settings.database_url


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--page-size", type=int, default=settings.audit_page_size)
    parser.add_argument("--days", type=int, default=None, help="only leads/orders from the last N days")
    parser.add_argument("--top-referrers", type=int, default=settings.audit_top_referrers_limit)
    parser.add_argument("--indent", type=int, default=2)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    database_url = _resolve_database_url(args.database_url)
    if not database_url:
        print("DATABASE_URL is not set. Pass --database-url or set the DATABASE_URL environment variable.")
        return 1
    if args.page_size < 1:
        print("--page-size must be a positive integer.")
        return 1

    options = AuditOptions(
        page_size=args.page_size,
        since=date.today() - timedelta(days=args.days) if args.days else None,
        top_referrers_limit=args.top_referrers,
        sample_urls_limit=settings.audit_sample_urls_limit,
    )

    engine = create_engine(database_url, future=True)
    try:
        with Session(engine) as session:
            report = build_attribution_audit(session, options)
    finally:
        engine.dispose()

    print(json.dumps(report, indent=args.indent or None, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
