from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from typing import Optional

from app.config import CrawlerSettings, clamp_budget_ms
from app.db.neo4j_connector import close_driver
from app.services.graph.events import Neo4jEventStore, ensure_constraints

from .chunk import CalendarCrawler, month_windows
from .text import parse_iso_date

logger = logging.getLogger(__name__)


def _date_arg(value: str) -> date:
    parsed = parse_iso_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"not a date: {value!r}")
    return parsed


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def _window_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="start", type=_date_arg, required=True, help="Window start, YYYY-MM-DD")
    parser.add_argument("--to", dest="end", type=_date_arg, required=True, help="Window end, YYYY-MM-DD")


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Import the race calendar into the graph store")
    sub = parser.add_subparsers(dest="cmd", required=True)

    chunk = sub.add_parser("chunk", help="Run a single budgeted chunk (same as the HTTP trigger)")
    _window_args(chunk)
    chunk.add_argument("--cursor", type=int, default=0, help="Offset returned by the previous chunk")
    chunk.add_argument("--budget-ms", type=int, default=None, help="Time budget in milliseconds")

    run = sub.add_parser("run", help="Crawl a window to completion without a time budget")
    _window_args(run)
    run.add_argument("--cursor", type=int, default=0)

    backfill = sub.add_parser("backfill", help="Crawl a long window month by month")
    _window_args(backfill)

    sub.add_parser("init-db", help="Create uniqueness constraints for events and editions")

    args = parser.parse_args(argv)
    settings = CrawlerSettings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.cmd == "init-db":
            ensure_constraints()
            _print({"ok": True})
            return 0

        crawler = CalendarCrawler(Neo4jEventStore(), settings=settings)
        try:
            if args.cmd == "chunk":
                result = crawler.run_chunk(
                    args.start, args.end, cursor=args.cursor, budget_ms=clamp_budget_ms(args.budget_ms)
                )
                _print({"ok": True, "from": args.start.isoformat(), "to": args.end.isoformat(), **result.to_dict()})
                return 0

            if args.cmd == "run":
                result = crawler.run_to_completion(args.start, args.end, cursor=args.cursor)
                _print({**result.to_dict(), "stats": result.stats.to_dict()})
                return 0 if result.done else 1

            if args.cmd == "backfill":
                failed = 0
                for window in month_windows(args.start, args.end):
                    logger.info("Backfilling %s - %s", window.start.isoformat(), window.end.isoformat())
                    result = crawler.run_to_completion(window.start, window.end)
                    if not result.done:
                        failed += 1
                    _print({"from": window.start.isoformat(), "to": window.end.isoformat(), **result.to_dict()})
                return 0 if failed == 0 else 1
        finally:
            crawler.close()
    finally:
        close_driver()

    parser.error("unknown command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
