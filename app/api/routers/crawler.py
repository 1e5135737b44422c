import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import CrawlerSettings, clamp_budget_ms
from app.models.crawl import CrawlError, CrawlParams, CrawlResponse
from app.services.crawl.chunk import CalendarCrawler
from app.services.crawl.errors import (
    AuthorizationError,
    FetchError,
    InvalidRangeError,
    PersistenceError,
)
from app.services.crawl.resolver import EventStore
from app.services.crawl.text import parse_iso_date
from app.services.graph.events import Neo4jEventStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["crawler"])


def get_settings() -> CrawlerSettings:
    return CrawlerSettings.from_env()


def get_event_store() -> EventStore:
    return Neo4jEventStore()


def build_crawler(store: EventStore, settings: CrawlerSettings) -> CalendarCrawler:
    return CalendarCrawler(store, settings=settings)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=CrawlError(error=message).model_dump())


async def _read_params(request: Request) -> CrawlParams:
    data: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        raw = await request.body()
        if raw.strip():
            try:
                body = await request.json()
            except ValueError as exc:
                raise InvalidRangeError("Request body must be a JSON object.") from exc
            if not isinstance(body, dict):
                raise InvalidRangeError("Request body must be a JSON object.")
            # body values win over the query string
            data.update({k: v for k, v in body.items() if v is not None})
    # numbers in a JSON body are validated by the same rules as query strings
    data = {k: str(v) for k, v in data.items() if v is not None}
    try:
        return CrawlParams.model_validate(data)
    except ValidationError as exc:
        raise InvalidRangeError("Malformed request parameters.") from exc


def _check_key(params: CrawlParams, settings: CrawlerSettings) -> None:
    if not settings.secret:
        logger.error("CRAWLER_SECRET is not configured; refusing crawl trigger")
        raise AuthorizationError("Unauthorized")
    if not params.key or not hmac.compare_digest(params.key.encode("utf-8"), settings.secret.encode("utf-8")):
        raise AuthorizationError("Unauthorized")


def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise InvalidRangeError(f"`{name}` must be an integer.") from exc


@router.api_route("/api/crawl", methods=["GET", "POST"], response_model=CrawlResponse)
async def trigger_crawl(request: Request):
    """Run one budgeted crawl chunk.

    Parameters come from the query string or, for POST, a JSON body:
    - key: shared secret (required)
    - from, to: inclusive date window, YYYY-MM-DD
    - cursor: offset returned by the previous chunk (default 0)
    - budgetMs: time budget, clamped to 1000..55000 (default 45000)
    """
    try:
        settings = get_settings()
    except Exception:
        logger.exception("Crawler settings could not be loaded")
        return _error(500, "Internal error.")

    try:
        params = await _read_params(request)
        _check_key(params, settings)
        start = parse_iso_date(params.from_)
        end = parse_iso_date(params.to)
        if start is None or end is None:
            raise InvalidRangeError("`from` and `to` must be given as YYYY-MM-DD.")
        if start > end:
            raise InvalidRangeError("`from` must not be later than `to`.")
        cursor = _parse_int(params.cursor, "cursor") or 0
        if cursor < 0:
            raise InvalidRangeError("`cursor` must not be negative.")
        budget_ms = clamp_budget_ms(_parse_int(params.budget_ms, "budgetMs"))
    except AuthorizationError:
        return _error(401, "Unauthorized")
    except InvalidRangeError as exc:
        return _error(400, str(exc))

    crawler = build_crawler(get_event_store(), settings)
    try:
        result = await run_in_threadpool(
            crawler.run_chunk, start, end, cursor=cursor, budget_ms=budget_ms
        )
    except FetchError:
        logger.exception("Crawl chunk aborted: calendar fetch failed (cursor=%d)", cursor)
        return _error(500, "Failed to read the race calendar.")
    except PersistenceError:
        logger.exception("Crawl chunk aborted: store write failed (cursor=%d)", cursor)
        return _error(500, "Failed to store crawled events.")
    except Exception:
        logger.exception("Crawl chunk failed (cursor=%d)", cursor)
        return _error(500, "Internal error.")
    finally:
        crawler.close()

    payload = CrawlResponse(
        from_=start.isoformat(),
        to=end.isoformat(),
        seen=result.seen,
        inserted=result.inserted,
        cursor=result.cursor,
        done=result.done,
    )
    return JSONResponse(content=payload.model_dump(by_alias=True))


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}
