from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_LIST_URL = "https://www.maratonypolskie.pl/mp_index.php?action=1&dzial=3&grp=13&trgr=1&wielkosc=2"
USER_AGENT = "race-calendar-crawler/1.0 (+https://www.maratonypolskie.pl calendar import)"

DEFAULT_BUDGET_MS = 45000
MAX_BUDGET_MS = 55000
MIN_BUDGET_MS = 1000


def load_env_file() -> None:
    """Load environment variables from a .env file at the project root if present.

    Only sets variables that aren't already present in the process environment.
    """
    root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    env_path = os.path.join(root_dir, ".env")
    if not os.path.isfile(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#"):
                continue
            if "=" not in s:
                continue
            key, val = s.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            # Allow space around '=' like KEY = value
            if key and (key not in os.environ or not os.environ[key]):
                os.environ[key] = val


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class CrawlerSettings:
    list_url: str = DEFAULT_LIST_URL
    user_agent: str = USER_AGENT
    timeout_s: float = 20.0
    page_delay_ms: int = 800
    detail_delay_ms: int = 800
    max_pages: int = 200
    # None: advance the cursor by the number of rows read from the page
    page_step: Optional[int] = None
    secret: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CrawlerSettings":
        load_env_file()
        return cls(
            list_url=os.getenv("CRAWLER_BASE_URL") or DEFAULT_LIST_URL,
            timeout_s=float(_int_env("CRAWLER_TIMEOUT_S", 20)),
            page_delay_ms=_int_env("CRAWLER_PAGE_DELAY_MS", 800),
            detail_delay_ms=_int_env("CRAWLER_DETAIL_DELAY_MS", 800),
            max_pages=_int_env("CRAWLER_MAX_PAGES", 200),
            page_step=_int_env("CRAWLER_PAGE_STEP", None),
            secret=os.getenv("CRAWLER_SECRET") or None,
            log_level=(os.getenv("CRAWLER_LOG_LEVEL") or "INFO").upper(),
        )


def clamp_budget_ms(value: Optional[int]) -> int:
    if value is None or value <= 0:
        return DEFAULT_BUDGET_MS
    return max(MIN_BUDGET_MS, min(int(value), MAX_BUDGET_MS))
