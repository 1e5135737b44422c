from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CrawlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    from_: str = Field(..., alias="from", description="Inclusive lower bound, YYYY-MM-DD")
    to: str = Field(..., description="Inclusive upper bound, YYYY-MM-DD")
    seen: int = Field(..., description="In-range entries processed, after signature dedup")
    inserted: int = Field(..., description="New event editions created")
    cursor: int = Field(..., description="Offset to pass back to continue the crawl")
    done: bool


class CrawlError(BaseModel):
    ok: bool = False
    error: str


class CrawlParams(BaseModel):
    """Raw trigger parameters as received (query string or JSON body)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    cursor: Optional[str] = None
    budget_ms: Optional[str] = Field(None, alias="budgetMs")
    key: Optional[str] = None
