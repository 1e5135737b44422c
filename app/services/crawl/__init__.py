"""Race calendar crawling subsystem.

Structure:
- base.py: shared types (RawEntry, ChunkStats, ChunkResult, ExtractionStrategy)
- text.py / distances.py: text cleanup, date parsing, slugs and distance labels
- fetcher.py: polite httpx page fetcher with a per-run cache
- spiders/calendar_spider.py: list and detail page extraction (selectolax)
- pipeline.py: signature dedup, date window and stop detection
- detail.py: detail-page enrichment of incomplete rows
- resolver.py: idempotent Event / EventEdition upserts against an EventStore
- chunk.py: budgeted, resumable chunk controller
- runner.py: CLI entrypoint for manual runs and backfills
"""
