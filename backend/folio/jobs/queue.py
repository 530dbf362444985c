from __future__ import annotations

from redis import Redis
from rq import Queue
from rq.job import Job

from folio.config.settings import settings
from folio.jobs.name_backfill import run_name_backfill


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.name_backfill_queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_name_backfill(limit: int | None = None, dry_run: bool = False) -> Job:
    queue = get_queue()
    return queue.enqueue(run_name_backfill, limit=limit, dry_run=dry_run)
