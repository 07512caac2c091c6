"""
Request-scoped dependencies: identity, storage, the scan pipeline and the
per-account request limiter.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

import structlog
from fastapi import Depends, Request
from redis.exceptions import RedisError
from sqlalchemy import select

from findable.core.config import get_settings
from findable.core.database import DBSession
from findable.core.exceptions import NotAuthenticated, RateLimited
from findable.core.redis import CacheManager, RedisClient
from findable.models.models import Account
from findable.services.record_store import RecordStore, SqlRecordStore
from findable.services.scan_service import ScanPipeline
from findable.services.usage_ledger import SqlUsageLedger, UsageLedger

logger = structlog.get_logger(__name__)
settings = get_settings()


async def get_current_account(request: Request, db: DBSession) -> Account:
    """Map the API key header to the acting account."""
    api_key = request.headers.get(settings.API_KEY_HEADER)
    if not api_key:
        raise NotAuthenticated()

    result = await db.execute(select(Account).where(Account.api_key == api_key))
    account = result.scalar_one_or_none()
    if account is None:
        raise NotAuthenticated()
    return account


CurrentAccount = Annotated[Account, Depends(get_current_account)]


def get_record_store(db: DBSession) -> RecordStore:
    return SqlRecordStore(db)


def get_usage_ledger(db: DBSession) -> UsageLedger:
    return SqlUsageLedger(db)


def get_scan_pipeline(
    store: Annotated[RecordStore, Depends(get_record_store)],
    ledger: Annotated[UsageLedger, Depends(get_usage_ledger)],
) -> ScanPipeline:
    return ScanPipeline(store, ledger)


Store = Annotated[RecordStore, Depends(get_record_store)]
Pipeline = Annotated[ScanPipeline, Depends(get_scan_pipeline)]


async def enforce_scan_rate_limit(account: CurrentAccount, redis: RedisClient) -> None:
    """Fixed one-minute window per account. Fails open when Redis is unavailable."""
    window = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
    key = f"ratelimit:scans:{account.id}:{window}"
    limit = settings.RATE_LIMIT_REQUESTS_PER_MINUTE

    try:
        count = await CacheManager(redis).increment(key, ttl=60)
    except RedisError as e:
        logger.warning("Rate limiter unavailable, allowing request", error=str(e))
        return

    if count > limit:
        raise RateLimited(
            details={
                "limit": limit,
                "window_seconds": 60,
                "retry_after_seconds": 60 - datetime.now(timezone.utc).second,
            }
        )
