"""
Usage Ledger - per-account plan quotas.

Quotas are checked before a scan touches the network and the scan counter is
incremented only after the scan record has been written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date, datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from findable.engines.base import LimitType
from findable.models.models import Account, Site, UsageMetric

logger = structlog.get_logger(__name__)


DEFAULT_PLAN = "free"

# None means unlimited
PLAN_LIMITS: dict[str, dict[LimitType, int | None]] = {
    "free": {LimitType.SITES: 1, LimitType.SCANS: 1},
    "pro": {LimitType.SITES: 3, LimitType.SCANS: 4},
    "growth": {LimitType.SITES: 10, LimitType.SCANS: 30},
    "enterprise": {LimitType.SITES: None, LimitType.SCANS: None},
}

UPGRADE_HINTS = {
    "free": "Upgrade to Pro ($29/month) for higher limits",
    "pro": "Upgrade to Growth ($99/month) for increased capacity",
    "growth": "Contact us for Enterprise solutions with unlimited usage",
}


def plan_limit(plan: str, limit_type: LimitType) -> int | None:
    return PLAN_LIMITS.get(plan, PLAN_LIMITS[DEFAULT_PLAN])[limit_type]


def upgrade_hint(plan: str) -> str:
    return UPGRADE_HINTS.get(plan, "Consider upgrading your plan for higher limits")


def current_period(today: date | None = None) -> date:
    """First day of the current UTC month."""
    today = today or datetime.now(timezone.utc).date()
    return today.replace(day=1)


class UsageLedger(ABC):

    @abstractmethod
    async def check_quota(self, account_id: UUID, limit_type: LimitType) -> bool:
        ...

    @abstractmethod
    async def increment_usage(self, account_id: UUID, counter: LimitType) -> None:
        ...

    async def plan_for(self, account_id: UUID) -> str:
        return DEFAULT_PLAN


class SqlUsageLedger(UsageLedger):
    """
    Sites are counted live from the sites table; scans are counted in
    usage_metrics, one row per account per month.
    """

    def __init__(self, session: AsyncSession, today: Callable[[], date] | None = None):
        self.session = session
        self._today = today

    def _period(self) -> date:
        return current_period(self._today() if self._today else None)

    async def plan_for(self, account_id: UUID) -> str:
        account = await self.session.get(Account, account_id)
        return account.plan if account else DEFAULT_PLAN

    async def check_quota(self, account_id: UUID, limit_type: LimitType) -> bool:
        plan = await self.plan_for(account_id)
        limit = plan_limit(plan, limit_type)
        if limit is None:
            return True

        used = await self._used(account_id, limit_type)
        logger.debug("Quota checked", account_id=str(account_id), limit_type=limit_type.value, used=used, limit=limit)
        return used < limit

    async def _used(self, account_id: UUID, limit_type: LimitType) -> int:
        if limit_type == LimitType.SITES:
            result = await self.session.execute(
                select(func.count()).select_from(Site).where(Site.account_id == account_id)
            )
            return result.scalar_one()

        result = await self.session.execute(
            select(UsageMetric.scan_count).where(
                UsageMetric.account_id == account_id,
                UsageMetric.period_start == self._period(),
            )
        )
        return result.scalar_one_or_none() or 0

    async def increment_usage(self, account_id: UUID, counter: LimitType) -> None:
        if counter != LimitType.SCANS:
            return  # Site usage is derived from the sites table

        period = self._period()
        if await self._bump(account_id, period):
            return

        try:
            async with self.session.begin_nested():
                self.session.add(UsageMetric(account_id=account_id, period_start=period, scan_count=1))
                await self.session.flush()
        except IntegrityError:
            # A concurrent scan created this period's row after our update missed
            if not await self._bump(account_id, period):
                raise

    async def _bump(self, account_id: UUID, period: date) -> bool:
        result = await self.session.execute(
            update(UsageMetric)
            .where(UsageMetric.account_id == account_id, UsageMetric.period_start == period)
            .values(scan_count=UsageMetric.scan_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
