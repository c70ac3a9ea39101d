"""
Analytics Service

Builds business metrics for a reporting period from the user's orders and
exports them as JSON or CSV reports.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sellmate.domain.analytics import (
    BusinessMetrics,
    ExportOptions,
    build_business_metrics,
    export_report,
)
from sellmate.domain.orders import Order
from sellmate.repositories.base import ConversationRepository, OrderRepository


logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Service for business reporting.

    Trends compare against the period of equal length immediately before
    the requested one. Without a ConversationRepository all revenue is
    reported as manual.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        conversation_repo: Optional[ConversationRepository] = None,
    ):
        self._order_repo = order_repo
        self._conversation_repo = conversation_repo

    async def get_business_metrics(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> BusinessMetrics:
        duration = end - start
        orders = await self._order_repo.find_in_range(user_id, start, end)
        previous = await self._order_repo.find_in_range(user_id, start - duration, start)
        previous = [o for o in previous if o.created_at is None or o.created_at < start]

        platforms = await self._load_platforms(orders)
        metrics = build_business_metrics(user_id, orders, start, end, previous, platforms)
        logger.debug(
            f"[ANALYTICS] Metrics for user {user_id}: "
            f"{metrics.orders.total} orders, revenue {metrics.revenue.total}"
        )
        return metrics

    async def export_report(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        options: Optional[ExportOptions] = None,
    ) -> str:
        """Build the period's metrics and render them in the requested format."""
        options = options or ExportOptions()
        metrics = await self.get_business_metrics(user_id, start, end)
        logger.info(f"[ANALYTICS] Exporting {options.format.value} report for user {user_id}")
        return export_report(metrics, options)

    async def _load_platforms(self, orders: List[Order]) -> Dict[str, str]:
        if not self._conversation_repo:
            return {}
        conversation_ids = sorted({o.conversation_id for o in orders if o.conversation_id})
        if not conversation_ids:
            return {}
        return await self._conversation_repo.find_platforms(conversation_ids)
