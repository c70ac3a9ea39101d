"""
Order Service

Order CRUD plus the lifecycle commands: status changes, abandonment,
reactivation and the periodic expiry sweep.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sellmate.config.settings import Settings, get_settings
from sellmate.domain.base import utcnow
from sellmate.domain.orders import (
    EXPIRY_CLEARING_STATUSES,
    CreateOrderRequest,
    Order,
    OrderFilters,
    OrderStatus,
    PaginatedOrders,
    PaginationOptions,
    UpdateOrderRequest,
    can_reactivate,
    compute_expiry,
    compute_order_profit,
    compute_total_amount,
    is_terminal,
    validate_transition,
)
from sellmate.domain.subscription import UsageMetric
from sellmate.exceptions import InvalidTransitionError, NotFoundError
from sellmate.repositories.base import OrderRepository
from sellmate.services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)


class OrderService:
    """
    Service for a seller's orders.

    When a SubscriptionService is supplied, order creation is metered
    against the plan's maxOrders limit.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        subscription_service: Optional[SubscriptionService] = None,
        settings: Optional[Settings] = None,
    ):
        self._repo = order_repo
        self._subscriptions = subscription_service
        self._settings = settings or get_settings()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_orders(
        self,
        user_id: str,
        filters: Optional[OrderFilters] = None,
        pagination: Optional[PaginationOptions] = None,
    ) -> PaginatedOrders:
        filters = filters or OrderFilters()
        pagination = pagination or PaginationOptions(limit=self._settings.default_page_size)
        orders, total = await self._repo.find_by_user(user_id, filters, pagination)
        return PaginatedOrders(
            data=orders,
            page=pagination.page,
            limit=pagination.limit,
            total=total,
        )

    async def get_order_by_id(self, order_id: str, user_id: str) -> Order:
        """Get an order owned by the user, or raise NotFoundError."""
        order = await self._repo.find_by_id(order_id, user_id)
        if not order:
            raise NotFoundError(
                "Order not found",
                resource="order",
                resource_id=order_id,
                code="ORDER_NOT_FOUND",
            )
        return order

    async def get_orders_by_customer(self, customer_id: str, user_id: str) -> List[Order]:
        return await self._repo.find_by_customer(customer_id, user_id)

    async def get_abandoned_orders(self, user_id: str) -> List[Order]:
        return await self._repo.find_by_status(user_id, OrderStatus.ABANDONED)

    async def get_expired_orders(self, user_id: str) -> List[Order]:
        return await self._repo.find_by_status(user_id, OrderStatus.EXPIRED)

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_order(
        self,
        request: CreateOrderRequest,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Open a draft order.

        Total and profit are derived from the product line and the order
        expires after the configured window unless it is actioned. Usage is
        recorded before the order is stored and given back if the write fails.

        Raises:
            LimitExceededError: The plan's maxOrders limit is reached
        """
        now = now or utcnow()

        if self._subscriptions:
            await self._subscriptions.record_usage(request.user_id, UsageMetric.MAX_ORDERS, now=now)

        order = Order(
            user_id=request.user_id,
            customer_id=request.customer_id,
            conversation_id=request.conversation_id,
            source_message_id=request.source_message_id,
            status=OrderStatus.DRAFT,
            product=request.product,
            customer=request.customer,
            total_amount=compute_total_amount(request.product),
            profit=compute_order_profit(request.product),
            notes=request.notes,
            expires_at=compute_expiry(self._settings.order_expiration_hours, now),
            created_at=now,
            updated_at=now,
        )
        try:
            created = await self._repo.create(order)
        except Exception:
            if self._subscriptions:
                await self._subscriptions.record_usage(
                    request.user_id, UsageMetric.MAX_ORDERS, amount=-1, now=now
                )
            raise

        logger.info(f"[ORDERS] Created draft order {created.id} for user {request.user_id}")
        return created

    async def update_order(
        self,
        order_id: str,
        user_id: str,
        request: UpdateOrderRequest,
        now: Optional[datetime] = None,
    ) -> Order:
        """Merge product/customer/notes changes and recompute derived amounts."""
        order = await self.get_order_by_id(order_id, user_id)
        merged = request.apply_to(order)
        merged = merged.model_copy(update={
            "total_amount": compute_total_amount(merged.product),
            "profit": compute_order_profit(merged.product),
            "updated_at": now or utcnow(),
        })
        return await self._repo.update(merged)

    async def update_order_status(
        self,
        order_id: str,
        user_id: str,
        status: OrderStatus,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Apply an explicit status change.

        Raises:
            NotFoundError: Order does not exist for this user
            InvalidTransitionError: The change is not in the transition table
        """
        order = await self.get_order_by_id(order_id, user_id)
        validate_transition(order.status, status)

        update = {"status": status, "updated_at": now or utcnow()}
        if status in EXPIRY_CLEARING_STATUSES:
            update["expires_at"] = None

        updated = await self._repo.update(order.model_copy(update=update))
        logger.info(
            f"[ORDERS] Order {order_id} status {order.status.value} -> {status.value}"
        )
        return updated

    async def reactivate_order(
        self,
        order_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Order:
        """Return an expired or abandoned order to draft with a fresh expiry window."""
        now = now or utcnow()
        order = await self.get_order_by_id(order_id, user_id)
        if not can_reactivate(order.status):
            raise InvalidTransitionError(
                "Only expired or abandoned orders can be reactivated",
                current=order.status.value,
                requested=OrderStatus.DRAFT.value,
            )

        updated = await self._repo.update(order.model_copy(update={
            "status": OrderStatus.DRAFT,
            "expires_at": compute_expiry(self._settings.order_expiration_hours, now),
            "updated_at": now,
        }))
        logger.info(f"[ORDERS] Reactivated order {order_id} from {order.status.value}")
        return updated

    async def mark_as_abandoned(
        self,
        order_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Order:
        order = await self.get_order_by_id(order_id, user_id)
        if is_terminal(order.status):
            raise InvalidTransitionError(
                f"Cannot abandon an order that is {order.status.value}",
                current=order.status.value,
                requested=OrderStatus.ABANDONED.value,
            )

        updated = await self._repo.update(order.model_copy(update={
            "status": OrderStatus.ABANDONED,
            "expires_at": None,
            "updated_at": now or utcnow(),
        }))
        logger.info(f"[ORDERS] Marked order {order_id} as abandoned")
        return updated

    async def delete_order(self, order_id: str, user_id: str) -> None:
        deleted = await self._repo.delete(order_id, user_id)
        if not deleted:
            raise NotFoundError(
                "Order not found",
                resource="order",
                resource_id=order_id,
                code="ORDER_NOT_FOUND",
            )
        logger.info(f"[ORDERS] Deleted order {order_id}")

    # =========================================================================
    # Expiry Sweep
    # =========================================================================

    async def process_expired_orders(self, now: Optional[datetime] = None) -> int:
        """
        Move every overdue non-terminal order to expired.

        Each row is written conditionally, so orders actioned or already
        expired since the scan are skipped. A failing row is logged and the
        sweep moves on.

        Returns:
            Number of orders actually expired by this run
        """
        now = now or utcnow()
        candidates = await self._repo.find_expirable(now)

        expired = 0
        for order in candidates:
            try:
                if await self._repo.update_status_if_active(order.id, OrderStatus.EXPIRED, now):
                    expired += 1
            except Exception:
                logger.exception(f"[ORDERS] Failed to expire order {order.id}")

        if candidates:
            logger.info(f"[ORDERS] Expired {expired}/{len(candidates)} overdue orders")
        return expired
