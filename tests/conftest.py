"""
Test configuration and fixtures for SellMate.

Provides in-memory repository fakes and shared sample data.
"""

import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from sellmate.config.settings import Settings
from sellmate.domain.notifications import Notification, NotificationPreferences
from sellmate.domain.orders import (
    ACTIVE_STATUSES,
    CreateOrderRequest,
    Order,
    OrderCustomerInfo,
    OrderFilters,
    OrderProduct,
    OrderStatus,
    PaginationOptions,
)
from sellmate.domain.subscription import Subscription
from sellmate.repositories.base import (
    NotificationRepository,
    OrderRepository,
    SettingsRepository,
    SubscriptionRepository,
)
from sellmate.services.order_service import OrderService
from sellmate.services.subscription_service import SubscriptionService


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# In-memory Repositories
# =============================================================================

class InMemoryOrderRepository(OrderRepository):
    def __init__(self):
        self.orders: Dict[str, Order] = {}
        self.failing_ids = set()
        self._ids = itertools.count(1)

    async def find_by_id(self, order_id: str, user_id: str) -> Optional[Order]:
        order = self.orders.get(order_id)
        return order if order and order.user_id == user_id else None

    async def find_by_user(
        self,
        user_id: str,
        filters: OrderFilters,
        pagination: PaginationOptions,
    ) -> Tuple[List[Order], int]:
        matches = [
            o for o in self.orders.values()
            if o.user_id == user_id
            and (filters.status is None or o.status == filters.status)
            and (filters.customer_id is None or o.customer_id == filters.customer_id)
        ]
        start = pagination.offset
        return matches[start:start + pagination.limit], len(matches)

    async def find_by_customer(self, customer_id: str, user_id: str) -> List[Order]:
        return [
            o for o in self.orders.values()
            if o.user_id == user_id and o.customer_id == customer_id
        ]

    async def find_by_status(self, user_id: str, status: OrderStatus) -> List[Order]:
        return [
            o for o in self.orders.values()
            if o.user_id == user_id and o.status == status
        ]

    async def find_in_range(self, user_id: str, start: datetime, end: datetime) -> List[Order]:
        return [
            o for o in self.orders.values()
            if o.user_id == user_id and o.created_at and start <= o.created_at <= end
        ]

    async def find_expirable(self, now: datetime) -> List[Order]:
        return [
            o for o in self.orders.values()
            if o.status in ACTIVE_STATUSES and o.expires_at and o.expires_at < now
        ]

    async def create(self, order: Order) -> Order:
        stored = order.model_copy(update={"id": f"order-{next(self._ids)}"})
        self.orders[stored.id] = stored
        return stored

    async def update(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def update_status_if_active(
        self,
        order_id: str,
        status: OrderStatus,
        expires_before: datetime,
    ) -> bool:
        if order_id in self.failing_ids:
            raise RuntimeError("write failed")
        order = self.orders.get(order_id)
        if (
            order is None
            or order.status not in ACTIVE_STATUSES
            or order.expires_at is None
            or not order.expires_at < expires_before
        ):
            return False
        self.orders[order_id] = order.model_copy(update={"status": status})
        return True

    async def delete(self, order_id: str, user_id: str) -> bool:
        if await self.find_by_id(order_id, user_id) is None:
            return False
        del self.orders[order_id]
        return True


class InMemorySubscriptionRepository(SubscriptionRepository):
    def __init__(self):
        self.subscriptions: Dict[str, Subscription] = {}
        self.update_count = 0

    async def find_by_user_id(self, user_id: str) -> Optional[Subscription]:
        return self.subscriptions.get(user_id)

    async def create(self, subscription: Subscription) -> Subscription:
        stored = subscription.model_copy(update={"id": f"sub-{subscription.user_id}"})
        self.subscriptions[stored.user_id] = stored
        return stored

    async def update(self, subscription: Subscription) -> Subscription:
        self.update_count += 1
        self.subscriptions[subscription.user_id] = subscription
        return subscription


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self):
        self.notifications: Dict[str, Notification] = {}
        self._ids = itertools.count(1)

    async def create(self, notification: Notification) -> Notification:
        stored = notification.model_copy(update={"id": f"notif-{next(self._ids)}"})
        self.notifications[stored.id] = stored
        return stored

    async def find_by_id(self, notification_id: str, user_id: str) -> Optional[Notification]:
        n = self.notifications.get(notification_id)
        return n if n and n.user_id == user_id else None

    async def find_by_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Notification]:
        matches = [
            n for n in reversed(list(self.notifications.values()))
            if n.user_id == user_id and not (unread_only and n.is_read)
        ]
        return matches[offset:offset + limit]

    async def count_unread(self, user_id: str) -> int:
        return len(await self.find_by_user(user_id, unread_only=True, limit=10_000))

    async def mark_as_read(
        self,
        notification_id: str,
        user_id: str,
        read_at: datetime,
    ) -> Optional[Notification]:
        n = await self.find_by_id(notification_id, user_id)
        if n is None:
            return None
        updated = n.model_copy(update={"is_read": True, "read_at": read_at})
        self.notifications[notification_id] = updated
        return updated

    async def mark_all_as_read(self, user_id: str, read_at: datetime) -> int:
        unread = await self.find_by_user(user_id, unread_only=True, limit=10_000)
        for n in unread:
            await self.mark_as_read(n.id, user_id, read_at)
        return len(unread)

    async def delete(self, notification_id: str, user_id: str) -> bool:
        if await self.find_by_id(notification_id, user_id) is None:
            return False
        del self.notifications[notification_id]
        return True


class InMemorySettingsRepository(SettingsRepository):
    def __init__(self, preferences: Optional[Dict[str, NotificationPreferences]] = None):
        self.preferences = preferences or {}

    async def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        return self.preferences.get(user_id)

    async def save_notification_preferences(
        self,
        user_id: str,
        preferences: NotificationPreferences,
    ) -> NotificationPreferences:
        self.preferences[user_id] = preferences
        return preferences


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    """Settings with defaults only, ignoring any local .env."""
    return Settings(_env_file=None)


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def subscription_repo():
    return InMemorySubscriptionRepository()


@pytest.fixture
def notification_repo():
    return InMemoryNotificationRepository()


@pytest.fixture
def settings_repo():
    return InMemorySettingsRepository()


@pytest.fixture
def subscription_service(subscription_repo, settings):
    return SubscriptionService(subscription_repo, settings)


@pytest.fixture
def order_service(order_repo, settings):
    """OrderService without plan metering."""
    return OrderService(order_repo, settings=settings)


@pytest.fixture
def sample_product():
    return OrderProduct(name="Ankara Dress", quantity=2, selling_price=15000, cost_price=9000)


@pytest.fixture
def sample_customer():
    return OrderCustomerInfo(name="Ada Obi", contact="+2348012345678", delivery_address="Lekki")


@pytest.fixture
def create_request(sample_product, sample_customer):
    return CreateOrderRequest(
        user_id="user-1",
        customer_id="cust-1",
        conversation_id="conv-1",
        product=sample_product,
        customer=sample_customer,
    )
