"""
Repository Interfaces for SellMate

Async data-access contracts consumed by the services. Concrete storage
lives outside this package; implementations map stored documents to the
domain models in `sellmate.domain`.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sellmate.domain.notifications import Notification, NotificationPreferences
from sellmate.domain.orders import (
    Order,
    OrderFilters,
    OrderStatus,
    PaginationOptions,
)
from sellmate.domain.subscription import Subscription


class OrderRepository(ABC):
    """
    Order persistence.

    All lookups are scoped by user_id; an order owned by another user is
    reported as missing.
    """

    @abstractmethod
    async def find_by_id(self, order_id: str, user_id: str) -> Optional[Order]:
        """Get a single order owned by the user."""
        pass

    @abstractmethod
    async def find_by_user(
        self,
        user_id: str,
        filters: OrderFilters,
        pagination: PaginationOptions,
    ) -> Tuple[List[Order], int]:
        """Page of matching orders (newest first) and the total match count."""
        pass

    @abstractmethod
    async def find_by_customer(self, customer_id: str, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def find_by_status(self, user_id: str, status: OrderStatus) -> List[Order]:
        pass

    @abstractmethod
    async def find_in_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Order]:
        """Orders created within [start, end]."""
        pass

    @abstractmethod
    async def find_expirable(self, now: datetime) -> List[Order]:
        """Orders across all users in a non-terminal status with expires_at < now."""
        pass

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Persist a new order, returning it with id and timestamps set."""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """Write the full order document."""
        pass

    @abstractmethod
    async def update_status_if_active(
        self,
        order_id: str,
        status: OrderStatus,
        expires_before: datetime,
    ) -> bool:
        """
        Conditionally move one order to `status`.

        The write applies only while the order is still in a non-terminal
        status and its expires_at is before `expires_before`.

        Returns:
            True if the row was updated, False if the condition no longer held
        """
        pass

    @abstractmethod
    async def delete(self, order_id: str, user_id: str) -> bool:
        """Delete an order. Returns False if nothing was deleted."""
        pass


class ConversationRepository(ABC):
    """Read access to conversations, used for reporting."""

    @abstractmethod
    async def find_platforms(self, conversation_ids: List[str]) -> Dict[str, str]:
        """Platform name (whatsapp, instagram, ...) per conversation id; unknown ids are left out."""
        pass


class SubscriptionRepository(ABC):
    """Subscription persistence, one subscription per user."""

    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def create(self, subscription: Subscription) -> Subscription:
        pass

    @abstractmethod
    async def update(self, subscription: Subscription) -> Subscription:
        """Write the full subscription document in a single update."""
        pass


class NotificationRepository(ABC):
    """Notification persistence."""

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def find_by_id(self, notification_id: str, user_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    async def find_by_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Notification]:
        """Newest first."""
        pass

    @abstractmethod
    async def count_unread(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def mark_as_read(
        self,
        notification_id: str,
        user_id: str,
        read_at: datetime,
    ) -> Optional[Notification]:
        pass

    @abstractmethod
    async def mark_all_as_read(self, user_id: str, read_at: datetime) -> int:
        """Mark every unread notification read. Returns the number updated."""
        pass

    @abstractmethod
    async def delete(self, notification_id: str, user_id: str) -> bool:
        pass


class SettingsRepository(ABC):
    """User settings persistence (notification preferences)."""

    @abstractmethod
    async def get_notification_preferences(
        self,
        user_id: str,
    ) -> Optional[NotificationPreferences]:
        """Stored preferences, or None when the user never saved any."""
        pass

    @abstractmethod
    async def save_notification_preferences(
        self,
        user_id: str,
        preferences: NotificationPreferences,
    ) -> NotificationPreferences:
        pass
