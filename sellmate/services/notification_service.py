"""
Notification Service

Creates notifications according to each user's preferences and manages
their read state. Channel delivery (sockets, push, SMS) happens elsewhere;
this service records which channels a notification should go out on.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sellmate.domain.base import utcnow
from sellmate.domain.notifications import (
    DEFAULT_NOTIFICATION_PREFERENCES,
    CreateNotificationRequest,
    Notification,
    NotificationPayload,
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
    merge_notification_preferences,
    should_notify,
)
from sellmate.domain.orders import Order, OrderStatus
from sellmate.exceptions import NotFoundError
from sellmate.repositories.base import NotificationRepository, SettingsRepository


logger = logging.getLogger(__name__)


class NotificationService:
    """Service for user notifications and notification preferences."""

    def __init__(
        self,
        notification_repo: NotificationRepository,
        settings_repo: SettingsRepository,
    ):
        self._repo = notification_repo
        self._settings_repo = settings_repo

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_notification(
        self,
        request: CreateNotificationRequest,
        inventory_level: Optional[float] = None,
        margin: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Persist a notification if the user's preferences allow it.

        Args:
            request: Who to notify and what to say
            inventory_level: Current stock, for low_inventory
            margin: Order margin percentage, for profit_alert

        Returns:
            The stored notification, or None when preferences or a threshold
            gate suppressed it
        """
        preferences = await self._settings_repo.get_notification_preferences(request.user_id)
        resolved = should_notify(
            request.type,
            preferences,
            inventory_level=inventory_level,
            margin=margin,
        )
        if resolved is None:
            logger.debug(
                f"[NOTIFY] Suppressed {request.type.value} for user {request.user_id}"
            )
            return None

        notification = Notification(
            user_id=request.user_id,
            type=request.type,
            channels=resolved.channels,
            priority=request.priority,
            payload=request.payload,
            related_entity_id=request.related_entity_id,
            related_entity_type=request.related_entity_type,
            created_at=now or utcnow(),
        )
        created = await self._repo.create(notification)
        logger.info(
            f"[NOTIFY] {request.type.value} for user {request.user_id} "
            f"via {[c.value for c in resolved.channels]}"
        )
        return created

    async def notify_order_status_changed(
        self,
        order: Order,
        previous_status: OrderStatus,
    ) -> Optional[Notification]:
        return await self.send_notification(CreateNotificationRequest(
            user_id=order.user_id,
            type=NotificationType.ORDER_STATUS_CHANGED,
            payload=NotificationPayload(
                title="Order status updated",
                body=(
                    f"Order for {order.customer.name} moved from "
                    f"{previous_status.value} to {order.status.value}"
                ),
                data={
                    "orderId": order.id,
                    "previousStatus": previous_status.value,
                    "status": order.status.value,
                },
                action_url=f"/orders/{order.id}",
            ),
            related_entity_id=order.id,
            related_entity_type="order",
        ))

    async def notify_order_expiring(
        self,
        order: Order,
        hours_remaining: float,
    ) -> Optional[Notification]:
        return await self.send_notification(CreateNotificationRequest(
            user_id=order.user_id,
            type=NotificationType.ORDER_EXPIRING,
            priority=NotificationPriority.HIGH,
            payload=NotificationPayload(
                title="Order expiring soon",
                body=(
                    f"Order for {order.customer.name} expires in "
                    f"{round(hours_remaining)} hours"
                ),
                data={"orderId": order.id, "hoursRemaining": hours_remaining},
                action_url=f"/orders/{order.id}",
            ),
            related_entity_id=order.id,
            related_entity_type="order",
        ))

    async def notify_low_inventory(
        self,
        user_id: str,
        product_name: str,
        inventory_level: float,
    ) -> Optional[Notification]:
        return await self.send_notification(
            CreateNotificationRequest(
                user_id=user_id,
                type=NotificationType.LOW_INVENTORY,
                priority=NotificationPriority.HIGH,
                payload=NotificationPayload(
                    title="Low inventory",
                    body=f"{product_name} is down to {inventory_level} units",
                    data={"productName": product_name, "inventoryLevel": inventory_level},
                ),
            ),
            inventory_level=inventory_level,
        )

    async def notify_profit_alert(self, order: Order, margin: float) -> Optional[Notification]:
        return await self.send_notification(
            CreateNotificationRequest(
                user_id=order.user_id,
                type=NotificationType.PROFIT_ALERT,
                payload=NotificationPayload(
                    title="Low profit margin",
                    body=f"Order for {order.product.name} has a {margin}% margin",
                    data={"orderId": order.id, "margin": margin},
                    action_url=f"/orders/{order.id}",
                ),
                related_entity_id=order.id,
                related_entity_type="order",
            ),
            margin=margin,
        )

    # =========================================================================
    # Inbox
    # =========================================================================

    async def get_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Notification]:
        return await self._repo.find_by_user(user_id, unread_only, limit, offset)

    async def get_unread_count(self, user_id: str) -> int:
        return await self._repo.count_unread(user_id)

    async def mark_as_read(
        self,
        notification_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Notification:
        notification = await self._repo.mark_as_read(notification_id, user_id, now or utcnow())
        if not notification:
            raise NotFoundError(
                "Notification not found",
                resource="notification",
                resource_id=notification_id,
                code="NOTIFICATION_NOT_FOUND",
            )
        return notification

    async def mark_all_as_read(self, user_id: str, now: Optional[datetime] = None) -> int:
        count = await self._repo.mark_all_as_read(user_id, now or utcnow())
        logger.info(f"[NOTIFY] Marked {count} notifications read for user {user_id}")
        return count

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        if not await self._repo.delete(notification_id, user_id):
            raise NotFoundError(
                "Notification not found",
                resource="notification",
                resource_id=notification_id,
                code="NOTIFICATION_NOT_FOUND",
            )

    # =========================================================================
    # Preferences
    # =========================================================================

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences, or the defaults for a user who never saved any."""
        stored = await self._settings_repo.get_notification_preferences(user_id)
        return stored or DEFAULT_NOTIFICATION_PREFERENCES.model_copy(deep=True)

    async def update_preferences(
        self,
        user_id: str,
        updates: Dict[str, Dict[str, Any]],
    ) -> NotificationPreferences:
        current = await self.get_preferences(user_id)
        merged = merge_notification_preferences(current, updates)
        saved = await self._settings_repo.save_notification_preferences(user_id, merged)
        logger.info(f"[NOTIFY] Updated notification preferences for user {user_id}")
        return saved
