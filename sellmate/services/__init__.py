"""
Service Layer for SellMate

Exports all service classes for dependency injection.
"""

from sellmate.services.analytics_service import AnalyticsService
from sellmate.services.notification_service import NotificationService
from sellmate.services.order_service import OrderService
from sellmate.services.subscription_service import SubscriptionService


__all__ = [
    "AnalyticsService",
    "NotificationService",
    "OrderService",
    "SubscriptionService",
]
