"""
Repository Layer for SellMate

Exports the repository interfaces the services depend on.
"""

from sellmate.repositories.base import (
    NotificationRepository,
    OrderRepository,
    SettingsRepository,
    SubscriptionRepository,
)


__all__ = [
    "OrderRepository",
    "SubscriptionRepository",
    "NotificationRepository",
    "SettingsRepository",
]
