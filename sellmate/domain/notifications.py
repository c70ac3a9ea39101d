"""
Notification Domain Models

Notification entity, user notification preferences and the resolver that
turns a notification type plus stored preferences into enabled channels.
"""

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Optional, Union

from pydantic import Field
from pydantic.alias_generators import to_camel

from sellmate.domain.base import DomainModel
from sellmate.exceptions import ValidationError


class NotificationType(str, Enum):
    """Events that can produce a notification."""
    NEW_MESSAGE = "new_message"
    ORDER_DETECTED = "order_detected"
    ORDER_STATUS_CHANGED = "order_status_changed"
    ORDER_EXPIRING = "order_expiring"
    ORDER_EXPIRED = "order_expired"
    NEW_CUSTOMER = "new_customer"
    LOW_INVENTORY = "low_inventory"
    PROFIT_ALERT = "profit_alert"
    INTEGRATION_ERROR = "integration_error"
    SYSTEM = "system"


class NotificationChannel(str, Enum):
    """Delivery channels a user can opt into."""
    IN_APP = "in_app"
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


DEFAULT_CHANNELS = (NotificationChannel.IN_APP,)


# =============================================================================
# Domain Entities
# =============================================================================

class NotificationPayload(DomainModel):
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None


class Notification(DomainModel):
    """A notification owned by a user."""
    id: Optional[str] = None
    user_id: str
    type: NotificationType
    channels: list[NotificationChannel] = Field(
        default_factory=lambda: list(DEFAULT_CHANNELS)
    )
    priority: NotificationPriority = NotificationPriority.MEDIUM
    status: NotificationStatus = NotificationStatus.PENDING
    payload: NotificationPayload
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreateNotificationRequest(DomainModel):
    user_id: str
    type: NotificationType
    payload: NotificationPayload
    priority: NotificationPriority = NotificationPriority.MEDIUM
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None


# =============================================================================
# Preferences
# =============================================================================

class NotificationTypeSetting(DomainModel):
    """Stored setting for one notification type. Absent fields fall back."""
    enabled: Optional[bool] = None
    channels: Optional[list[NotificationChannel]] = None


class ThresholdNotificationSetting(NotificationTypeSetting):
    threshold: Optional[float] = None


class MarginNotificationSetting(NotificationTypeSetting):
    min_margin: Optional[float] = None


class NotificationPreferences(DomainModel):
    """A user's notification settings, keyed by preference name."""
    new_message: Optional[NotificationTypeSetting] = None
    order_detected: Optional[NotificationTypeSetting] = None
    order_status_changed: Optional[NotificationTypeSetting] = None
    order_expiring: Optional[NotificationTypeSetting] = None
    low_inventory: Optional[ThresholdNotificationSetting] = None
    profit_alert: Optional[MarginNotificationSetting] = None


class ResolvedPreference(DomainModel):
    """Effective setting for a notification type after applying defaults."""
    type: NotificationType
    enabled: bool
    channels: list[NotificationChannel]
    threshold: Optional[float] = None
    min_margin: Optional[float] = None


DEFAULT_NOTIFICATION_PREFERENCES = NotificationPreferences(
    new_message=NotificationTypeSetting(
        enabled=True,
        channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
    ),
    order_detected=NotificationTypeSetting(
        enabled=True,
        channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
    ),
    order_status_changed=NotificationTypeSetting(
        enabled=True,
        channels=[NotificationChannel.IN_APP],
    ),
    order_expiring=NotificationTypeSetting(
        enabled=True,
        channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
    ),
    low_inventory=ThresholdNotificationSetting(
        enabled=False,
        channels=[NotificationChannel.IN_APP],
        threshold=10,
    ),
    profit_alert=MarginNotificationSetting(
        enabled=False,
        channels=[NotificationChannel.IN_APP],
        min_margin=20,
    ),
)

# Every NotificationType maps to the preference field that governs it, or to
# None when the type is not user-configurable (always on, in-app).
PREFERENCE_KEYS = MappingProxyType({
    NotificationType.NEW_MESSAGE: "new_message",
    NotificationType.ORDER_DETECTED: "order_detected",
    NotificationType.ORDER_STATUS_CHANGED: "order_status_changed",
    NotificationType.ORDER_EXPIRING: "order_expiring",
    NotificationType.ORDER_EXPIRED: "order_expiring",
    NotificationType.LOW_INVENTORY: "low_inventory",
    NotificationType.PROFIT_ALERT: "profit_alert",
    NotificationType.NEW_CUSTOMER: None,
    NotificationType.INTEGRATION_ERROR: None,
    NotificationType.SYSTEM: None,
})


def resolve_preference(
    notification_type: Union[NotificationType, str],
    preferences: Optional[Union[NotificationPreferences, Dict[str, Any]]] = None,
    defaults: NotificationPreferences = DEFAULT_NOTIFICATION_PREFERENCES,
) -> ResolvedPreference:
    """
    Resolve the effective setting for a notification type.

    Order: stored `enabled`, else the type's default; stored `channels`,
    else ['in_app']. An explicit empty channel list stays empty. Threshold
    and margin gates come from the stored setting or the default.
    """
    notification_type = _to_type(notification_type)
    key = PREFERENCE_KEYS[notification_type]
    if key is None:
        return ResolvedPreference(
            type=notification_type,
            enabled=True,
            channels=list(DEFAULT_CHANNELS),
        )

    if isinstance(preferences, dict):
        preferences = NotificationPreferences.model_validate(preferences)
    stored = getattr(preferences, key, None) if preferences is not None else None
    default = getattr(defaults, key)

    enabled = stored.enabled if stored and stored.enabled is not None else default.enabled
    channels = stored.channels if stored and stored.channels is not None else None

    resolved = ResolvedPreference(
        type=notification_type,
        enabled=bool(enabled),
        channels=list(channels) if channels is not None else list(DEFAULT_CHANNELS),
    )
    if isinstance(default, ThresholdNotificationSetting):
        resolved.threshold = _pick(stored, default, "threshold")
    if isinstance(default, MarginNotificationSetting):
        resolved.min_margin = _pick(stored, default, "min_margin")
    return resolved


def passes_gate(
    resolved: ResolvedPreference,
    inventory_level: Optional[float] = None,
    margin: Optional[float] = None,
) -> bool:
    """
    Check the numeric gate for threshold and margin types.

    Low inventory fires at or below the threshold; profit alerts fire when the
    margin drops below the minimum. A gated type with no measurement does not
    fire. Ungated types always pass.
    """
    if resolved.type == NotificationType.LOW_INVENTORY:
        if inventory_level is None or resolved.threshold is None:
            return False
        return inventory_level <= resolved.threshold
    if resolved.type == NotificationType.PROFIT_ALERT:
        if margin is None or resolved.min_margin is None:
            return False
        return margin < resolved.min_margin
    return True


def should_notify(
    notification_type: Union[NotificationType, str],
    preferences: Optional[Union[NotificationPreferences, Dict[str, Any]]] = None,
    inventory_level: Optional[float] = None,
    margin: Optional[float] = None,
) -> Optional[ResolvedPreference]:
    """Resolved preference when the event should fire, otherwise None."""
    resolved = resolve_preference(notification_type, preferences)
    if not resolved.enabled:
        return None
    if not passes_gate(resolved, inventory_level=inventory_level, margin=margin):
        return None
    return resolved


def validate_channels(channels: Iterable[str]) -> list[NotificationChannel]:
    """Keep known channels in order, dropping unknown ones and duplicates."""
    valid: list[NotificationChannel] = []
    for channel in channels:
        try:
            parsed = NotificationChannel(channel)
        except ValueError:
            continue
        if parsed not in valid:
            valid.append(parsed)
    return valid


def merge_notification_preferences(
    existing: NotificationPreferences,
    updates: Dict[str, Dict[str, Any]],
) -> NotificationPreferences:
    """
    Merge a partial preferences update into existing preferences.

    `updates` is keyed by preference name (camelCase or snake_case); each
    value may carry enabled, channels and the type's numeric gate.
    """
    merged = existing.model_copy(deep=True)
    by_alias = {to_camel(name): name for name in NotificationPreferences.model_fields}
    for key, change in updates.items():
        name = by_alias.get(key, key)
        if name not in NotificationPreferences.model_fields:
            raise ValidationError(
                f"Unknown notification preference: {key}",
                details={"preference": key},
            )
        current = getattr(merged, name) or getattr(DEFAULT_NOTIFICATION_PREFERENCES, name)
        change = dict(change)
        if change.get("channels") is not None:
            change["channels"] = validate_channels(change["channels"])
        patch = type(current).model_validate(change).model_dump(exclude_unset=True)
        setattr(merged, name, current.model_copy(update=patch))
    return merged


def _pick(stored, default, field: str) -> Optional[float]:
    value = getattr(stored, field, None) if stored else None
    return value if value is not None else getattr(default, field)


def _to_type(notification_type: Union[NotificationType, str]) -> NotificationType:
    try:
        return NotificationType(notification_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown notification type: {notification_type}",
            details={"type": str(notification_type)},
            original_error=e,
        ) from e
