"""
Order Domain Models

Order entity, status enum and the lifecycle rules governing status changes,
expiry and abandonment.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Optional

from pydantic import Field

from sellmate.domain.base import DomainModel, utcnow
from sellmate.domain.profit import calculate_order_profit
from sellmate.exceptions import InvalidTransitionError


class OrderStatus(str, Enum):
    """Order lifecycle status."""
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


# =============================================================================
# Domain Entities
# =============================================================================

class OrderProduct(DomainModel):
    """Product line captured from the conversation."""
    name: str
    quantity: float
    selling_price: float
    cost_price: Optional[float] = None


class OrderCustomerInfo(DomainModel):
    """Customer details as given in the conversation."""
    name: str
    contact: str
    delivery_address: Optional[str] = None


class Order(DomainModel):
    """Core order domain entity."""
    id: Optional[str] = None
    user_id: str
    customer_id: Optional[str] = None
    conversation_id: Optional[str] = None
    source_message_id: Optional[str] = None
    status: OrderStatus = OrderStatus.DRAFT
    product: OrderProduct
    customer: OrderCustomerInfo
    total_amount: float = 0
    profit: Optional[float] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Request DTOs
# =============================================================================

class CreateOrderRequest(DomainModel):
    """Fields required to open a draft order."""
    user_id: str
    customer_id: Optional[str] = None
    conversation_id: Optional[str] = None
    source_message_id: Optional[str] = None
    product: OrderProduct
    customer: OrderCustomerInfo
    notes: Optional[str] = None


class OrderProductUpdate(DomainModel):
    name: Optional[str] = None
    quantity: Optional[float] = None
    selling_price: Optional[float] = None
    cost_price: Optional[float] = None


class OrderCustomerUpdate(DomainModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    delivery_address: Optional[str] = None


class UpdateOrderRequest(DomainModel):
    """Partial order update; nested objects are merged field by field."""
    product: Optional[OrderProductUpdate] = None
    customer: Optional[OrderCustomerUpdate] = None
    notes: Optional[str] = None

    def apply_to(self, order: Order) -> Order:
        """Return a copy of `order` with provided fields merged in."""
        product = order.product
        if self.product is not None:
            product = product.model_copy(update=self.product.model_dump(exclude_unset=True))
        customer = order.customer
        if self.customer is not None:
            customer = customer.model_copy(update=self.customer.model_dump(exclude_unset=True))
        return order.model_copy(update={
            "product": product,
            "customer": customer,
            "notes": self.notes if self.notes is not None else order.notes,
        })


class OrderFilters(DomainModel):
    """Filters for listing a user's orders."""
    status: Optional[OrderStatus] = None
    customer_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PaginationOptions(DomainModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginatedOrders(DomainModel):
    data: list[Order]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


# =============================================================================
# Lifecycle Rules (Business Logic)
# =============================================================================

TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.EXPIRED,
    OrderStatus.ABANDONED,
})

# Terminal but may be brought back by an explicit action.
REACTIVATABLE_STATUSES = frozenset({OrderStatus.EXPIRED, OrderStatus.ABANDONED})

ACTIVE_STATUSES = frozenset(set(OrderStatus) - TERMINAL_STATUSES)

# Explicit transitions. EXPIRED is never a target here: only the
# expiry sweep moves orders there.
ORDER_TRANSITIONS = MappingProxyType({
    OrderStatus.DRAFT: frozenset({
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
        OrderStatus.ABANDONED,
    }),
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
        OrderStatus.ABANDONED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.ABANDONED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.ABANDONED,
    }),
    OrderStatus.EXPIRED: frozenset({OrderStatus.CONFIRMED}),
    OrderStatus.ABANDONED: frozenset({OrderStatus.CONFIRMED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
})

# Statuses that end the expiry window once reached.
EXPIRY_CLEARING_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.COMPLETED,
    OrderStatus.ABANDONED,
})


def is_terminal(status: OrderStatus) -> bool:
    """True when no automatic transition leaves this status."""
    return status in TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether an explicit status change is allowed."""
    return target in ORDER_TRANSITIONS[current]


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot change order status from {current.value} to {target.value}",
            current=current.value,
            requested=target.value,
        )


def can_reactivate(status: OrderStatus) -> bool:
    return status in REACTIVATABLE_STATUSES


def is_expired(order: Order, now: Optional[datetime] = None) -> bool:
    """An active order whose expiry time has passed."""
    if order.expires_at is None or order.status not in ACTIVE_STATUSES:
        return False
    return order.expires_at < (now or utcnow())


def compute_expiry(hours: int, now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a draft opened at `now`."""
    return (now or utcnow()) + timedelta(hours=hours)


def compute_total_amount(product: OrderProduct) -> float:
    """totalAmount = sellingPrice x quantity."""
    return product.selling_price * product.quantity


def compute_order_profit(product: OrderProduct) -> Optional[float]:
    """Gross profit for the product line, None when cost is unknown."""
    result = calculate_order_profit(
        product.selling_price, product.cost_price, product.quantity
    )
    return result.gross_profit if result else None
