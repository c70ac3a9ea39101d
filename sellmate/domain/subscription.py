"""
Subscription Domain Models

Enums, entities, DTOs and the plan pricing/limit tables for the billing
bounded context, plus the pure usage/limit rules built on them.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import Field

from sellmate.domain.base import DomainModel, utcnow
from sellmate.exceptions import LimitExceededError, ValidationError


class SubscriptionPlan(str, Enum):
    """Subscription plan levels, cheapest first."""
    STARTER = "starter"
    PROFESSIONAL = "professional"
    BUSINESS = "business"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


class BillingCycle(str, Enum):
    """Billing period for subscriptions."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentMethodType(str, Enum):
    """Supported payment instruments."""
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"


class UsageMetric(str, Enum):
    """Limit keys as stored in usageLimits."""
    MAX_CONVERSATIONS = "maxConversations"
    MAX_ORDERS = "maxOrders"
    MAX_CUSTOMERS = "maxCustomers"
    MAX_INTEGRATIONS = "maxIntegrations"
    AI_REQUESTS_PER_MONTH = "aiRequestsPerMonth"
    STORAGE_GB = "storageGB"


UNLIMITED = -1


# =============================================================================
# Domain Entities
# =============================================================================

class PaymentMethod(DomainModel):
    """A saved payment instrument."""
    type: PaymentMethodType
    last4: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    bank_name: Optional[str] = None
    account_last4: Optional[str] = None
    mobile_number: Optional[str] = None
    provider: Optional[str] = None
    is_default: bool = False
    authorization_code: Optional[str] = None


class UsageLimits(DomainModel):
    """Per-plan caps; -1 means unlimited."""
    max_conversations: int
    max_orders: int
    max_customers: int
    max_integrations: int
    ai_requests_per_month: int
    storage_gb: int = Field(alias="storageGB")


class CurrentUsage(DomainModel):
    """Usage counters for the current billing period."""
    conversations: int = Field(default=0, ge=0)
    orders: int = Field(default=0, ge=0)
    customers: int = Field(default=0, ge=0)
    integrations: int = Field(default=0, ge=0)
    ai_requests_this_month: int = Field(default=0, ge=0)
    storage_used_gb: float = Field(default=0, ge=0, alias="storageUsedGB")
    last_reset_date: datetime = Field(default_factory=utcnow)


class Subscription(DomainModel):
    """Core subscription domain entity."""
    id: Optional[str] = None
    user_id: str
    plan: SubscriptionPlan = SubscriptionPlan.STARTER
    status: SubscriptionStatus = SubscriptionStatus.TRIAL
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    current_period_start: datetime
    current_period_end: datetime
    trial_end: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    payment_methods: list[PaymentMethod] = Field(default_factory=list)
    usage_limits: UsageLimits
    current_usage: CurrentUsage = Field(default_factory=CurrentUsage)
    amount: float = 0
    currency: str = "NGN"
    failed_payment_count: int = 0
    last_payment_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class ChangePlanRequest(DomainModel):
    plan: SubscriptionPlan
    billing_cycle: Optional[BillingCycle] = None


class LimitCheck(DomainModel):
    """Outcome of a limit check. remaining is None when unlimited."""
    metric: UsageMetric
    limit: int
    current: float
    allowed: bool
    remaining: Optional[float] = None


class PlanChangeCalculation(DomainModel):
    """Cost preview for switching plans; computed, never persisted."""
    current_plan: SubscriptionPlan
    new_plan: SubscriptionPlan
    current_billing_cycle: BillingCycle
    new_billing_cycle: BillingCycle
    prorated_credit: float
    new_plan_cost: float
    amount_due: float
    effective_date: datetime
    is_upgrade: bool


class SubscriptionSummary(DomainModel):
    id: Optional[str] = None
    plan: SubscriptionPlan
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    current_period_start: datetime
    current_period_end: datetime
    trial_end: Optional[datetime] = None
    amount: float
    currency: str
    next_payment_date: Optional[datetime] = None
    days_until_renewal: int
    is_trial_active: bool
    can_upgrade: bool
    can_downgrade: bool


class BillingCycleInfo(DomainModel):
    current_period_start: datetime
    current_period_end: datetime
    next_billing_date: datetime
    days_remaining: int
    amount: float
    currency: str


# =============================================================================
# Plan Configuration (Business Logic)
# =============================================================================

PLAN_ORDER = (
    SubscriptionPlan.STARTER,
    SubscriptionPlan.PROFESSIONAL,
    SubscriptionPlan.BUSINESS,
)

PLAN_PRICING = MappingProxyType({
    SubscriptionPlan.STARTER: {"monthly": 5000, "yearly": 50000},
    SubscriptionPlan.PROFESSIONAL: {"monthly": 15000, "yearly": 150000},
    SubscriptionPlan.BUSINESS: {"monthly": 35000, "yearly": 350000},
})

PLAN_LIMITS = MappingProxyType({
    SubscriptionPlan.STARTER: MappingProxyType({
        UsageMetric.MAX_CONVERSATIONS: 100,
        UsageMetric.MAX_ORDERS: 50,
        UsageMetric.MAX_CUSTOMERS: 100,
        UsageMetric.MAX_INTEGRATIONS: 1,
        UsageMetric.AI_REQUESTS_PER_MONTH: 100,
        UsageMetric.STORAGE_GB: 1,
    }),
    SubscriptionPlan.PROFESSIONAL: MappingProxyType({
        UsageMetric.MAX_CONVERSATIONS: 500,
        UsageMetric.MAX_ORDERS: 250,
        UsageMetric.MAX_CUSTOMERS: 500,
        UsageMetric.MAX_INTEGRATIONS: 2,
        UsageMetric.AI_REQUESTS_PER_MONTH: 500,
        UsageMetric.STORAGE_GB: 5,
    }),
    SubscriptionPlan.BUSINESS: MappingProxyType({
        UsageMetric.MAX_CONVERSATIONS: UNLIMITED,
        UsageMetric.MAX_ORDERS: UNLIMITED,
        UsageMetric.MAX_CUSTOMERS: UNLIMITED,
        UsageMetric.MAX_INTEGRATIONS: 2,
        UsageMetric.AI_REQUESTS_PER_MONTH: UNLIMITED,
        UsageMetric.STORAGE_GB: 20,
    }),
})

# Which usage counter each limit is measured against.
USAGE_COUNTERS = MappingProxyType({
    UsageMetric.MAX_CONVERSATIONS: "conversations",
    UsageMetric.MAX_ORDERS: "orders",
    UsageMetric.MAX_CUSTOMERS: "customers",
    UsageMetric.MAX_INTEGRATIONS: "integrations",
    UsageMetric.AI_REQUESTS_PER_MONTH: "ai_requests_this_month",
    UsageMetric.STORAGE_GB: "storage_used_gb",
})

DAYS_IN_PERIOD = MappingProxyType({
    BillingCycle.MONTHLY: 30,
    BillingCycle.YEARLY: 365,
})


def get_plan_pricing(plan: SubscriptionPlan, billing_cycle: BillingCycle) -> float:
    """Price of a plan for one billing cycle."""
    return PLAN_PRICING[plan][billing_cycle.value]


def get_usage_limits(plan: SubscriptionPlan) -> UsageLimits:
    """UsageLimits mirroring the static table for `plan`."""
    return UsageLimits.model_validate(
        {metric.value: limit for metric, limit in PLAN_LIMITS[plan].items()}
    )


def get_limit(plan: SubscriptionPlan, metric: Union[UsageMetric, str]) -> int:
    """Cap for a metric on a plan. -1 means unlimited."""
    return PLAN_LIMITS[plan][_to_metric(metric)]


def check_limit(
    plan: SubscriptionPlan,
    metric: Union[UsageMetric, str],
    current_usage: float,
) -> LimitCheck:
    """
    Check whether current usage is under the plan's cap.

    Never raises on a known metric; callers decide whether to block the
    underlying action.
    """
    metric = _to_metric(metric)
    limit = PLAN_LIMITS[plan][metric]
    if limit == UNLIMITED:
        return LimitCheck(metric=metric, limit=limit, current=current_usage, allowed=True)

    return LimitCheck(
        metric=metric,
        limit=limit,
        current=current_usage,
        allowed=current_usage < limit,
        remaining=max(0, limit - current_usage),
    )


def ensure_within_limit(
    plan: SubscriptionPlan,
    metric: Union[UsageMetric, str],
    current_usage: float,
) -> LimitCheck:
    """Like check_limit, but raises LimitExceededError when not allowed."""
    result = check_limit(plan, metric, current_usage)
    if not result.allowed:
        raise LimitExceededError(
            f"{plan.value} plan limit reached for {result.metric.value}",
            metric=result.metric.value,
            limit=result.limit,
            current=current_usage,
        )
    return result


def get_usage(usage: CurrentUsage, metric: Union[UsageMetric, str]) -> float:
    """Current counter value for a limit metric."""
    return getattr(usage, USAGE_COUNTERS[_to_metric(metric)])


def increment_usage(
    usage: CurrentUsage,
    metric: Union[UsageMetric, str],
    amount: float = 1,
) -> CurrentUsage:
    """Return a copy of `usage` with one counter moved by `amount`, floored at 0."""
    field = USAGE_COUNTERS[_to_metric(metric)]
    value = max(0, getattr(usage, field) + amount)
    return usage.model_copy(update={field: value})


def needs_usage_reset(usage: CurrentUsage, period_start: datetime) -> bool:
    """Counters belong to an earlier period when last reset precedes its start."""
    return usage.last_reset_date < period_start


def reset_usage(usage: CurrentUsage, now: Optional[datetime] = None) -> CurrentUsage:
    """
    Zero the per-period counters.

    Integrations and storage are standing totals, not per-period usage, and
    are carried over. last_reset_date never moves backwards.
    """
    now = now or utcnow()
    return usage.model_copy(update={
        "conversations": 0,
        "orders": 0,
        "customers": 0,
        "ai_requests_this_month": 0,
        "last_reset_date": max(now, usage.last_reset_date),
    })


def add_billing_period(start: datetime, billing_cycle: BillingCycle) -> datetime:
    """End of a billing period that begins at `start` (calendar months/years)."""
    if billing_cycle == BillingCycle.YEARLY:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def days_until(end: datetime, now: Optional[datetime] = None) -> int:
    """Whole days (rounded up) from now until `end`, floored at 0."""
    remaining = (end - (now or utcnow())) / timedelta(days=1)
    return max(0, math.ceil(remaining))


def is_upgrade(current: SubscriptionPlan, target: SubscriptionPlan) -> bool:
    return PLAN_ORDER.index(target) > PLAN_ORDER.index(current)


def can_upgrade(plan: SubscriptionPlan) -> bool:
    return plan != PLAN_ORDER[-1]


def can_downgrade(plan: SubscriptionPlan) -> bool:
    return plan != PLAN_ORDER[0]


def calculate_plan_change(
    subscription: Subscription,
    new_plan: SubscriptionPlan,
    billing_cycle: Optional[BillingCycle] = None,
    now: Optional[datetime] = None,
) -> PlanChangeCalculation:
    """
    Preview the cost of moving to another plan.

    Unused days of the current period are credited at the current daily rate
    against the new plan's price. Does not touch the subscription.
    """
    now = now or utcnow()
    new_cycle = billing_cycle or subscription.billing_cycle

    days_in_period = DAYS_IN_PERIOD[subscription.billing_cycle]
    days_remaining = days_until(subscription.current_period_end, now)
    daily_rate = subscription.amount / days_in_period
    prorated_credit = round(daily_rate * days_remaining, 2)

    new_plan_cost = get_plan_pricing(new_plan, new_cycle)

    return PlanChangeCalculation(
        current_plan=subscription.plan,
        new_plan=new_plan,
        current_billing_cycle=subscription.billing_cycle,
        new_billing_cycle=new_cycle,
        prorated_credit=prorated_credit,
        new_plan_cost=new_plan_cost,
        amount_due=max(0, new_plan_cost - prorated_credit),
        effective_date=now,
        is_upgrade=is_upgrade(subscription.plan, new_plan),
    )


def new_subscription(
    user_id: str,
    trial_days: int = 14,
    currency: str = "NGN",
    now: Optional[datetime] = None,
) -> Subscription:
    """Starter plan on trial, one monthly period from `now`."""
    now = now or utcnow()
    return Subscription(
        user_id=user_id,
        plan=SubscriptionPlan.STARTER,
        status=SubscriptionStatus.TRIAL,
        billing_cycle=BillingCycle.MONTHLY,
        current_period_start=now,
        current_period_end=add_billing_period(now, BillingCycle.MONTHLY),
        trial_end=now + timedelta(days=trial_days),
        usage_limits=get_usage_limits(SubscriptionPlan.STARTER),
        current_usage=CurrentUsage(last_reset_date=now),
        amount=get_plan_pricing(SubscriptionPlan.STARTER, BillingCycle.MONTHLY),
        currency=currency,
    )


# =============================================================================
# Payment Methods
# =============================================================================

def add_payment_method(
    methods: list[PaymentMethod],
    method: PaymentMethod,
    make_default: bool = False,
) -> list[PaymentMethod]:
    """Append a method; the first one saved always becomes the default."""
    updated = [m.model_copy() for m in methods]
    updated.append(method.model_copy(update={"is_default": False}))
    if make_default or len(updated) == 1:
        return set_default_payment_method(updated, len(updated) - 1)
    return updated


def set_default_payment_method(
    methods: list[PaymentMethod],
    index: int,
) -> list[PaymentMethod]:
    """
    Return a new list where only methods[index] is the default.

    The whole list is rewritten in one go so the at-most-one-default
    invariant holds in a single write.
    """
    if index < 0 or index >= len(methods):
        raise ValidationError(
            "Invalid payment method",
            details={"index": index, "count": len(methods)},
        )
    return [
        m.model_copy(update={"is_default": i == index})
        for i, m in enumerate(methods)
    ]


def remove_payment_method(
    methods: list[PaymentMethod],
    index: int,
) -> list[PaymentMethod]:
    """Drop methods[index]; if it was the default, promote the first remaining."""
    if index < 0 or index >= len(methods):
        raise ValidationError(
            "Invalid payment method",
            details={"index": index, "count": len(methods)},
        )
    removed = methods[index]
    remaining = [m.model_copy() for i, m in enumerate(methods) if i != index]
    if removed.is_default and remaining:
        return set_default_payment_method(remaining, 0)
    return remaining


def get_default_payment_method(methods: list[PaymentMethod]) -> Optional[PaymentMethod]:
    return next((m for m in methods if m.is_default), None)


def _to_metric(metric: Union[UsageMetric, str]) -> UsageMetric:
    try:
        return UsageMetric(metric)
    except ValueError as e:
        raise ValidationError(
            f"Unknown usage metric: {metric}",
            details={"metric": str(metric)},
            original_error=e,
        ) from e
