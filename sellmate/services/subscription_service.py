"""
Subscription Service

Plan management, billing-period bookkeeping, usage metering and saved
payment methods for a user's subscription.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from sellmate.config.settings import Settings, get_settings
from sellmate.domain import subscription as rules
from sellmate.domain.base import utcnow
from sellmate.domain.subscription import (
    BillingCycle,
    BillingCycleInfo,
    LimitCheck,
    PaymentMethod,
    PlanChangeCalculation,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionSummary,
    UsageMetric,
)
from sellmate.exceptions import InvalidTransitionError, LimitExceededError
from sellmate.repositories.base import SubscriptionRepository


logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Service for a user's subscription.

    Each user has exactly one subscription; it is created on first access
    as a starter-plan trial.
    """

    def __init__(
        self,
        subscription_repo: SubscriptionRepository,
        settings: Optional[Settings] = None,
    ):
        self._repo = subscription_repo
        self._settings = settings or get_settings()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_subscription(self, user_id: str) -> Subscription:
        """Get the user's subscription, creating a trial if none exists."""
        subscription = await self._repo.find_by_user_id(user_id)
        if subscription:
            return subscription

        subscription = rules.new_subscription(
            user_id,
            trial_days=self._settings.trial_days,
            currency=self._settings.default_currency,
        )
        created = await self._repo.create(subscription)
        logger.info(f"[SUBSCRIPTION] Created trial subscription for user {user_id}")
        return created

    async def get_subscription_summary(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> SubscriptionSummary:
        now = now or utcnow()
        subscription = await self.get_subscription(user_id)

        is_trial_active = (
            subscription.status == SubscriptionStatus.TRIAL
            and subscription.trial_end is not None
            and subscription.trial_end > now
        )

        return SubscriptionSummary(
            id=subscription.id,
            plan=subscription.plan,
            status=subscription.status,
            billing_cycle=subscription.billing_cycle,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            trial_end=subscription.trial_end,
            amount=subscription.amount,
            currency=subscription.currency,
            next_payment_date=subscription.next_payment_date,
            days_until_renewal=rules.days_until(subscription.current_period_end, now),
            is_trial_active=is_trial_active,
            can_upgrade=rules.can_upgrade(subscription.plan),
            can_downgrade=rules.can_downgrade(subscription.plan),
        )

    async def get_billing_cycle_info(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> BillingCycleInfo:
        subscription = await self.get_subscription(user_id)
        return BillingCycleInfo(
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            next_billing_date=subscription.next_payment_date or subscription.current_period_end,
            days_remaining=rules.days_until(subscription.current_period_end, now),
            amount=subscription.amount,
            currency=subscription.currency,
        )

    # =========================================================================
    # Plan Changes
    # =========================================================================

    async def calculate_plan_change(
        self,
        user_id: str,
        new_plan: SubscriptionPlan,
        billing_cycle: Optional[BillingCycle] = None,
        now: Optional[datetime] = None,
    ) -> PlanChangeCalculation:
        subscription = await self.get_subscription(user_id)
        return rules.calculate_plan_change(subscription, new_plan, billing_cycle, now)

    async def change_plan(
        self,
        user_id: str,
        new_plan: SubscriptionPlan,
        billing_cycle: Optional[BillingCycle] = None,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Switch plans.

        Upgrades take effect immediately: a new billing period starts now,
        the subscription becomes active and any trial ends. Downgrades keep
        the current period. Usage limits always follow the new plan.
        """
        now = now or utcnow()
        subscription = await self.get_subscription(user_id)

        if subscription.plan == new_plan:
            raise InvalidTransitionError(
                "Already on this plan",
                current=subscription.plan.value,
                requested=new_plan.value,
            )

        cycle = billing_cycle or subscription.billing_cycle
        update = {
            "plan": new_plan,
            "billing_cycle": cycle,
            "amount": rules.get_plan_pricing(new_plan, cycle),
            "usage_limits": rules.get_usage_limits(new_plan),
        }
        upgrading = rules.is_upgrade(subscription.plan, new_plan)
        if upgrading:
            update.update({
                "status": SubscriptionStatus.ACTIVE,
                "current_period_start": now,
                "current_period_end": rules.add_billing_period(now, cycle),
                "trial_end": None,
            })

        updated = await self._repo.update(subscription.model_copy(update=update))
        logger.info(
            f"[SUBSCRIPTION] User {user_id} "
            f"{'upgraded' if upgrading else 'downgraded'} "
            f"{subscription.plan.value} -> {new_plan.value}"
        )
        return updated

    async def cancel_subscription(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        subscription = await self.get_subscription(user_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise InvalidTransitionError(
                "Subscription is already cancelled",
                current=subscription.status.value,
                requested=SubscriptionStatus.CANCELLED.value,
            )

        updated = await self._repo.update(subscription.model_copy(update={
            "status": SubscriptionStatus.CANCELLED,
            "cancelled_at": now or utcnow(),
        }))
        logger.info(f"[SUBSCRIPTION] Cancelled subscription for user {user_id}")
        return updated

    async def reactivate_subscription(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Bring a cancelled subscription back with a fresh billing period."""
        now = now or utcnow()
        subscription = await self.get_subscription(user_id)
        if subscription.status != SubscriptionStatus.CANCELLED:
            raise InvalidTransitionError(
                "Only cancelled subscriptions can be reactivated",
                current=subscription.status.value,
                requested=SubscriptionStatus.ACTIVE.value,
            )

        updated = await self._repo.update(subscription.model_copy(update={
            "status": SubscriptionStatus.ACTIVE,
            "cancelled_at": None,
            "current_period_start": now,
            "current_period_end": rules.add_billing_period(now, subscription.billing_cycle),
        }))
        logger.info(f"[SUBSCRIPTION] Reactivated subscription for user {user_id}")
        return updated

    # =========================================================================
    # Payments
    # =========================================================================

    async def handle_payment_success(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """Record a successful charge and roll the subscription into a new period."""
        now = now or utcnow()
        subscription = await self.get_subscription(user_id)
        period_end = rules.add_billing_period(now, subscription.billing_cycle)

        updated = await self._repo.update(subscription.model_copy(update={
            "status": SubscriptionStatus.ACTIVE,
            "failed_payment_count": 0,
            "last_payment_date": now,
            "next_payment_date": period_end,
            "current_period_start": now,
            "current_period_end": period_end,
            "current_usage": rules.reset_usage(subscription.current_usage, now),
        }))
        logger.info(f"[SUBSCRIPTION] Payment succeeded for user {user_id}")
        return updated

    async def handle_payment_failure(self, user_id: str) -> Subscription:
        """Count a failed charge; too many in a row marks the subscription past due."""
        subscription = await self.get_subscription(user_id)
        failed = subscription.failed_payment_count + 1

        update = {"failed_payment_count": failed}
        if failed >= self._settings.max_failed_payments:
            update["status"] = SubscriptionStatus.PAST_DUE

        updated = await self._repo.update(subscription.model_copy(update=update))
        logger.warning(
            f"[SUBSCRIPTION] Payment failed for user {user_id} "
            f"({failed}/{self._settings.max_failed_payments})"
        )
        return updated

    # =========================================================================
    # Usage
    # =========================================================================

    async def check_usage_limit(
        self,
        user_id: str,
        metric: Union[UsageMetric, str],
    ) -> LimitCheck:
        """Limit check against this period's usage; stale counters read as reset."""
        subscription = await self.get_subscription(user_id)
        usage = subscription.current_usage
        if rules.needs_usage_reset(usage, subscription.current_period_start):
            usage = rules.reset_usage(usage)
        return rules.check_limit(subscription.plan, metric, rules.get_usage(usage, metric))

    async def record_usage(
        self,
        user_id: str,
        metric: Union[UsageMetric, str],
        amount: float = 1,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Add `amount` to a usage counter.

        Counters left over from an earlier billing period are reset first.
        Positive amounts are checked against the plan limit and raise
        LimitExceededError without writing anything.
        """
        now = now or utcnow()
        subscription = await self.get_subscription(user_id)
        usage = subscription.current_usage

        if rules.needs_usage_reset(usage, subscription.current_period_start):
            usage = rules.reset_usage(usage, now)
            logger.info(f"[SUBSCRIPTION] Reset usage counters for user {user_id}")

        if amount > 0:
            check = rules.ensure_within_limit(
                subscription.plan, metric, rules.get_usage(usage, metric)
            )
            if check.remaining is not None and amount > check.remaining:
                raise LimitExceededError(
                    f"{subscription.plan.value} plan limit reached for {check.metric.value}",
                    metric=check.metric.value,
                    limit=check.limit,
                    current=check.current,
                )

        usage = rules.increment_usage(usage, metric, amount)
        return await self._repo.update(
            subscription.model_copy(update={"current_usage": usage})
        )

    # =========================================================================
    # Payment Methods
    # =========================================================================

    async def add_payment_method(
        self,
        user_id: str,
        method: PaymentMethod,
        make_default: bool = False,
    ) -> Subscription:
        subscription = await self.get_subscription(user_id)
        methods = rules.add_payment_method(subscription.payment_methods, method, make_default)
        updated = await self._repo.update(
            subscription.model_copy(update={"payment_methods": methods})
        )
        logger.info(f"[SUBSCRIPTION] Added {method.type.value} payment method for user {user_id}")
        return updated

    async def set_default_payment_method(self, user_id: str, index: int) -> Subscription:
        subscription = await self.get_subscription(user_id)
        methods = rules.set_default_payment_method(subscription.payment_methods, index)
        return await self._repo.update(
            subscription.model_copy(update={"payment_methods": methods})
        )

    async def remove_payment_method(self, user_id: str, index: int) -> Subscription:
        subscription = await self.get_subscription(user_id)
        methods = rules.remove_payment_method(subscription.payment_methods, index)
        updated = await self._repo.update(
            subscription.model_copy(update={"payment_methods": methods})
        )
        logger.info(f"[SUBSCRIPTION] Removed payment method {index} for user {user_id}")
        return updated
