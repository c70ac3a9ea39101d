"""
Analytics Domain

Business metrics snapshot for a reporting period and the pure aggregation
that builds it from a list of orders.
"""

import json
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import Field

from sellmate.domain.base import DomainModel
from sellmate.domain.orders import Order, OrderStatus

TREND_THRESHOLD_PERCENT = 5.0


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ReportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


# =============================================================================
# Metric Snapshots
# =============================================================================

class RevenueByPlatform(DomainModel):
    """Completed revenue split by the channel the order came from."""
    whatsapp: float = 0
    instagram: float = 0
    manual: float = 0


class RevenueMetrics(DomainModel):
    total: float = 0
    by_platform: RevenueByPlatform = Field(default_factory=RevenueByPlatform)
    previous_period_total: float = 0
    percentage_change: float = 0
    trend: TrendDirection = TrendDirection.STABLE


class ProductProfit(DomainModel):
    product_name: str
    profit: float
    margin: float
    order_count: int


class ProfitMetrics(DomainModel):
    total: float = 0
    margin: float = 0
    by_product: list[ProductProfit] = Field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE


class OrderMetrics(DomainModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    cancelled: int = 0
    expired: int = 0
    abandoned: int = 0
    completion_rate: float = 0


class CustomerMetrics(DomainModel):
    total: int = 0
    returning: int = 0
    average_order_value: float = 0


class BusinessMetrics(DomainModel):
    """Aggregated report for one user over [period_start, period_end]."""
    id: Optional[str] = None
    user_id: str
    period_start: datetime
    period_end: datetime
    revenue: RevenueMetrics
    profit: ProfitMetrics
    orders: OrderMetrics
    customers: CustomerMetrics
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExportOptions(DomainModel):
    """Report format and which optional sections to include."""
    format: ReportFormat = ReportFormat.JSON
    include_profit: bool = True
    include_orders: bool = True
    include_customers: bool = True


# =============================================================================
# Aggregation
# =============================================================================

# Orders still moving through the pipeline.
PENDING_STATUSES = frozenset({
    OrderStatus.DRAFT,
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
})


def calculate_trend(current: float, previous: float) -> TrendDirection:
    """
    Direction of change between two periods.

    Moves within +/-5% of the previous value count as stable. With no
    previous value, any positive current value is an increase.
    """
    if previous == 0:
        return TrendDirection.INCREASING if current > 0 else TrendDirection.STABLE

    change = ((current - previous) / previous) * 100
    if change > TREND_THRESHOLD_PERCENT:
        return TrendDirection.INCREASING
    if change < -TREND_THRESHOLD_PERCENT:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def percentage_change(current: float, previous: float) -> float:
    if previous > 0:
        return round(((current - previous) / previous) * 100, 2)
    return 100.0 if current > 0 else 0.0


def _completed(orders: Iterable[Order]) -> list[Order]:
    return [o for o in orders if o.status == OrderStatus.COMPLETED]


def _customer_key(order: Order) -> str:
    return order.customer_id or order.customer.contact


def _known_profit(orders: Iterable[Order]) -> float:
    return sum(o.profit for o in orders if o.profit is not None)


def build_order_metrics(orders: list[Order]) -> OrderMetrics:
    counts = defaultdict(int)
    for order in orders:
        counts[order.status] += 1

    total = len(orders)
    completed = counts[OrderStatus.COMPLETED]
    return OrderMetrics(
        total=total,
        completed=completed,
        pending=sum(counts[s] for s in PENDING_STATUSES),
        cancelled=counts[OrderStatus.CANCELLED],
        expired=counts[OrderStatus.EXPIRED],
        abandoned=counts[OrderStatus.ABANDONED],
        completion_rate=round(completed / total * 100, 2) if total else 0,
    )


def build_profit_metrics(completed: list[Order], previous_profit: float) -> ProfitMetrics:
    revenue = sum(o.total_amount for o in completed)
    total_profit = _known_profit(completed)

    by_name: dict[str, list[Order]] = defaultdict(list)
    for order in completed:
        by_name[order.product.name or "Unknown"].append(order)

    by_product = []
    for name, product_orders in by_name.items():
        product_revenue = sum(o.total_amount for o in product_orders)
        product_profit = _known_profit(product_orders)
        by_product.append(ProductProfit(
            product_name=name,
            profit=product_profit,
            margin=round(product_profit / product_revenue * 100, 2) if product_revenue > 0 else 0,
            order_count=len(product_orders),
        ))
    by_product.sort(key=lambda p: p.profit, reverse=True)

    return ProfitMetrics(
        total=total_profit,
        margin=round(total_profit / revenue * 100, 2) if revenue > 0 else 0,
        by_product=by_product,
        trend=calculate_trend(total_profit, previous_profit),
    )


def build_revenue_by_platform(
    completed: list[Order],
    platforms: Optional[Mapping[str, str]] = None,
) -> RevenueByPlatform:
    """
    Split completed revenue by source platform.

    `platforms` maps conversation id to platform name. Orders without a
    conversation, or whose conversation is unknown or on another platform,
    count as manual.
    """
    platforms = platforms or {}
    split = RevenueByPlatform()
    for order in completed:
        platform = platforms.get(order.conversation_id) if order.conversation_id else None
        if platform == "whatsapp":
            split.whatsapp += order.total_amount
        elif platform == "instagram":
            split.instagram += order.total_amount
        else:
            split.manual += order.total_amount
    return split


def build_customer_metrics(orders: list[Order], completed: list[Order]) -> CustomerMetrics:
    per_customer = defaultdict(int)
    for order in orders:
        per_customer[_customer_key(order)] += 1

    revenue = sum(o.total_amount for o in completed)
    return CustomerMetrics(
        total=len(per_customer),
        returning=sum(1 for n in per_customer.values() if n > 1),
        average_order_value=round(revenue / len(completed), 2) if completed else 0,
    )


def build_business_metrics(
    user_id: str,
    orders: list[Order],
    period_start: datetime,
    period_end: datetime,
    previous_orders: Optional[list[Order]] = None,
    platforms: Optional[Mapping[str, str]] = None,
) -> BusinessMetrics:
    """
    Aggregate a period's orders into a BusinessMetrics snapshot.

    Revenue and profit count completed orders only; order and customer
    counts cover every order in the period. `previous_orders` (the period of
    equal length just before) drives the revenue and profit trends, and
    `platforms` (conversation id to platform) drives the revenue split.
    """
    completed = _completed(orders)
    previous_completed = _completed(previous_orders or [])

    revenue_total = sum(o.total_amount for o in completed)
    previous_revenue = sum(o.total_amount for o in previous_completed)

    return BusinessMetrics(
        user_id=user_id,
        period_start=period_start,
        period_end=period_end,
        revenue=RevenueMetrics(
            total=revenue_total,
            by_platform=build_revenue_by_platform(completed, platforms),
            previous_period_total=previous_revenue,
            percentage_change=percentage_change(revenue_total, previous_revenue),
            trend=calculate_trend(revenue_total, previous_revenue),
        ),
        profit=build_profit_metrics(completed, _known_profit(previous_completed)),
        orders=build_order_metrics(orders),
        customers=build_customer_metrics(orders, completed),
    )


# =============================================================================
# Export
# =============================================================================

def export_report(metrics: BusinessMetrics, options: Optional[ExportOptions] = None) -> str:
    """
    Render a metrics snapshot as a downloadable report.

    JSON is the full stored document. CSV is a line-per-value summary with
    one block per section; profit, order and customer blocks follow the
    include flags.
    """
    options = options or ExportOptions()
    if options.format == ReportFormat.JSON:
        return json.dumps(metrics.to_document(), indent=2)

    revenue = metrics.revenue
    lines = [
        "SellMate Analytics Report",
        f"Period: {metrics.period_start.isoformat()} to {metrics.period_end.isoformat()}",
        "",
        "Revenue Metrics",
        f"Total Revenue,{revenue.total}",
        f"WhatsApp Revenue,{revenue.by_platform.whatsapp}",
        f"Instagram Revenue,{revenue.by_platform.instagram}",
        f"Manual Revenue,{revenue.by_platform.manual}",
        f"Trend,{revenue.trend.value}",
        "",
    ]

    if options.include_profit:
        lines += [
            "Profit Metrics",
            f"Total Profit,{metrics.profit.total}",
            f"Profit Margin,{metrics.profit.margin}%",
            "",
        ]

    if options.include_orders:
        lines += [
            "Order Metrics",
            f"Total Orders,{metrics.orders.total}",
            f"Completed,{metrics.orders.completed}",
            f"Pending,{metrics.orders.pending}",
            f"Cancelled,{metrics.orders.cancelled}",
            f"Completion Rate,{metrics.orders.completion_rate}%",
            "",
        ]

    if options.include_customers:
        lines += [
            "Customer Metrics",
            f"Total Customers,{metrics.customers.total}",
            f"Returning Customers,{metrics.customers.returning}",
            f"Average Order Value,{metrics.customers.average_order_value}",
        ]

    return "\n".join(lines)
