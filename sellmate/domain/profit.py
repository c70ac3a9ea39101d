"""
Profit Calculator

Pure arithmetic over per-unit prices, quantity and operational expenses.
Input validation (non-negative values) belongs to the request schema layer;
negative numbers are accepted here and computed as-is.
"""

from typing import Optional

from sellmate.domain.base import DomainModel


class ProfitResult(DomainModel):
    """Profit metrics for a product line."""
    total_revenue: float
    total_cost: float
    gross_profit: float
    net_profit: float
    profit_margin: float


def calculate_profit_margin(selling_price: float, cost_price: float) -> float:
    """
    Margin as a percentage of the selling price, rounded to 2 decimals.

    Formula: ((selling_price - cost_price) / selling_price) * 100.
    Returns 0 when selling_price <= 0.
    """
    if selling_price <= 0:
        return 0.0
    margin = ((selling_price - cost_price) / selling_price) * 100
    return round(margin, 2)


def calculate_net_profit(gross_profit: float, operational_expenses: float) -> float:
    """Net profit after operational expenses."""
    return gross_profit - operational_expenses


def calculate_profit(
    selling_price: float,
    cost_price: float,
    quantity: float,
    operational_expenses: float = 0,
) -> ProfitResult:
    """
    Calculate revenue, cost, gross/net profit and margin.

    Args:
        selling_price: Price per unit sold to the customer
        cost_price: Cost per unit to acquire/produce
        quantity: Number of units
        operational_expenses: Shipping, packaging and other order-level costs

    Returns:
        ProfitResult with all calculated metrics
    """
    total_revenue = selling_price * quantity
    total_cost = cost_price * quantity
    gross_profit = total_revenue - total_cost

    return ProfitResult(
        total_revenue=total_revenue,
        total_cost=total_cost,
        gross_profit=gross_profit,
        net_profit=calculate_net_profit(gross_profit, operational_expenses),
        profit_margin=calculate_profit_margin(selling_price, cost_price),
    )


def calculate_order_profit(
    selling_price: float,
    cost_price: Optional[float],
    quantity: float,
    operational_expenses: float = 0,
) -> Optional[ProfitResult]:
    """Profit for an order line; None when the cost price is unknown."""
    if cost_price is None:
        return None
    return calculate_profit(selling_price, cost_price, quantity, operational_expenses)
