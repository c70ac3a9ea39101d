"""
Unit tests for business metrics aggregation, report export and AnalyticsService.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from sellmate.domain.analytics import (
    ExportOptions,
    ReportFormat,
    TrendDirection,
    build_business_metrics,
    build_revenue_by_platform,
    calculate_trend,
    export_report,
    percentage_change,
)
from sellmate.domain.orders import Order, OrderCustomerInfo, OrderProduct, OrderStatus
from sellmate.services.analytics_service import AnalyticsService


def _order(status, total, profit=None, customer="c1", name="Dress", created_at=None,
           conversation_id=None):
    return Order(
        user_id="user-1",
        customer_id=customer,
        conversation_id=conversation_id,
        status=status,
        product=OrderProduct(name=name, quantity=1, selling_price=total),
        customer=OrderCustomerInfo(name="Ada", contact="+234"),
        total_amount=total,
        profit=profit,
        created_at=created_at,
    )


@pytest.fixture
def metrics(now):
    orders = [
        _order(OrderStatus.COMPLETED, 1000, 400, customer="c1", conversation_id="conv-wa"),
        _order(OrderStatus.COMPLETED, 500, 100, customer="c1"),
        _order(OrderStatus.PENDING, 700, customer="c2"),
        _order(OrderStatus.CANCELLED, 100, customer="c3"),
    ]
    return build_business_metrics(
        "user-1", orders, now - timedelta(days=7), now, platforms={"conv-wa": "whatsapp"}
    )


class TestCalculateTrend:

    @pytest.mark.parametrize("current,previous,expected", [
        (106, 100, TrendDirection.INCREASING),
        (105, 100, TrendDirection.STABLE),
        (95, 100, TrendDirection.STABLE),
        (94, 100, TrendDirection.DECREASING),
        (10, 0, TrendDirection.INCREASING),
        (0, 0, TrendDirection.STABLE),
    ])
    def test_trend(self, current, previous, expected):
        """Changes beyond 5% set the direction; anything within is stable."""
        assert calculate_trend(current, previous) == expected

    def test_percentage_change(self):
        """Change is relative to the previous value, or 100 from zero."""
        assert percentage_change(150, 100) == 50.0
        assert percentage_change(10, 0) == 100.0
        assert percentage_change(0, 0) == 0.0


class TestBuildBusinessMetrics:

    def test_aggregates_period(self, now):
        """Revenue and profit use completed orders; counts use every order."""
        orders = [
            _order(OrderStatus.COMPLETED, 1000, 400, customer="c1", name="Dress"),
            _order(OrderStatus.COMPLETED, 500, None, customer="c1", name="Bag"),
            _order(OrderStatus.CONFIRMED, 700, 100, customer="c2"),
            _order(OrderStatus.EXPIRED, 300, customer="c3"),
            _order(OrderStatus.ABANDONED, 200, customer="c3"),
            _order(OrderStatus.CANCELLED, 100, customer="c4"),
        ]
        previous = [_order(OrderStatus.COMPLETED, 1000, 300)]

        metrics = build_business_metrics("user-1", orders, now - timedelta(days=7), now, previous)

        assert metrics.revenue.total == 1500
        assert metrics.revenue.trend == TrendDirection.INCREASING
        assert metrics.revenue.percentage_change == 50.0

        assert metrics.profit.total == 400
        assert metrics.profit.margin == round(400 / 1500 * 100, 2)
        assert metrics.profit.trend == TrendDirection.INCREASING
        assert [p.product_name for p in metrics.profit.by_product] == ["Dress", "Bag"]

        assert metrics.orders.total == 6
        assert metrics.orders.completed == 2
        assert metrics.orders.pending == 1
        assert metrics.orders.expired == 1
        assert metrics.orders.abandoned == 1
        assert metrics.orders.cancelled == 1
        assert metrics.orders.completion_rate == 33.33

        assert metrics.customers.total == 4
        assert metrics.customers.returning == 2
        assert metrics.customers.average_order_value == 750

    def test_empty_period(self, now):
        """An empty period reports zeros and a stable trend."""
        metrics = build_business_metrics("user-1", [], now - timedelta(days=1), now)

        assert metrics.revenue.total == 0
        assert metrics.revenue.trend == TrendDirection.STABLE
        assert metrics.orders.completion_rate == 0
        assert metrics.customers.average_order_value == 0

    def test_document_is_camel_case(self, now):
        """The metrics document uses camelCase keys."""
        document = build_business_metrics("user-1", [], now, now).to_document()

        assert "periodStart" in document
        assert "completionRate" in document["orders"]
        assert "averageOrderValue" in document["customers"]
        assert document["revenue"]["byPlatform"] == {"whatsapp": 0, "instagram": 0, "manual": 0}


class TestRevenueByPlatform:

    def test_splits_by_conversation_platform(self):
        """Revenue follows the conversation's platform; the rest is manual."""
        completed = [
            _order(OrderStatus.COMPLETED, 1000, conversation_id="conv-wa"),
            _order(OrderStatus.COMPLETED, 400, conversation_id="conv-ig"),
            _order(OrderStatus.COMPLETED, 300, conversation_id="conv-tg"),
            _order(OrderStatus.COMPLETED, 200, conversation_id="conv-gone"),
            _order(OrderStatus.COMPLETED, 100),
        ]
        platforms = {"conv-wa": "whatsapp", "conv-ig": "instagram", "conv-tg": "telegram"}

        split = build_revenue_by_platform(completed, platforms)

        assert split.whatsapp == 1000
        assert split.instagram == 400
        assert split.manual == 600

    def test_without_platforms_everything_is_manual(self):
        """With no platform lookup all revenue is manual."""
        split = build_revenue_by_platform(
            [_order(OrderStatus.COMPLETED, 250, conversation_id="conv-wa")]
        )
        assert split.manual == 250
        assert split.whatsapp == 0

    def test_only_completed_orders_count(self, metrics):
        """Pending and cancelled orders do not add platform revenue."""
        assert metrics.revenue.by_platform.whatsapp == 1000
        assert metrics.revenue.by_platform.manual == 500


class TestExportReport:

    def test_csv_sections(self, metrics, now):
        """CSV starts with the title and period, then one block per section."""
        report = export_report(metrics, ExportOptions(format=ReportFormat.CSV))
        lines = report.split("\n")

        assert lines[0] == "SellMate Analytics Report"
        assert lines[1] == f"Period: {(now - timedelta(days=7)).isoformat()} to {now.isoformat()}"
        assert "Total Revenue,1500.0" in lines
        assert "WhatsApp Revenue,1000.0" in lines
        assert "Manual Revenue,500.0" in lines
        assert "Trend,increasing" in lines
        assert "Profit Margin,33.33%" in lines
        assert "Completed,2" in lines
        assert "Completion Rate,50.0%" in lines
        assert "Returning Customers,1" in lines

    def test_csv_respects_include_flags(self, metrics):
        """Sections switched off are left out of the CSV."""
        report = export_report(metrics, ExportOptions(
            format=ReportFormat.CSV,
            include_profit=False,
            include_orders=False,
            include_customers=False,
        ))

        assert "Revenue Metrics" in report
        assert "Profit Metrics" not in report
        assert "Order Metrics" not in report
        assert "Customer Metrics" not in report

    def test_json_is_the_document(self, metrics):
        """JSON export is the camelCase metrics document."""
        report = export_report(metrics)

        assert json.loads(report) == metrics.to_document()
        assert '\n  "userId": "user-1"' in report

    def test_format_accepts_strings(self):
        """Export options accept the format by value."""
        assert ExportOptions.model_validate({"format": "csv"}).format == ReportFormat.CSV


class TestAnalyticsService:

    @pytest.mark.asyncio
    async def test_compares_with_previous_period(self, now):
        """Metrics trend against the equal-length period just before."""
        start = now - timedelta(days=7)
        current = [_order(OrderStatus.COMPLETED, 900, 100, created_at=now - timedelta(days=1))]
        earlier = [_order(OrderStatus.COMPLETED, 1000, 100, created_at=start - timedelta(days=2))]

        repo = MagicMock()
        repo.find_in_range = AsyncMock(side_effect=[current, earlier])
        service = AnalyticsService(repo)

        metrics = await service.get_business_metrics("user-1", start, now)

        assert metrics.revenue.total == 900
        assert metrics.revenue.previous_period_total == 1000
        assert metrics.revenue.trend == TrendDirection.DECREASING
        assert metrics.revenue.by_platform.manual == 900
        repo.find_in_range.assert_any_await("user-1", start, now)
        repo.find_in_range.assert_any_await("user-1", start - timedelta(days=7), start)

    @pytest.mark.asyncio
    async def test_platforms_come_from_conversations(self, now):
        """Conversation platforms are looked up once for the period's orders."""
        start = now - timedelta(days=7)
        current = [
            _order(OrderStatus.COMPLETED, 800, conversation_id="conv-ig", created_at=now),
            _order(OrderStatus.COMPLETED, 200, conversation_id="conv-ig", created_at=now),
            _order(OrderStatus.COMPLETED, 50, created_at=now),
        ]
        repo = MagicMock()
        repo.find_in_range = AsyncMock(side_effect=[current, []])
        conversations = MagicMock()
        conversations.find_platforms = AsyncMock(return_value={"conv-ig": "instagram"})
        service = AnalyticsService(repo, conversations)

        metrics = await service.get_business_metrics("user-1", start, now)

        assert metrics.revenue.by_platform.instagram == 1000
        assert metrics.revenue.by_platform.manual == 50
        conversations.find_platforms.assert_awaited_once_with(["conv-ig"])

    @pytest.mark.asyncio
    async def test_export_report(self, now):
        """The service renders the period's metrics in the requested format."""
        repo = MagicMock()
        repo.find_in_range = AsyncMock(side_effect=[
            [_order(OrderStatus.COMPLETED, 300, 120, created_at=now)], [],
        ])
        service = AnalyticsService(repo)

        report = await service.export_report(
            "user-1", now - timedelta(days=1), now, ExportOptions(format=ReportFormat.CSV)
        )

        assert report.startswith("SellMate Analytics Report")
        assert "Total Profit,120.0" in report
