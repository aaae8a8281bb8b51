"""
Tests for the analytics rollups, CSV reports and dashboard caching.
"""
import csv
import io
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError

from app.services.analytics_rollup import (
    AnalyticsServices,
    build_daily_snapshot,
    conversion_funnel,
    import_stats,
    markets_report_csv,
    properties_report_csv,
    quality_distribution,
    safe_rate,
    summarize_leads,
    top_markets,
    top_properties,
    window_start,
)

NOW = datetime(2026, 10, 19, 12, 0, 0)


def lead(days_ago=1, status="new", category="BUYER", label="warm", score=50.0,
         delivery_status="delivered", relay_status=None, needs_review=False):
    return SimpleNamespace(
        created_at=NOW - timedelta(days=days_ago),
        status=status,
        category=category,
        quality_label=label,
        quality_score=score,
        delivery_status=delivery_status,
        relay_status=relay_status,
        needs_review=needs_review,
    )


def attempt(days_ago=1, status="completed", imported=10, failed=0, rate=100.0, finished=True):
    started = NOW - timedelta(days=days_ago)
    return SimpleNamespace(
        started_at=started,
        completed_at=started + timedelta(minutes=2) if finished else None,
        status=status,
        import_type="bulk",
        target="Tampa, FL",
        properties_requested=10,
        properties_imported=imported,
        properties_failed=failed,
        success_rate=rate,
        crm_imported=0,
        crm_failed=0,
        duration_seconds=120 if finished else None,
    )


class TestRates:

    def test_zero_denominator_is_zero(self):
        assert safe_rate(5, 0) == 0
        assert safe_rate(5, None) == 0

    def test_percentage(self):
        assert safe_rate(1, 4) == 25.0

    def test_window_needs_a_day(self):
        with pytest.raises(ValueError):
            window_start(0)


class TestLeadRollups:

    def test_summary_counts_inside_window(self):
        leads = [
            lead(status="converted", category="AGENT", score=80),
            lead(delivery_status="fallback", relay_status="timed_out", needs_review=True, score=20),
            lead(delivery_status="fallback", relay_status="sent", score=50),
            lead(days_ago=45, status="converted"),
        ]
        summary = summarize_leads(leads, 30, NOW)
        assert summary["total_leads"] == 3
        assert summary["by_category"] == {"AGENT": 1, "BUYER": 2, "MORTGAGE": 0}
        assert summary["fallback"] == 2
        assert summary["delivered"] == 1
        assert summary["relay_pending"] == 1
        assert summary["needs_review"] == 1
        assert summary["conversion_rate"] == 33.33
        assert summary["avg_quality_score"] == 50.0

    def test_summary_with_no_leads(self):
        summary = summarize_leads([], 7, NOW)
        assert summary["total_leads"] == 0
        assert summary["conversion_rate"] == 0
        assert summary["avg_quality_score"] == 0

    def test_funnel_covers_every_stage(self):
        funnel = conversion_funnel([lead(status="new"), lead(status="new"), lead(status="lost"), lead(status="qualified")], 30, NOW)
        assert [f["status"] for f in funnel] == ["new", "contacted", "qualified", "converted", "lost"]
        assert funnel[0] == {"status": "new", "count": 2, "percentage": 50.0}
        assert funnel[1]["percentage"] == 0

    def test_quality_distribution(self):
        dist = quality_distribution([lead(label="hot", score=90), lead(label="hot", score=70), lead(label="cold", score=25)], 30, NOW)
        by_label = {d["quality"]: d for d in dist}
        assert by_label["hot"] == {"quality": "hot", "count": 2, "avg_score": 80.0}
        assert by_label["unqualified"]["count"] == 0


class TestRankings:

    def test_top_properties_tie_breaks_on_id(self):
        metrics = [
            SimpleNamespace(property_id="b", lead_score=70),
            SimpleNamespace(property_id="a", lead_score=70),
            SimpleNamespace(property_id="c", lead_score=90),
        ]
        assert [m.property_id for m in top_properties(metrics, 2)] == ["c", "a"]

    def test_top_markets(self):
        markets = [
            SimpleNamespace(city="Tampa", heat_score=60, total_leads=5),
            SimpleNamespace(city="Orlando", heat_score=60, total_leads=9),
        ]
        assert top_markets(markets, 1)[0].city == "Orlando"


class TestImports:

    def test_import_stats(self):
        attempts = [
            attempt(),
            attempt(status="partial", imported=4, failed=6, rate=40.0),
            attempt(status="started", imported=0, rate=0.0, finished=False),
            attempt(days_ago=60),
        ]
        stats = import_stats(attempts, 30, NOW)
        assert stats["total_imports"] == 3
        assert stats["total_imported"] == 14
        assert stats["avg_success_rate"] == 70.0
        assert stats["partial"] == 1
        assert stats["in_progress"] == 1


class TestDailySnapshot:

    def test_counts_only_the_day(self):
        day = NOW.date()
        leads = [lead(days_ago=0, score=60), lead(days_ago=0, score=40), lead(days_ago=2)]
        changes = [
            SimpleNamespace(new_status="converted", changed_at=NOW),
            SimpleNamespace(new_status="contacted", changed_at=NOW),
            SimpleNamespace(new_status="converted", changed_at=NOW - timedelta(days=3)),
        ]
        metrics = [
            SimpleNamespace(property_id="p-1", lead_score=40, total_views=100),
            SimpleNamespace(property_id="p-2", lead_score=85, total_views=20),
        ]
        markets = [SimpleNamespace(city="Tampa", state="FL", heat_score=70, total_leads=4)]
        values = build_daily_snapshot(day, leads, changes, metrics, [attempt(days_ago=0)], markets)

        assert values["date"] == day
        assert values["total_leads"] == 2
        assert values["total_views"] == 120
        assert values["total_conversions"] == 1
        assert values["avg_lead_score"] == 50.0
        assert values["conversion_rate"] == 50.0
        assert values["imports_completed"] == 1
        assert values["top_property"] == "p-2"
        assert values["top_city"] == "Tampa"

    def test_empty_day(self):
        values = build_daily_snapshot(date(2026, 1, 1), [], [], [], [], [])
        assert values["conversion_rate"] == 0
        assert values["top_property"] is None
        assert values["top_city"] is None


class TestReports:

    def test_properties_report(self):
        metrics = [
            SimpleNamespace(
                property_id="p-1", lead_score=72.456, total_views=40, total_leads=6, total_conversions=1,
                view_to_lead_rate=15.0, lead_to_conversion_rate=16.6667, avg_leads_per_day=0.5,
                market_rank=None, updated_at=NOW,
            )
        ]
        report = properties_report_csv(metrics)
        assert report["content_type"] == "text/csv"
        assert report["filename"].startswith("properties_report_")
        rows = list(csv.DictReader(io.StringIO(report["content"])))
        assert rows[0]["Lead Score"] == "72.46"
        assert rows[0]["Market Rank"] == "N/A"
        assert rows[0]["Last Updated"] == NOW.isoformat()

    def test_markets_report_orders_by_heat(self):
        markets = [
            SimpleNamespace(city=city, state="FL", market_heat=heat, heat_score=score, total_properties=3,
                            active_listings=2, avg_price=None, avg_days_on_market=12.0, total_leads=5,
                            leads_per_property=1.67, conversion_rate=0.0, price_change=None, leads_trend=10.0)
            for city, heat, score in (("Ocala", "cold", 20.0), ("Tampa", "hot", 75.0))
        ]
        rows = list(csv.DictReader(io.StringIO(markets_report_csv(markets)["content"])))
        assert [r["City"] for r in rows] == ["Tampa", "Ocala"]
        assert rows[0]["Avg Price"] == "N/A"
        assert rows[0]["Avg Days on Market"] == "12.0"

    @pytest.mark.asyncio
    async def test_unknown_report_kind(self, mock_db):
        with pytest.raises(ValueError):
            await AnalyticsServices.generate_report("agents", 30, mock_db)


class TestDashboardCache:

    @pytest.mark.asyncio
    async def test_cache_hit_skips_build(self, mock_redis):
        mock_redis.get = AsyncMock(return_value='{"cached": true}')
        build = AsyncMock()
        assert await AnalyticsServices._cached(mock_redis, "k", build) == {"cached": True}
        build.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_down_still_builds(self):
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=RedisError("down"))
        redis.set = AsyncMock(side_effect=RedisError("down"))
        build = AsyncMock(return_value={"total": 1})
        assert await AnalyticsServices._cached(redis, "k", build) == {"total": 1}
