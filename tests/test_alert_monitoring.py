"""
Tests for monitoring checks, duplicate suppression and alert transitions.
"""
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from app.core.exceptions import InvalidTransitionError
from app.services.alert_monitoring import AlertMonitor, AlertThresholds

MODULE = "app.services.alert_monitoring"


@pytest.fixture
def monitor():
    return AlertMonitor(AlertThresholds())


@pytest.fixture
def alert_store():
    """No open alerts; create_alert echoes the data back as an object."""
    async def _create(db, data):
        return SimpleNamespace(alert_id=uuid4(), status="new", **data)

    with patch(f"{MODULE}.alert_crud.get_open_alert", new_callable=AsyncMock, return_value=None) as get_open, \
            patch(f"{MODULE}.alert_crud.create_alert", new_callable=AsyncMock, side_effect=_create) as create:
        yield SimpleNamespace(get_open_alert=get_open, create_alert=create)


def metrics_row(property_id="p-1", **overrides):
    values = dict(
        property_id=property_id, avg_leads_per_day=12.0, total_leads=40, total_conversions=1,
        lead_to_conversion_rate=2.5, lead_score=88.0,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestChecks:

    @pytest.mark.asyncio
    async def test_high_lead_volume(self, mock_db, monitor, alert_store):
        with patch(f"{MODULE}.property_crud.list_high_volume", new_callable=AsyncMock, return_value=[metrics_row()]):
            created = await monitor.check_high_lead_volume(mock_db)

        assert len(created) == 1
        assert created[0].alert_type == "high_lead_volume"
        assert created[0].severity == "info"
        assert created[0].property_id == "p-1"

    @pytest.mark.asyncio
    async def test_open_alert_suppresses_duplicate(self, mock_db, monitor, alert_store):
        alert_store.get_open_alert.return_value = SimpleNamespace(status="acknowledged")
        with patch(f"{MODULE}.property_crud.list_high_volume", new_callable=AsyncMock, return_value=[metrics_row()]):
            created = await monitor.check_high_lead_volume(mock_db)

        assert created == []
        alert_store.create_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_import_failures(self, mock_db, monitor, alert_store):
        attempts = [
            SimpleNamespace(attempt_id=uuid4(), completed_at=datetime.utcnow(), success_rate=0.0, status="failed",
                            import_type="bulk", target="Tampa, FL", properties_requested=10, properties_imported=0,
                            properties_failed=10, error_message="timeout"),
            SimpleNamespace(attempt_id=uuid4(), completed_at=datetime.utcnow(), success_rate=50.0, status="partial",
                            import_type="bulk", target="Orlando, FL", properties_requested=10, properties_imported=5,
                            properties_failed=5, error_message=None),
            SimpleNamespace(attempt_id=uuid4(), completed_at=datetime.utcnow(), success_rate=95.0, status="partial",
                            import_type="bulk", target="Ocala, FL", properties_requested=20, properties_imported=19,
                            properties_failed=1, error_message=None),
            SimpleNamespace(attempt_id=uuid4(), completed_at=None, success_rate=0.0, status="started",
                            import_type="bulk", target="Lakeland, FL", properties_requested=10, properties_imported=0,
                            properties_failed=0, error_message=None),
        ]
        with patch(f"{MODULE}.import_crud.list_since", new_callable=AsyncMock, return_value=attempts):
            created = await monitor.check_import_failures(mock_db)

        assert [(a.city, a.severity) for a in created] == [("Tampa, FL", "critical"), ("Orlando, FL", "warning")]

    @pytest.mark.asyncio
    async def test_market_trend_crossing_threshold(self, mock_db, monitor, alert_store):
        market = SimpleNamespace(city="Tampa", state="FL", period_start=datetime(2026, 10, 1), market_heat="hot",
                                 heat_score=72.0, leads_trend=35.0, leads_per_property=2.1)
        with patch(f"{MODULE}.market_crud.list_updated_since", new_callable=AsyncMock, return_value=[market]), \
                patch(f"{MODULE}.market_crud.get_previous_period", new_callable=AsyncMock, return_value=None):
            created = await monitor.check_market_heat_changes(mock_db)

        assert len(created) == 1
        assert created[0].severity == "info"
        assert "increased by 35.0%" in created[0].message

    @pytest.mark.asyncio
    async def test_market_cooling_label_change(self, mock_db, monitor, alert_store):
        market = SimpleNamespace(city="Ocala", state="FL", period_start=datetime(2026, 10, 1), market_heat="cold",
                                 heat_score=30.0, leads_trend=-5.0, leads_per_property=0.4)
        previous = SimpleNamespace(market_heat="warm")
        with patch(f"{MODULE}.market_crud.list_updated_since", new_callable=AsyncMock, return_value=[market]), \
                patch(f"{MODULE}.market_crud.get_previous_period", new_callable=AsyncMock, return_value=previous):
            created = await monitor.check_market_heat_changes(mock_db)

        assert created[0].severity == "warning"
        assert "moved from warm to cold" in created[0].message

    @pytest.mark.asyncio
    async def test_small_trend_without_label_change_is_quiet(self, mock_db, monitor, alert_store):
        market = SimpleNamespace(city="Ocala", state="FL", period_start=datetime(2026, 10, 1), market_heat="warm",
                                 heat_score=50.0, leads_trend=5.0, leads_per_property=1.0)
        with patch(f"{MODULE}.market_crud.list_updated_since", new_callable=AsyncMock, return_value=[market]), \
                patch(f"{MODULE}.market_crud.get_previous_period", new_callable=AsyncMock,
                      return_value=SimpleNamespace(market_heat="warm")):
            assert await monitor.check_market_heat_changes(mock_db) == []

    @pytest.mark.asyncio
    async def test_low_conversion_and_trending(self, mock_db, monitor, alert_store):
        rows = [metrics_row("p-1"), metrics_row("p-2", lead_to_conversion_rate=12.0, lead_score=60.0)]
        with patch(f"{MODULE}.property_crud.list_min_leads", new_callable=AsyncMock, return_value=rows), \
                patch(f"{MODULE}.property_crud.list_top", new_callable=AsyncMock, return_value=rows):
            low = await monitor.check_low_conversion_rates(mock_db)
            trending = await monitor.check_trending_properties(mock_db)

        assert [a.property_id for a in low] == ["p-1"]
        assert [a.property_id for a in trending] == ["p-1"]

    @pytest.mark.asyncio
    async def test_run_checks_commits_once(self, mock_db, monitor, alert_store):
        empty = dict(new_callable=AsyncMock, return_value=[])
        with patch(f"{MODULE}.property_crud.list_high_volume", **empty), \
                patch(f"{MODULE}.property_crud.list_min_leads", **empty), \
                patch(f"{MODULE}.property_crud.list_top", **empty), \
                patch(f"{MODULE}.import_crud.list_since", **empty), \
                patch(f"{MODULE}.market_crud.list_updated_since", **empty):
            assert await monitor.run_checks(mock_db) == []
        mock_db.commit.assert_awaited_once()


class TestTransitions:

    @pytest.mark.asyncio
    async def test_acknowledge_then_resolve(self, mock_db):
        alert = SimpleNamespace(alert_id=uuid4(), status="new", acknowledged_at=None, resolved_at=None)
        with patch(f"{MODULE}.alert_crud.get_alert_by_id", new_callable=AsyncMock, return_value=alert):
            await AlertMonitor.acknowledge(mock_db, alert.alert_id)
            assert alert.status == "acknowledged"
            assert alert.acknowledged_at is not None
            await AlertMonitor.resolve(mock_db, alert.alert_id)

        assert alert.status == "resolved"
        assert alert.resolved_at is not None

    @pytest.mark.asyncio
    async def test_resolved_alert_cannot_be_acknowledged(self, mock_db):
        alert = SimpleNamespace(alert_id=uuid4(), status="resolved")
        with patch(f"{MODULE}.alert_crud.get_alert_by_id", new_callable=AsyncMock, return_value=alert):
            with pytest.raises(InvalidTransitionError):
                await AlertMonitor.acknowledge(mock_db, alert.alert_id)
            with pytest.raises(InvalidTransitionError):
                await AlertMonitor.resolve(mock_db, alert.alert_id)

    @pytest.mark.asyncio
    async def test_missing_alert(self, mock_db):
        with patch(f"{MODULE}.alert_crud.get_alert_by_id", new_callable=AsyncMock, return_value=None):
            with pytest.raises(LookupError):
                await AlertMonitor.resolve(mock_db, uuid4())
