import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.exceptions import InvalidTransitionError
from app.crud import alert as alert_crud
from app.crud import import_attempt as import_crud
from app.crud import market_metrics as market_crud
from app.crud import property_metrics as property_crud
from app.models.alert import Alert

logger = logging.getLogger(__name__)

HEAT_ORDER = ("cold", "warm", "hot", "very_hot")
MIN_LEADS_FOR_CONVERSION_CHECK = 5
TRENDING_TOP_N = 3


@dataclass(frozen=True)
class AlertThresholds:
    high_lead_volume: float = 10.0  # leads per day
    import_failure: float = 80.0  # % success rate
    market_heat_change: float = 20.0  # % leads trend
    low_conversion: float = 5.0  # % conversion rate
    trending_score: float = 80.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AlertThresholds":
        settings = settings or get_settings()
        return cls(
            high_lead_volume=settings.high_lead_volume_threshold,
            import_failure=settings.import_failure_threshold,
            market_heat_change=settings.market_heat_change_threshold,
            low_conversion=settings.low_conversion_threshold,
            trending_score=settings.trending_score_threshold,
        )


class AlertMonitor:
    """
        Threshold checks over property, import and market metrics.

        Each check returns the alerts it created. An alert is not raised again
        while one of the same type for the same property/city is still open
        (new or acknowledged).
    """

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self.thresholds = thresholds or AlertThresholds.from_settings()

    @staticmethod
    async def _raise_once(
        db: AsyncSession,
        alert_type: str,
        severity: str,
        title: str,
        message: str,
        details: dict,
        property_id: Optional[str] = None,
        city: Optional[str] = None,
    ) -> Optional[Alert]:
        if await alert_crud.get_open_alert(db, alert_type, property_id=property_id, city=city):
            return None
        alert = await alert_crud.create_alert(
            db,
            {
                "alert_type": alert_type,
                "severity": severity,
                "title": title,
                "message": message,
                "details": details,
                "property_id": property_id,
                "city": city,
            },
        )
        logger.info("Alert raised: %s", title)
        return alert

    # ---------------- CHECKS ----------------

    async def check_high_lead_volume(self, db: AsyncSession) -> List[Alert]:
        created = []
        for row in await property_crud.list_high_volume(db, self.thresholds.high_lead_volume):
            alert = await self._raise_once(
                db,
                "high_lead_volume",
                "info",
                f"High Lead Volume - Property {row.property_id}",
                f"Property {row.property_id} is receiving {row.avg_leads_per_day:.1f} leads per day",
                {
                    "property_id": row.property_id,
                    "avg_leads_per_day": row.avg_leads_per_day,
                    "total_leads": row.total_leads,
                    "lead_score": row.lead_score,
                },
                property_id=row.property_id,
            )
            if alert:
                created.append(alert)
        return created

    async def check_import_failures(self, db: AsyncSession) -> List[Alert]:
        created = []
        since = datetime.utcnow() - timedelta(days=1)
        for attempt in await import_crud.list_since(db, since):
            if attempt.completed_at is None or attempt.success_rate >= self.thresholds.import_failure:
                continue
            target = (attempt.target or "")[:100]
            alert = await self._raise_once(
                db,
                "import_failed",
                "critical" if attempt.status == "failed" else "warning",
                f"Import Failure - {target}",
                f"{attempt.import_type} import to {target} finished with {attempt.success_rate:.1f}% success rate",
                {
                    "attempt_id": str(attempt.attempt_id),
                    "import_type": attempt.import_type,
                    "success_rate": attempt.success_rate,
                    "properties_requested": attempt.properties_requested,
                    "properties_imported": attempt.properties_imported,
                    "properties_failed": attempt.properties_failed,
                    "error_message": attempt.error_message,
                },
                city=target,
            )
            if alert:
                created.append(alert)
        return created

    async def check_market_heat_changes(self, db: AsyncSession) -> List[Alert]:
        created = []
        since = datetime.utcnow() - timedelta(days=1)
        for market in await market_crud.list_updated_since(db, since):
            previous = await market_crud.get_previous_period(db, market.city, market.state, market.period_start)
            trend = market.leads_trend
            trend_crossed = trend is not None and abs(trend) > self.thresholds.market_heat_change
            label_changed = previous is not None and previous.market_heat != market.market_heat
            if not (trend_crossed or label_changed):
                continue

            if label_changed:
                heating = HEAT_ORDER.index(market.market_heat) > HEAT_ORDER.index(previous.market_heat)
                change = f"moved from {previous.market_heat} to {market.market_heat}"
            else:
                heating = trend > 0
                change = f"{'increased' if heating else 'decreased'} by {abs(trend):.1f}%"

            alert = await self._raise_once(
                db,
                "market_heat_change",
                "info" if heating else "warning",
                f"Market Heat Change - {market.city}, {market.state}",
                f"{market.city}, {market.state} market heat {change}",
                {
                    "city": market.city,
                    "state": market.state,
                    "market_heat": market.market_heat,
                    "previous_heat": previous.market_heat if previous else None,
                    "heat_score": market.heat_score,
                    "leads_trend": trend,
                    "leads_per_property": market.leads_per_property,
                },
                city=market.city,
            )
            if alert:
                created.append(alert)
        return created

    async def check_low_conversion_rates(self, db: AsyncSession) -> List[Alert]:
        created = []
        for row in await property_crud.list_min_leads(db, MIN_LEADS_FOR_CONVERSION_CHECK):
            if row.lead_to_conversion_rate >= self.thresholds.low_conversion:
                continue
            alert = await self._raise_once(
                db,
                "low_conversion_rate",
                "warning",
                f"Low Conversion Rate - Property {row.property_id}",
                (
                    f"Property {row.property_id} has a low conversion rate of "
                    f"{row.lead_to_conversion_rate:.1f}% ({row.total_conversions}/{row.total_leads} leads)"
                ),
                {
                    "property_id": row.property_id,
                    "total_leads": row.total_leads,
                    "total_conversions": row.total_conversions,
                    "conversion_rate": row.lead_to_conversion_rate,
                    "lead_score": row.lead_score,
                },
                property_id=row.property_id,
            )
            if alert:
                created.append(alert)
        return created

    async def check_trending_properties(self, db: AsyncSession) -> List[Alert]:
        created = []
        for row in await property_crud.list_top(db, TRENDING_TOP_N):
            if row.lead_score <= self.thresholds.trending_score:
                continue
            alert = await self._raise_once(
                db,
                "property_trending",
                "info",
                f"Trending Property - {row.property_id}",
                f"Property {row.property_id} is trending with a lead score of {row.lead_score:.1f}",
                {
                    "property_id": row.property_id,
                    "lead_score": row.lead_score,
                    "total_leads": row.total_leads,
                    "avg_leads_per_day": row.avg_leads_per_day,
                },
                property_id=row.property_id,
            )
            if alert:
                created.append(alert)
        return created

    async def run_checks(self, db: AsyncSession) -> List[Alert]:
        """Run every check in turn on one session, then commit."""
        created: List[Alert] = []
        for check in (
            self.check_high_lead_volume,
            self.check_import_failures,
            self.check_market_heat_changes,
            self.check_low_conversion_rates,
            self.check_trending_properties,
        ):
            created.extend(await check(db))
        await db.commit()
        logger.info("Monitoring checks complete, %d alerts raised", len(created))
        return created

    # ---------------- TRANSITIONS ----------------

    @staticmethod
    async def acknowledge(db: AsyncSession, alert_id: UUID) -> Alert:
        alert = await alert_crud.get_alert_by_id(db, alert_id)
        if alert is None:
            raise LookupError("Alert not found")
        if alert.status != "new":
            raise InvalidTransitionError(f"Cannot acknowledge an alert that is {alert.status}")
        alert.status = "acknowledged"
        alert.acknowledged_at = datetime.utcnow()
        await db.commit()
        return alert

    @staticmethod
    async def resolve(db: AsyncSession, alert_id: UUID) -> Alert:
        alert = await alert_crud.get_alert_by_id(db, alert_id)
        if alert is None:
            raise LookupError("Alert not found")
        if alert.status not in ("new", "acknowledged"):
            raise InvalidTransitionError(f"Cannot resolve an alert that is {alert.status}")
        alert.status = "resolved"
        alert.resolved_at = datetime.utcnow()
        await db.commit()
        return alert
