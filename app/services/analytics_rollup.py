"""
Analytics rollup: read-only aggregation over leads, property metrics,
market metrics and import attempts for a trailing window of days.

The module-level functions are pure (rows in, plain dicts out) so they can be
re-run at any time. `AnalyticsServices` fetches the rows and caches the
dashboard payloads in Redis.
"""

import csv
import io
import json
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.crud import daily_snapshot as snapshot_crud
from app.crud import import_attempt as import_crud
from app.crud import lead as lead_crud
from app.crud import market_metrics as market_crud
from app.crud import property_metrics as property_crud

logger = logging.getLogger(__name__)

FUNNEL_STAGES = ("new", "contacted", "qualified", "converted", "lost")
QUALITY_LABELS = ("hot", "warm", "cold", "unqualified")


def safe_rate(numerator: Any, denominator: Any) -> float:
    """Percentage; 0 when the denominator is 0 or missing."""
    if not denominator:
        return 0.0
    return float(numerator or 0) / float(denominator) * 100


def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    if days < 1:
        raise ValueError("days must be >= 1")
    return (now or datetime.utcnow()) - timedelta(days=days)


def _in_window(rows: Iterable[Any], days: int, attr: str, now: Optional[datetime]) -> List[Any]:
    start = window_start(days, now)
    return [r for r in rows if getattr(r, attr) is not None and getattr(r, attr) >= start]


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ---------------- LEADS ----------------

def summarize_leads(leads: Iterable[Any], days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    window = _in_window(leads, days, "created_at", now)
    total = len(window)
    converted = sum(1 for lead in window if lead.status == "converted")
    by_category = Counter(lead.category for lead in window)
    fallback = sum(1 for lead in window if lead.delivery_status == "fallback")
    return {
        "days": days,
        "total_leads": total,
        "by_category": {c: by_category.get(c, 0) for c in ("AGENT", "BUYER", "MORTGAGE")},
        "delivered": total - fallback,
        "fallback": fallback,
        "relay_pending": sum(1 for lead in window if lead.delivery_status == "fallback" and lead.relay_status != "sent"),
        "needs_review": sum(1 for lead in window if lead.needs_review),
        "converted": converted,
        "conversion_rate": round(safe_rate(converted, total), 2),
        "avg_quality_score": round(_mean([float(lead.quality_score or 0) for lead in window]), 2),
    }


def conversion_funnel(leads: Iterable[Any], days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    window = _in_window(leads, days, "created_at", now)
    counts = Counter(lead.status for lead in window)
    return [
        {"status": stage, "count": counts.get(stage, 0), "percentage": round(safe_rate(counts.get(stage, 0), len(window)), 2)}
        for stage in FUNNEL_STAGES
    ]


def quality_distribution(leads: Iterable[Any], days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    window = _in_window(leads, days, "created_at", now)
    result = []
    for label in QUALITY_LABELS:
        scores = [float(lead.quality_score or 0) for lead in window if lead.quality_label == label]
        result.append({"quality": label, "count": len(scores), "avg_score": round(_mean(scores), 2)})
    return result


# ---------------- RANKINGS ----------------

def top_properties(metrics: Iterable[Any], n: int = 10) -> List[Any]:
    """Highest lead score first; ties by property id ascending."""
    return sorted(metrics, key=lambda m: (-float(m.lead_score or 0), str(m.property_id)))[:n]


def top_markets(markets: Iterable[Any], n: int = 10) -> List[Any]:
    return sorted(
        markets,
        key=lambda m: (-float(m.heat_score or 0), -int(m.total_leads or 0), str(m.city).lower()),
    )[:n]


# ---------------- IMPORTS ----------------

def import_stats(attempts: Iterable[Any], days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    window = _in_window(attempts, days, "started_at", now)
    finished = [a for a in window if a.completed_at is not None]
    statuses = Counter(a.status for a in window)
    return {
        "total_imports": len(window),
        "total_imported": sum(a.properties_imported or 0 for a in window),
        "total_failed": sum(a.properties_failed or 0 for a in window),
        "avg_success_rate": round(_mean([float(a.success_rate or 0) for a in finished]), 2),
        "completed": statuses.get("completed", 0),
        "partial": statuses.get("partial", 0),
        "failed": statuses.get("failed", 0),
        "in_progress": statuses.get("started", 0),
    }


# ---------------- SNAPSHOTS ----------------

def build_daily_snapshot(
    day: date,
    leads: Iterable[Any],
    status_changes: Iterable[Any],
    metrics: Iterable[Any],
    attempts: Iterable[Any],
    markets: Iterable[Any],
) -> Dict[str, Any]:
    """
    Values for one DailySnapshot row. Leads, conversions and imports count
    what happened on `day`; views are the cumulative property totals.
    """
    metrics = list(metrics)
    day_leads = [lead for lead in leads if lead.created_at and lead.created_at.date() == day]
    conversions = sum(
        1 for h in status_changes
        if h.new_status == "converted" and h.changed_at and h.changed_at.date() == day
    )
    day_imports = [a for a in attempts if a.started_at and a.started_at.date() == day]
    best_property = top_properties(metrics, 1)
    best_market = top_markets(markets, 1)

    return {
        "date": day,
        "total_leads": len(day_leads),
        "total_views": sum(m.total_views or 0 for m in metrics),
        "total_conversions": conversions,
        "imports_completed": sum(1 for a in day_imports if a.status == "completed"),
        "imports_failed": sum(1 for a in day_imports if a.status == "failed"),
        "properties_imported": sum(a.properties_imported or 0 for a in day_imports),
        "avg_lead_score": round(_mean([float(lead.quality_score or 0) for lead in day_leads]), 2),
        "conversion_rate": round(safe_rate(conversions, len(day_leads)), 2),
        "top_property": best_property[0].property_id if best_property else None,
        "top_city": best_market[0].city if best_market else None,
    }


def performance_summary(
    snapshots: Iterable[Any],
    metrics: Iterable[Any],
    markets: Iterable[Any],
    attempts: Iterable[Any],
    days: int,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    start = window_start(days, now).date()
    window = [s for s in snapshots if s.date >= start]
    total_leads = sum(s.total_leads or 0 for s in window)
    total_conversions = sum(s.total_conversions or 0 for s in window)
    weighted_score = sum(float(s.avg_lead_score or 0) * (s.total_leads or 0) for s in window)
    best_property = top_properties(metrics, 1)
    best_market = top_markets(markets, 1)

    return {
        "period": f"Last {days} days",
        "total_leads": total_leads,
        "total_conversions": total_conversions,
        "conversion_rate": round(safe_rate(total_conversions, total_leads), 2),
        "avg_lead_score": round(weighted_score / total_leads, 2) if total_leads else 0.0,
        "top_property": best_property[0].property_id if best_property else None,
        "top_market": f"{best_market[0].city}, {best_market[0].state}" if best_market else None,
        "import_stats": import_stats(attempts, days, now),
    }


# ---------------- CSV REPORTS ----------------

def _fmt(value: Any, digits: int = 2) -> Any:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _csv(fieldnames: List[str], rows: List[Dict[str, Any]], prefix: str) -> Dict[str, str]:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
    writer.writeheader()
    writer.writerows(rows)
    return {
        "content": output.getvalue(),
        "filename": f"{prefix}_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.csv",
        "content_type": "text/csv",
    }


def properties_report_csv(metrics: Iterable[Any], limit: int = 100) -> Dict[str, str]:
    fieldnames = [
        "Property ID", "Lead Score", "Total Views", "Total Leads", "Conversions",
        "View to Lead Rate %", "Lead to Conversion Rate %", "Avg Leads Per Day",
        "Market Rank", "Last Updated",
    ]
    rows = [
        {
            "Property ID": m.property_id,
            "Lead Score": _fmt(float(m.lead_score or 0)),
            "Total Views": m.total_views,
            "Total Leads": m.total_leads,
            "Conversions": m.total_conversions,
            "View to Lead Rate %": _fmt(float(m.view_to_lead_rate or 0)),
            "Lead to Conversion Rate %": _fmt(float(m.lead_to_conversion_rate or 0)),
            "Avg Leads Per Day": _fmt(float(m.avg_leads_per_day or 0)),
            "Market Rank": _fmt(m.market_rank),
            "Last Updated": _fmt(m.updated_at),
        }
        for m in top_properties(metrics, limit)
    ]
    return _csv(fieldnames, rows, "properties_report")


def imports_report_csv(attempts: Iterable[Any], days: int, now: Optional[datetime] = None) -> Dict[str, str]:
    fieldnames = [
        "Date", "Type", "Target", "Requested", "Imported", "Failed", "Success Rate %",
        "CRM Imported", "CRM Failed", "Status", "Duration (sec)",
    ]
    window = sorted(_in_window(attempts, days, "started_at", now), key=lambda a: a.started_at, reverse=True)
    rows = [
        {
            "Date": _fmt(a.started_at),
            "Type": a.import_type,
            "Target": a.target,
            "Requested": a.properties_requested,
            "Imported": a.properties_imported,
            "Failed": a.properties_failed,
            "Success Rate %": _fmt(float(a.success_rate or 0)),
            "CRM Imported": a.crm_imported,
            "CRM Failed": a.crm_failed,
            "Status": a.status,
            "Duration (sec)": _fmt(a.duration_seconds),
        }
        for a in window
    ]
    return _csv(fieldnames, rows, "imports_report")


def markets_report_csv(markets: Iterable[Any]) -> Dict[str, str]:
    markets = list(markets)
    fieldnames = [
        "City", "State", "Market Heat", "Heat Score", "Total Properties", "Active Listings",
        "Avg Price", "Avg Days on Market", "Total Leads", "Leads Per Property",
        "Conversion Rate %", "Price Change %", "Leads Trend %",
    ]
    rows = [
        {
            "City": m.city,
            "State": m.state,
            "Market Heat": m.market_heat,
            "Heat Score": _fmt(float(m.heat_score or 0)),
            "Total Properties": m.total_properties,
            "Active Listings": m.active_listings,
            "Avg Price": _fmt(None if m.avg_price is None else float(m.avg_price)),
            "Avg Days on Market": _fmt(None if m.avg_days_on_market is None else float(m.avg_days_on_market), 1),
            "Total Leads": m.total_leads,
            "Leads Per Property": _fmt(float(m.leads_per_property or 0)),
            "Conversion Rate %": _fmt(float(m.conversion_rate or 0)),
            "Price Change %": _fmt(None if m.price_change is None else float(m.price_change)),
            "Leads Trend %": _fmt(None if m.leads_trend is None else float(m.leads_trend)),
        }
        for m in top_markets(markets, len(markets))
    ]
    return _csv(fieldnames, rows, "markets_report")


REPORT_KINDS = ("properties", "imports", "markets")


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class AnalyticsServices:

    @staticmethod
    async def _cached(redis, key: str, build) -> Any:
        """Return the cached payload for `key`, or build, cache and return it."""
        try:
            cached = await redis.get(key)
            if cached:
                return json.loads(cached)
        except RedisError as e:
            logger.warning("Dashboard cache read failed for %s: %s", key, e)

        payload = await build()

        try:
            await redis.set(
                key,
                json.dumps(payload, default=_serialize),
                ex=get_settings().dashboard_cache_ttl_seconds,
            )
        except RedisError as e:
            logger.warning("Dashboard cache write failed for %s: %s", key, e)
        return payload

    @staticmethod
    async def get_summary(days: int, db: AsyncSession, redis) -> Dict[str, Any]:
        """
        Dashboard summary for the trailing `days`.

        Workflow:
        1. Serve from Redis when a fresh copy exists.
        2. Otherwise load leads, property/market metrics, imports and daily snapshots.
        3. Combine the lead summary with the performance summary.
        4. Cache for `dashboard_cache_ttl_seconds`.
        """
        since = window_start(days)

        async def build():
            leads = await lead_crud.list_since(db, since)
            metrics = await property_crud.list_top(db, 1)
            markets = await market_crud.list_active(db, 1)
            attempts = await import_crud.list_since(db, since)
            snapshots = await snapshot_crud.list_since(db, since.date())
            return {
                "leads": summarize_leads(leads, days),
                "performance": performance_summary(snapshots, metrics, markets, attempts, days),
            }

        return await AnalyticsServices._cached(redis, f"analytics:summary:{days}", build)

    @staticmethod
    async def get_top_properties(limit: int, db: AsyncSession) -> List[Any]:
        return top_properties(await property_crud.list_top(db, limit), limit)

    @staticmethod
    async def get_funnel(days: int, db: AsyncSession, redis) -> List[Dict[str, Any]]:
        async def build():
            return conversion_funnel(await lead_crud.list_since(db, window_start(days)), days)

        return await AnalyticsServices._cached(redis, f"analytics:funnel:{days}", build)

    @staticmethod
    async def get_quality_distribution(days: int, db: AsyncSession, redis) -> List[Dict[str, Any]]:
        async def build():
            return quality_distribution(await lead_crud.list_since(db, window_start(days)), days)

        return await AnalyticsServices._cached(redis, f"analytics:quality:{days}", build)

    @staticmethod
    async def generate_report(kind: str, days: int, db: AsyncSession) -> Dict[str, str]:
        if kind == "properties":
            return properties_report_csv(await property_crud.list_top(db, 100))
        if kind == "imports":
            return imports_report_csv(await import_crud.list_since(db, window_start(days)), days)
        if kind == "markets":
            return markets_report_csv(await market_crud.list_updated_since(db, window_start(days)))
        raise ValueError(f"Unknown report kind '{kind}', expected one of {', '.join(REPORT_KINDS)}")

    @staticmethod
    async def create_daily_snapshot(day: date, db: AsyncSession):
        """The only writer in analytics: upserts the DailySnapshot row for `day`."""
        day_start = datetime.combine(day, datetime.min.time())
        leads = await lead_crud.list_since(db, day_start)
        changes = await lead_crud.list_status_changes_since(db, day_start)
        metrics = await property_crud.list_all(db)
        attempts = await import_crud.list_since(db, day_start)
        markets = await market_crud.list_active(db)

        values = build_daily_snapshot(day, leads, changes, metrics, attempts, markets)
        snapshot = await snapshot_crud.upsert_snapshot(db, values)
        await db.commit()
        logger.info("Daily snapshot for %s: %d leads", day, values["total_leads"])
        return snapshot
