from .lead import Lead
from .lead_status_history import LeadStatusHistory
from .property_metrics import PropertyMetrics
from .market_metrics import MarketMetrics
from .import_attempt import ImportAttempt
from .daily_snapshot import DailySnapshot
from .alert import Alert

__all__ = ["Lead", "LeadStatusHistory", "PropertyMetrics", "MarketMetrics", "ImportAttempt", "DailySnapshot", "Alert"]
