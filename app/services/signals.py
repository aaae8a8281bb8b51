"""
Signal extraction: pulls the classification signals out of a raw lead submission.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlparse

from app.schemas.submission import LeadSubmission

PROPERTY_SIGNAL_FIELDS = ("property_address", "property_price", "property_id", "timeline", "budget")
AGENT_SIGNAL_FIELDS = ("brokerage_name", "years_experience", "current_lead_source", "monthly_lead_budget", "selected_plan")
MORTGAGE_SIGNAL_FIELDS = ("home_price", "down_payment", "interest_rate")

SubmissionLike = Union[LeadSubmission, Mapping[str, Any], None]


@dataclass(frozen=True)
class LeadSignals:
    source_domain: Optional[str] = None
    has_property_signals: bool = False
    has_agent_signals: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.source_domain or self.has_property_signals or self.has_agent_signals)


def _field(submission: SubmissionLike, name: str) -> Any:
    if submission is None:
        return None
    if isinstance(submission, Mapping):
        return submission.get(name)
    return getattr(submission, name, None)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def source_domain(source: Optional[str]) -> Optional[str]:
    """
    Normalize a free-form source into a host-like token.

    Sources arrive as full URLs ("https://www.tampahome.com/listing/4"),
    bare hosts ("businessconector.com") or labels
    ("centralfloridahomes.com - Mortgage Calculator").
    """
    if not source or not str(source).strip():
        return None
    raw = str(source).strip().lower()
    if "://" in raw:
        host = urlparse(raw).netloc
    else:
        host = raw.split()[0].split("/")[0]
    host = host.split("@")[-1].split(":")[0]
    if host.startswith("www."):
        host = host[4:]
    return host or None


def extract_signals(submission: SubmissionLike) -> LeadSignals:
    return LeadSignals(
        source_domain=source_domain(_field(submission, "source")),
        has_property_signals=any(_present(_field(submission, f)) for f in PROPERTY_SIGNAL_FIELDS),
        has_agent_signals=any(_present(_field(submission, f)) for f in AGENT_SIGNAL_FIELDS),
    )


def has_mortgage_signals(submission: SubmissionLike) -> bool:
    return any(_present(_field(submission, f)) for f in MORTGAGE_SIGNAL_FIELDS)
