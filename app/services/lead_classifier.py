import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.config import RoutingConfig
from app.schemas.submission import LeadCategory
from app.services.signals import LeadSignals, SubmissionLike, extract_signals, has_mortgage_signals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    category: LeadCategory
    signals: LeadSignals
    ambiguous: bool = False


class LeadClassifier:
    """
        Deterministic rule engine mapping submission signals to a lead category.

        Precedence (first match wins):
        1. Source on one of the buyer property sites      -> BUYER
        2. Source on the agent (business) site            -> AGENT
        3. Property-specific fields present               -> BUYER
        4. Agent-specific fields present                  -> AGENT
        5. Nothing matched                                -> AGENT (flagged ambiguous)

        Mortgage submissions (home price / down payment / rate present) are
        split off before the chain runs in `classify_submission`.
    """

    def __init__(self, buyer_site_domains: Iterable[str], agent_site_domain: Optional[str]):
        self.buyer_site_domains = tuple(d.lower() for d in buyer_site_domains if d)
        self.agent_site_domain = (agent_site_domain or "").lower()

    @classmethod
    def from_config(cls, config: RoutingConfig) -> "LeadClassifier":
        return cls(config.buyer_site_domains, config.agent_site_domain)

    def _is_buyer_site(self, domain: Optional[str]) -> bool:
        return bool(domain) and any(d in domain for d in self.buyer_site_domains)

    def _is_agent_site(self, domain: Optional[str]) -> bool:
        return bool(domain and self.agent_site_domain) and self.agent_site_domain in domain

    def classify(self, signals: LeadSignals) -> LeadCategory:
        if self._is_buyer_site(signals.source_domain):
            return LeadCategory.BUYER
        if self._is_agent_site(signals.source_domain):
            return LeadCategory.AGENT
        if signals.has_property_signals:
            return LeadCategory.BUYER
        if signals.has_agent_signals:
            return LeadCategory.AGENT
        return LeadCategory.AGENT

    def is_ambiguous(self, signals: LeadSignals) -> bool:
        """True when the category came from the default rather than a matched rule."""
        return not (
            self._is_buyer_site(signals.source_domain)
            or self._is_agent_site(signals.source_domain)
            or signals.has_property_signals
            or signals.has_agent_signals
        )

    def classify_submission(self, submission: SubmissionLike) -> Classification:
        signals = extract_signals(submission)

        if has_mortgage_signals(submission):
            return Classification(category=LeadCategory.MORTGAGE, signals=signals)

        category = self.classify(signals)
        ambiguous = self.is_ambiguous(signals)
        if ambiguous:
            logger.info(
                "No classification signals matched (source=%s); defaulting to %s and flagging for review",
                signals.source_domain, category.value,
            )
        return Classification(category=category, signals=signals, ambiguous=ambiguous)
