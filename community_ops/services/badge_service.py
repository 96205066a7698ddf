"""
"Needs attention" counters shown next to each console section.

Each counter is a rule over one already-fetched collection. Rules live in a
registry so a new domain is a new ``BadgeRule``; nothing is stored and every
count is recomputed from the collections passed in.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import logging

from ..core.config import settings
from .directory_service import directory_service

logger = logging.getLogger(__name__)

Document = Mapping[str, Any]

DASHBOARD = "dashboard"


@dataclass(frozen=True)
class BadgeRule:
    domain: str
    collection: str
    predicate: Callable[[Document], bool]
    # Informational counters (e.g. active stores) are shown but not summed
    actionable: bool = True
    super_admin_only: bool = False

    def count(self, docs: Optional[Iterable[Document]]) -> int:
        total = 0
        for doc in docs or []:
            try:
                if self.predicate(doc):
                    total += 1
            except Exception as e:
                logger.warning(f"Badge rule {self.domain} failed on {doc.get('id')}: {str(e)}")
        return total


def status_in(*statuses: str) -> Callable[[Document], bool]:
    allowed = set(statuses)
    return lambda doc: doc.get("status") in allowed


def _pending_user(doc: Document) -> bool:
    return doc.get("approvalStatus") == "pending" and not doc.get("isDeleted")


def _open_ticket(doc: Document) -> bool:
    # Tickets created by older app versions have no status at all
    return doc.get("status") in (None, "", "open")


DEFAULT_RULES: List[BadgeRule] = [
    BadgeRule("users", "users", _pending_user),
    BadgeRule("bookings", "bookings", status_in("pending")),
    BadgeRule("service_bookings", "service_bookings", status_in("open", "processing")),
    BadgeRule("orders", "orders", status_in("pending", "processing")),
    BadgeRule("complaints", "complaints", status_in("Open", "In Progress")),
    BadgeRule("support", "support_tickets", _open_ticket),
    BadgeRule("fines", "fines", status_in("issued", "disputed")),
    BadgeRule("gate_passes", "gate_passes", status_in("pending", "requested", "active")),
    BadgeRule("device_reset_requests", "device_reset_requests", status_in("pending")),
    BadgeRule("unit_requests", "unit_requests", status_in("pending")),
    BadgeRule("admin_requests", "pending_admins", status_in("pending"), super_admin_only=True),
    BadgeRule("active_stores", "stores", status_in("active"), actionable=False),
    BadgeRule("published_news", "news", lambda doc: bool(doc.get("isPublished")), actionable=False),
]


class BadgeAggregator:
    def __init__(self, rules: Optional[Iterable[BadgeRule]] = None):
        self._rules: Dict[str, BadgeRule] = {}
        for rule in rules if rules is not None else DEFAULT_RULES:
            self.register(rule)

    def register(self, rule: BadgeRule):
        if rule.domain == DASHBOARD:
            raise ValueError(f"'{DASHBOARD}' is reserved for the total")
        self._rules[rule.domain] = rule

    @property
    def rules(self) -> List[BadgeRule]:
        return list(self._rules.values())

    def visible_rules(self, role: Optional[str] = None) -> List[BadgeRule]:
        is_super_admin = role == settings.SUPER_ADMIN_ROLE
        return [rule for rule in self._rules.values() if is_super_admin or not rule.super_admin_only]

    def collections_needed(self, role: Optional[str] = None) -> List[str]:
        return list(dict.fromkeys(rule.collection for rule in self.visible_rules(role)))

    def compute(self, collections: Mapping[str, Iterable[Document]], role: Optional[str] = None) -> Dict[str, int]:
        """
        Count every visible domain. A collection missing from ``collections``
        counts as empty. ``dashboard`` is the sum of the actionable counters.
        """
        counts: Dict[str, int] = {}
        dashboard = 0
        for rule in self.visible_rules(role):
            counts[rule.domain] = rule.count(collections.get(rule.collection))
            if rule.actionable:
                dashboard += counts[rule.domain]
        counts[DASHBOARD] = dashboard
        return counts


badge_aggregator = BadgeAggregator()


async def compute_project_badges(project_id: str, role: Optional[str] = None, directory=None, aggregator=None) -> Dict[str, int]:
    """Fetch the collections the visible rules need and count them."""
    directory = directory or directory_service
    aggregator = aggregator or badge_aggregator
    collections = await directory.load_badge_collections(project_id, aggregator.collections_needed(role))
    return aggregator.compute(collections, role)
