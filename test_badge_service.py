import pytest

from community_ops.services.badge_service import BadgeAggregator, BadgeRule, compute_project_badges, status_in
from community_ops.services.directory_service import DirectoryService

from conftest import FakeDB, make_user, membership


COLLECTIONS = {
    "users": [
        {"id": "u1", "approvalStatus": "pending"},
        {"id": "u2", "approvalStatus": "pending", "isDeleted": True},
        {"id": "u3", "approvalStatus": "approved"},
    ],
    "bookings": [{"status": "pending"}, {"status": "confirmed"}],
    "service_bookings": [{"status": "open"}, {"status": "processing"}, {"status": "closed"}],
    "orders": [{"status": "pending"}, {"status": "delivered"}],
    "complaints": [{"status": "Open"}, {"status": "In Progress"}, {"status": "Resolved"}],
    "support_tickets": [{"status": "open"}, {}, {"status": "closed"}],
    "fines": [{"status": "issued"}, {"status": "disputed"}, {"status": "paid"}],
    "gate_passes": [{"status": "requested"}, {"status": "expired"}],
    "device_reset_requests": [{"status": "pending"}],
    "unit_requests": [{"status": "pending"}, {"status": "approved"}],
    "pending_admins": [{"status": "pending"}, {"status": "pending"}],
    "stores": [{"status": "active"}, {"status": "active"}, {"status": "inactive"}],
    "news": [{"isPublished": True}],
}


def test_counts_each_domain():
    counts = BadgeAggregator().compute(COLLECTIONS, role="super_admin")

    assert counts["users"] == 1
    assert counts["bookings"] == 1
    assert counts["service_bookings"] == 2
    assert counts["orders"] == 1
    assert counts["complaints"] == 2
    assert counts["support"] == 2
    assert counts["fines"] == 2
    assert counts["gate_passes"] == 1
    assert counts["device_reset_requests"] == 1
    assert counts["unit_requests"] == 1
    assert counts["admin_requests"] == 2
    assert counts["active_stores"] == 2
    assert counts["published_news"] == 1


def test_dashboard_is_sum_of_actionable_counters():
    aggregator = BadgeAggregator()
    counts = aggregator.compute(COLLECTIONS, role="super_admin")

    actionable = [rule.domain for rule in aggregator.rules if rule.actionable]
    assert counts["dashboard"] == sum(counts[d] for d in actionable)
    assert counts["dashboard"] == 16


def test_admin_requests_hidden_from_regular_admins():
    counts = BadgeAggregator().compute(COLLECTIONS, role="admin")

    assert "admin_requests" not in counts
    assert counts["dashboard"] == 14


def test_recomputed_from_current_collections():
    aggregator = BadgeAggregator()
    collections = {"bookings": [{"status": "pending"}]}
    assert aggregator.compute(collections)["bookings"] == 1

    collections["bookings"].append({"status": "pending"})
    counts = aggregator.compute(collections)
    assert counts["bookings"] == 2
    assert counts["dashboard"] == 2


def test_missing_collection_counts_zero():
    counts = BadgeAggregator().compute({})
    assert counts["fines"] == 0
    assert counts["dashboard"] == 0


def test_new_domain_is_additive():
    aggregator = BadgeAggregator()
    aggregator.register(BadgeRule("parcels", "parcels", status_in("waiting")))

    counts = aggregator.compute({"parcels": [{"status": "waiting"}], "fines": [{"status": "issued"}]})
    assert counts["parcels"] == 1
    assert counts["dashboard"] == 2


def test_dashboard_domain_is_reserved():
    with pytest.raises(ValueError):
        BadgeAggregator().register(BadgeRule("dashboard", "x", status_in("pending")))


@pytest.mark.asyncio
async def test_project_badges_degrade_when_a_collection_fails():
    db = FakeDB()
    db.add("users", make_user("a", [membership("p1", "1-1")], approvalStatus="pending"))
    db.add("users", make_user("b", [membership("p2", "1-1")], approvalStatus="pending"))
    db.add("projects/p1/fines", {"status": "issued"})
    db.add("projects/p1/complaints", {"status": "Open"})
    db.fail_reads.add("projects/p1/complaints")

    counts = await compute_project_badges("p1", role="admin", directory=DirectoryService(db=db))

    assert counts["users"] == 1
    assert counts["fines"] == 1
    assert counts["complaints"] == 0
    assert counts["dashboard"] == 2
