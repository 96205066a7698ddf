from datetime import datetime, timezone

import pytest

from community_ops.services.unit_request_service import UnitRequestService, UnitRequestStateError

from conftest import FakeDB, FakeNotifier, make_user, membership

# Async tests
pytestmark = pytest.mark.asyncio

REQUESTS = "projects/p1/unitRequests"


def _db(**request_fields):
    db = FakeDB()
    db.add("users", make_user("u1", [
        membership("p1", "7-1", "family", approvalStatus="pending"),
        membership("p2", "3-3", "owner", approvalStatus="approved"),
    ]))
    request = {
        "id": "r1",
        "userId": "u1",
        "projectId": "p1",
        "unit": "7-1",
        "role": "family",
        "status": "pending",
        "requestedAt": datetime(2024, 5, 1, tzinfo=timezone.utc),
    }
    request.update(request_fields)
    db.add(REQUESTS, request)
    return db


async def test_approve_updates_request_and_membership():
    db, notifier = _db(), FakeNotifier()

    result = await UnitRequestService(db=db, notifier=notifier).approve("p1", "r1", "admin1")

    request = db.doc(REQUESTS, "r1")
    assert request["status"] == "approved"
    assert request["approvedBy"] == "admin1"
    assert request["approvedAt"] is not None

    p1, p2 = db.doc("users", "u1")["projects"]
    assert p1["approvalStatus"] == "approved"
    assert p2 == {"projectId": "p2", "unit": "3-3", "role": "owner", "approvalStatus": "approved", "isSuspended": False}

    assert result["status"] == "approved"
    assert result["notification_sent"] is True
    sent = notifier.status_notifications[0]
    assert sent["user_id"] == "u1"
    assert "7-1" in sent["body_en"]
    assert sent["title_ar"]


async def test_approve_creates_missing_membership():
    db = _db(unit="7-9", role="owner")

    await UnitRequestService(db=db, notifier=FakeNotifier()).approve("p1", "r1", "admin1")

    projects = db.doc("users", "u1")["projects"]
    assert len(projects) == 3
    assert projects[-1]["unit"] == "7-9"
    assert projects[-1]["role"] == "owner"
    assert projects[-1]["approvalStatus"] == "approved"
    # The unrelated pending membership is untouched
    assert projects[0]["approvalStatus"] == "pending"


async def test_notification_failure_does_not_undo_approval():
    db = _db()

    result = await UnitRequestService(db=db, notifier=FakeNotifier(raise_error=True)).approve("p1", "r1", "admin1")

    assert db.doc(REQUESTS, "r1")["status"] == "approved"
    assert db.doc("users", "u1")["projects"][0]["approvalStatus"] == "approved"
    assert result["notification_sent"] is False
    assert "could not be sent" in result["message"]


async def test_reject_removes_membership_and_records_reason():
    db, notifier = _db(), FakeNotifier()

    result = await UnitRequestService(db=db, notifier=notifier).reject("p1", "r1", "admin1", "Not the registered owner")

    request = db.doc(REQUESTS, "r1")
    assert request["status"] == "rejected"
    assert request["rejectionReason"] == "Not the registered owner"
    assert request["rejectedBy"] == "admin1"

    projects = db.doc("users", "u1")["projects"]
    assert [(m["projectId"], m["unit"]) for m in projects] == [("p2", "3-3")]

    assert result["notification_sent"] is True
    assert "Not the registered owner" in notifier.status_notifications[0]["body_en"]


async def test_reject_requires_reason():
    db = _db()

    with pytest.raises(ValueError):
        await UnitRequestService(db=db, notifier=FakeNotifier()).reject("p1", "r1", "admin1", "   ")

    assert db.doc(REQUESTS, "r1")["status"] == "pending"
    assert db.updates == []


@pytest.mark.parametrize("status", ["approved", "rejected"])
async def test_terminal_requests_cannot_be_resolved_again(status):
    service = UnitRequestService(db=_db(status=status), notifier=FakeNotifier())

    with pytest.raises(UnitRequestStateError):
        await service.approve("p1", "r1", "admin1")
    with pytest.raises(UnitRequestStateError):
        await service.reject("p1", "r1", "admin1", "again")


async def test_missing_request_is_a_lookup_error():
    with pytest.raises(LookupError):
        await UnitRequestService(db=_db(), notifier=FakeNotifier()).approve("p1", "nope", "admin1")


@pytest.mark.parametrize("resolve", ["approve", "reject"])
async def test_missing_requester_leaves_request_pending(resolve):
    db = _db(userId="gone")
    service = UnitRequestService(db=db, notifier=FakeNotifier())

    with pytest.raises(LookupError):
        if resolve == "approve":
            await service.approve("p1", "r1", "admin1")
        else:
            await service.reject("p1", "r1", "admin1", "no such resident")

    assert db.doc(REQUESTS, "r1")["status"] == "pending"
    assert db.updates == []


async def test_list_requests_newest_first_with_status_filter():
    db = _db()
    db.add(REQUESTS, {"id": "r2", "userId": "u1", "projectId": "p1", "unit": "7-2", "status": "approved",
                      "requestedAt": datetime(2024, 6, 1, tzinfo=timezone.utc)})
    db.add(REQUESTS, {"id": "r3", "userId": "u1", "projectId": "p1", "unit": "7-3", "status": "pending"})
    service = UnitRequestService(db=db, notifier=FakeNotifier())

    assert [r.id for r in await service.list_requests("p1")] == ["r2", "r1", "r3"]
    assert [r.id for r in await service.list_requests("p1", "pending")] == ["r1", "r3"]
