import asyncio
from datetime import timedelta

import pytest

from community_ops.models.database_models import BulkActionPayload, BulkActionType, BulkTarget
from community_ops.services.bulk_action_service import BulkActionService
from community_ops.services.directory_service import DirectoryService

from conftest import FakeNotifier, make_user, membership

# Async tests
pytestmark = pytest.mark.asyncio


def _service(db, notifier=None, **kwargs):
    return BulkActionService(db=db, notifier=notifier or FakeNotifier(), directory=DirectoryService(db=db), **kwargs)


def _building(num):
    return BulkTarget(kind="building", buildingNum=num)


def _unit(building, unit):
    return BulkTarget(kind="unit", buildingNum=building, unitNum=unit)


def _projects(db, uid):
    return db.doc("users", uid)["projects"]


async def test_suspend_building_seven(building_seven_db):
    db = building_seven_db
    payload = BulkActionPayload(reason="noise", type="temporary", days=7)

    result = await _service(db).execute("p1", _building("7"), BulkActionType.SUSPEND, payload, performed_by="admin1")

    assert (result.success_count, result.failure_count) == (2, 0)
    assert result.summary == "2 succeeded, 0 failed"

    a_p1, a_p2 = _projects(db, "userA")
    assert a_p1["isSuspended"] is True
    assert a_p1["suspensionReason"] == "noise"
    assert a_p1["suspensionType"] == "temporary"
    assert a_p1["suspendedBy"] == "admin1"
    assert a_p1["suspensionEndDate"] - a_p1["suspendedAt"] == timedelta(days=7)
    # Other memberships of the same occupant are untouched
    assert a_p2["projectId"] == "p2"
    assert a_p2["isSuspended"] is False
    assert "suspensionReason" not in a_p2

    assert _projects(db, "userB")[0]["isSuspended"] is True
    assert db.doc("users", "userC")["projects"] == [membership("p1", "8-1", "owner")]


async def test_numeric_building_and_unit_numbers_are_accepted(building_seven_db):
    payload = BulkActionPayload(reason="noise", type="temporary", days=7)

    result = await _service(building_seven_db).execute(
        "p1", _building(7), BulkActionType.SUSPEND, payload, performed_by="admin1"
    )
    assert (result.success_count, result.failure_count) == (2, 0)

    target = _unit(7, 1)
    assert (target.buildingNum, target.unitNum) == ("7", "1")


async def test_permanent_suspension_has_no_end_date(building_seven_db):
    payload = BulkActionPayload(reason="fraud", type="permanent")

    result = await _service(building_seven_db).execute(
        "p1", _unit("7", "1"), BulkActionType.SUSPEND, payload, performed_by="admin1"
    )

    assert result.success_count == 2
    stored = _projects(building_seven_db, "userA")[0]
    assert stored["suspensionType"] == "permanent"
    assert "suspensionEndDate" not in stored


async def test_unsuspend_clears_suspension(building_seven_db):
    service = _service(building_seven_db)
    await service.execute("p1", _building("7"), BulkActionType.SUSPEND,
                          BulkActionPayload(reason="noise", type="permanent"), performed_by="admin1")

    result = await service.execute("p1", _building("7"), BulkActionType.UNSUSPEND,
                                   BulkActionPayload(), performed_by="admin1")

    assert result.success_count == 2
    stored = _projects(building_seven_db, "userA")[0]
    assert stored["isSuspended"] is False
    assert "suspensionReason" not in stored


async def test_notify_unit_uses_default_title(building_seven_db):
    notifier = FakeNotifier()

    result = await _service(building_seven_db, notifier).execute(
        "p1", _unit("7", "1"), BulkActionType.NOTIFY, BulkActionPayload(message="Water cut at 10am"),
        performed_by="admin1",
    )

    assert (result.success_count, result.failure_count) == (2, 0)
    assert sorted(r.user_id for r in notifier.sent) == ["userA", "userB"]
    assert {r.title for r in notifier.sent} == {"Unit Notification"}
    assert {r.body for r in notifier.sent} == {"Water cut at 10am"}


async def test_notify_building_default_title_and_custom_title(building_seven_db):
    notifier = FakeNotifier()
    service = _service(building_seven_db, notifier)

    await service.execute("p1", _building("7"), BulkActionType.NOTIFY,
                          BulkActionPayload(message="Lift maintenance"), performed_by="admin1")
    assert {r.title for r in notifier.sent} == {"Building Notification"}

    notifier.sent.clear()
    await service.execute("p1", _building("8"), BulkActionType.NOTIFY,
                          BulkActionPayload(title="Parking", message="Repainting"), performed_by="admin1")
    assert [(r.user_id, r.title) for r in notifier.sent] == [("userC", "Parking")]


async def test_empty_target_is_a_no_op(building_seven_db):
    result = await _service(building_seven_db).execute(
        "p1", _building("99"), BulkActionType.NOTIFY, BulkActionPayload(message="hello"), performed_by="admin1"
    )

    assert result.no_op is True
    assert (result.success_count, result.failure_count) == (0, 0)
    assert result.summary == "No occupants found for the selected target"
    assert building_seven_db.updates == []


async def test_vacant_unit_is_a_no_op(building_seven_db):
    result = await _service(building_seven_db).execute(
        "p1", _unit("7", "2"), BulkActionType.SUSPEND,
        BulkActionPayload(reason="noise", type="permanent"), performed_by="admin1",
    )

    assert result.no_op is True
    assert result.occupant_count == 0


async def test_failures_are_counted_not_raised(building_seven_db):
    building_seven_db.fail_updates.add("userB")

    result = await _service(building_seven_db).execute(
        "p1", _building("7"), BulkActionType.SUSPEND,
        BulkActionPayload(reason="noise", type="permanent"), performed_by="admin1",
    )

    assert (result.success_count, result.failure_count) == (1, 1)
    assert result.success_count + result.failure_count == result.occupant_count
    assert result.failures[0]["userId"] == "userB"
    assert _projects(building_seven_db, "userA")[0]["isSuspended"] is True


async def test_notification_failures_are_counted(building_seven_db):
    notifier = FakeNotifier(fail_for={"userA"})

    result = await _service(building_seven_db, notifier).execute(
        "p1", _building("7"), BulkActionType.NOTIFY, BulkActionPayload(message="hi"), performed_by="admin1"
    )

    assert (result.success_count, result.failure_count) == (1, 1)


async def test_occupant_with_two_units_counted_once(fake_db):
    fake_db.add("users", make_user("a", [
        membership("p1", "7-1", "owner"),
        membership("p1", "7-2", "owner"),
        membership("p1", "9-1", "owner"),
    ]))

    result = await _service(fake_db).execute(
        "p1", _building("7"), BulkActionType.SUSPEND,
        BulkActionPayload(reason="noise", type="permanent"), performed_by="admin1",
    )

    assert result.occupant_count == 1
    assert result.success_count == 1
    stored = _projects(fake_db, "a")
    assert [m["isSuspended"] for m in stored] == [True, True, False]


@pytest.mark.parametrize("action, payload, missing", [
    (BulkActionType.NOTIFY, BulkActionPayload(message="  "), "message"),
    (BulkActionType.SUSPEND, BulkActionPayload(type="permanent"), "reason"),
    (BulkActionType.SUSPEND, BulkActionPayload(reason="noise"), "type"),
    (BulkActionType.SUSPEND, BulkActionPayload(reason="noise", type="temporary"), "days"),
    (BulkActionType.SUSPEND, BulkActionPayload(reason="noise", type="temporary", days=0), "days"),
])
async def test_validation_refuses_to_start(building_seven_db, action, payload, missing):
    with pytest.raises(ValueError) as exc:
        await _service(building_seven_db).execute("p1", _building("7"), action, payload, performed_by="admin1")

    assert missing in str(exc.value)
    assert building_seven_db.updates == []


async def test_cancel_before_start_skips_everyone(building_seven_db):
    cancel = asyncio.Event()
    cancel.set()

    result = await _service(building_seven_db).execute(
        "p1", _building("7"), BulkActionType.NOTIFY, BulkActionPayload(message="hi"),
        performed_by="admin1", cancel_event=cancel,
    )

    assert result.cancelled_count == 2
    assert result.success_count == 0
    assert result.summary == "0 succeeded, 0 failed, 2 cancelled"


async def test_cancel_mid_flight_stops_remaining(building_seven_db):
    cancel = asyncio.Event()

    class CancellingNotifier(FakeNotifier):
        async def send(self, request):
            outcome = await super().send(request)
            cancel.set()
            return outcome

    result = await _service(building_seven_db, CancellingNotifier(), max_concurrency=1).execute(
        "p1", _building("7"), BulkActionType.NOTIFY, BulkActionPayload(message="hi"),
        performed_by="admin1", cancel_event=cancel,
    )

    assert (result.success_count, result.failure_count, result.cancelled_count) == (1, 0, 1)
    assert result.success_count + result.failure_count + result.cancelled_count == result.occupant_count
