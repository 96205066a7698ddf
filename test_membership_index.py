import random

from community_ops.models.database_models import Unit
from community_ops.models.user import User
from community_ops.services.membership_index import (
    MembershipIndex,
    build_membership_index,
    enrich_units,
)

from conftest import make_user, membership


def _users(docs):
    return [User.from_document(d) for d in docs]


def _random_directory(seed, project_ids=("p1", "p2")):
    rng = random.Random(seed)
    units = [f"{b}-{u}" for b in range(1, 4) for u in range(1, 5)]
    docs = []
    for i in range(30):
        memberships = [
            membership(rng.choice(project_ids), rng.choice(units), rng.choice(["owner", "family", "tenant"]))
            for _ in range(rng.randint(0, 3))
        ]
        docs.append(make_user(f"u{i}", memberships))
    return _users(docs), units


def test_enrichment_counts_match_memberships():
    for seed in range(5):
        users, unit_ids = _random_directory(seed)
        units = [Unit(buildingNum=uid.split("-")[0], unitNum=uid.split("-")[1]) for uid in unit_ids]

        enriched = enrich_units(units, build_membership_index(users, "p1"))

        for unit in enriched:
            expected_owners = sum(
                1 for user in users for m in user.memberships
                if m.projectId == "p1" and m.unit == unit.unitId and m.role == "owner"
            )
            expected_family = sum(
                1 for user in users for m in user.memberships
                if m.projectId == "p1" and m.unit == unit.unitId and m.role == "family"
            )
            assert unit.ownersCount == expected_owners
            assert unit.familyCount == expected_family
            assert unit.isOccupied == (expected_owners > 0)


def test_tenants_and_other_projects_are_not_counted():
    users = _users([
        make_user("a", [membership("p1", "1-1", "tenant")]),
        make_user("b", [membership("p2", "1-1", "owner")]),
        make_user("c", [membership("p1", "1-1", "family")]),
    ])

    index = build_membership_index(users, "p1")

    assert [u.id for u in index["1-1"].owners] == []
    assert [u.id for u in index["1-1"].family] == ["c"]


def test_unit_missing_from_index_is_vacant():
    enriched = enrich_units([Unit(buildingNum="7", unitNum="2")], {})

    assert enriched[0].unitId == "7-2"
    assert enriched[0].ownersCount == 0
    assert enriched[0].familyCount == 0
    assert enriched[0].isOccupied is False


def test_rebuilding_from_same_users_is_idempotent():
    users, _ = _random_directory(42)

    assert build_membership_index(users, "p1") == build_membership_index(users, "p1")


def test_incremental_index_matches_full_rebuild():
    users, _ = _random_directory(7)
    index = MembershipIndex.from_users(users, "p1")
    assert index.buckets() == build_membership_index(users, "p1")

    # Replace one user and drop another
    changed = users[3].model_copy(update={"memberships": []})
    index.add_user(changed)
    index.remove_user(users[5].id)

    expected_users = [changed if u.id == changed.id else u for u in users if u.id != users[5].id]
    assert index.buckets() == build_membership_index(expected_users, "p1")
    assert len(index) == len(users) - 1


def test_lookup_by_project_and_unit():
    users = _users([
        make_user("a", [membership("p1", "7-1", "owner"), membership("p1", "7-2", "owner")]),
        make_user("b", [membership("p1", "7-1", "family")]),
        make_user("c", [membership("p1", "8-1", "owner")]),
    ])
    index = MembershipIndex.from_users(users, "p1")

    pairs = index.lookup("p1", "7-1")
    assert sorted(user.id for user, _ in pairs) == ["a", "b"]
    assert all(m.unit == "7-1" for _, m in pairs)
    assert index.lookup("p2", "7-1") == []

    # A user with two units in the building is listed once
    assert [u.id for u in index.occupants_of_building("7")] == ["a", "b"]
    assert index.unit_ids() == ["7-1", "7-2", "8-1"]
