"""
Occupancy derived from the user directory.

Memberships are embedded in each user document (the `projects` array), so the
unit -> occupants relation only exists after scanning every user of a project.
``build_membership_index`` does that scan from scratch; ``MembershipIndex``
holds the same buckets and can be patched one user at a time.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.database_models import EnrichedUnit, Unit, UnitOccupants
from ..models.user import Membership, MembershipRole, User, building_of


def _bucket_for(role: Optional[str]) -> Optional[str]:
    # Tenants are not counted as owners or family
    if role == MembershipRole.OWNER.value:
        return "owners"
    if role == MembershipRole.FAMILY.value:
        return "family"
    return None


def build_membership_index(users: Iterable[User], project_id: str) -> Dict[str, UnitOccupants]:
    """Map unit identifier -> occupants (owners / family) for one project."""
    index: Dict[str, UnitOccupants] = {}
    for user in users:
        for membership in user.memberships:
            if membership.projectId != project_id or not membership.unit:
                continue
            bucket = _bucket_for(membership.role)
            if bucket is None:
                continue
            occupants = index.setdefault(membership.unit, UnitOccupants())
            getattr(occupants, bucket).append(user)
    return index


def enrich_unit(unit: Unit, index: Dict[str, UnitOccupants]) -> EnrichedUnit:
    occupants = index.get(unit.unit_id) or UnitOccupants()
    data = unit.model_dump()
    data.update(
        unitId=unit.unit_id,
        ownersCount=len(occupants.owners),
        familyCount=len(occupants.family),
        owners=list(occupants.owners),
        family=list(occupants.family),
        isOccupied=len(occupants.owners) > 0,
    )
    return EnrichedUnit(**data)


def enrich_units(units: Iterable[Unit], index: Dict[str, UnitOccupants]) -> List[EnrichedUnit]:
    """Attach occupancy to each unit. Units missing from the index are vacant."""
    return [enrich_unit(unit, index) for unit in units]


class MembershipIndex:
    """
    Incrementally maintained occupancy index for one project.

    Besides the unit buckets it keeps a (projectId, unit) -> [(user, membership)]
    lookup so a bulk action or an approval can find the affected memberships
    without scanning every user. ``buckets()`` always equals
    ``build_membership_index`` over the same users.
    """

    def __init__(self, project_id: str):
        self.project_id = project_id
        self._users: Dict[str, User] = {}
        self._by_unit: Dict[str, List[Tuple[User, Membership]]] = {}

    @classmethod
    def from_users(cls, users: Iterable[User], project_id: str) -> "MembershipIndex":
        index = cls(project_id)
        for user in users:
            index.add_user(user)
        return index

    def __len__(self) -> int:
        return len(self._users)

    def add_user(self, user: User):
        if user.id in self._users:
            self.remove_user(user.id)
        self._users[user.id] = user
        for membership in user.memberships_for(self.project_id):
            if membership.unit:
                self._by_unit.setdefault(membership.unit, []).append((user, membership))

    def remove_user(self, user_id: str):
        user = self._users.pop(user_id, None)
        if user is None:
            return
        for unit_id in list(self._by_unit):
            remaining = [entry for entry in self._by_unit[unit_id] if entry[0].id != user_id]
            if remaining:
                self._by_unit[unit_id] = remaining
            else:
                del self._by_unit[unit_id]

    def lookup(self, project_id: str, unit_id: str) -> List[Tuple[User, Membership]]:
        if project_id != self.project_id:
            return []
        return list(self._by_unit.get(unit_id, []))

    def unit_ids(self) -> List[str]:
        return sorted(self._by_unit)

    def occupants_of_building(self, building_num: str) -> List[User]:
        entries = []
        for unit_id, unit_entries in self._by_unit.items():
            if building_of(unit_id) == str(building_num):
                entries.extend(unit_entries)
        return self._unique_users(entries)

    def buckets(self) -> Dict[str, UnitOccupants]:
        # Rebuild in the directory's user order so the result matches a full scan
        return build_membership_index(self._users.values(), self.project_id)

    @staticmethod
    def _unique_users(entries: Iterable[Tuple[User, Membership]]) -> List[User]:
        seen = {}
        for user, _ in entries:
            seen.setdefault(user.id, user)
        return list(seen.values())
