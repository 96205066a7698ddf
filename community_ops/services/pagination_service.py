"""
List strategies used by the console screens.

* ``InMemoryPager`` filters and slices a collection that is already resident
  (the capped user directory).
* ``CursorPager`` browses a large ordered collection one page at a time and
  appends each page to what is already loaded.
* ``PrefixSearch`` runs a bounded ``[term, term + sentinel)`` range query and
  replaces the resident list with its result.

``UnitBrowser`` switches between the last two depending on the search box,
and ``Debouncer`` keeps typing from firing a query per keystroke.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar
import asyncio
import logging
import math

from ..core.config import settings
from ..database.collections import project_collection
from ..database.database_service import database_service
from ..models.database_models import Unit
from ..models.user import User

logger = logging.getLogger(__name__)

T = TypeVar("T")
Predicate = Callable[[Any], bool]

# Filter stages run in this order
FILTER_STAGES = ("deletion", "search", "status", "domain")


# ──────────────────────────────────────────────────────────────────────────────
# Strategy 1: in-memory filter + page slice
# ──────────────────────────────────────────────────────────────────────────────

class InMemoryPager(Generic[T]):
    def __init__(
        self,
        items: Optional[Sequence[T]] = None,
        page_size: Optional[int] = None,
        page_size_options: Optional[Sequence[int]] = None,
    ):
        self._items: List[T] = list(items or [])
        self._stages: Dict[str, Dict[str, Predicate]] = {stage: {} for stage in FILTER_STAGES}
        self.page_size_options = list(page_size_options or settings.PAGE_SIZE_OPTIONS)
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.page = 1

    def set_filter(self, stage: str, name: str, predicate: Optional[Predicate]):
        """Add, replace or (with None) drop a named filter. Always back to page 1."""
        if stage not in self._stages:
            raise ValueError(f"Unknown filter stage '{stage}'. Must be one of: {list(FILTER_STAGES)}")
        if predicate is None:
            self._stages[stage].pop(name, None)
        else:
            self._stages[stage][name] = predicate
        self.page = 1

    def set_page_size(self, page_size: int):
        if page_size not in self.page_size_options:
            raise ValueError(f"Invalid page size {page_size}. Must be one of: {self.page_size_options}")
        self.page_size = page_size
        self.page = 1

    def set_page(self, page: int):
        self.page = min(max(1, page), self.total_pages)

    def filtered(self) -> List[T]:
        result = self._items
        for stage in FILTER_STAGES:
            for predicate in self._stages[stage].values():
                result = [item for item in result if predicate(item)]
        return list(result)

    @property
    def total(self) -> int:
        return len(self.filtered())

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))

    def page_items(self) -> List[T]:
        start = (self.page - 1) * self.page_size
        return self.filtered()[start:self.page * self.page_size]

    def to_response(self) -> Dict[str, Any]:
        filtered = self.filtered()
        start = (self.page - 1) * self.page_size
        return {
            "items": filtered[start:self.page * self.page_size],
            "totalCount": len(filtered),
            "page": self.page,
            "pageSize": self.page_size,
            "totalPages": max(1, math.ceil(len(filtered) / self.page_size)),
        }


@dataclass
class UserFilters:
    """Filters of the project user list; 'all' / None means no filter"""

    deletion: str = "active"  # active, deleted, all
    search: str = ""
    search_field: str = "all"  # all, name, email, mobile, nationalId
    approval_status: Optional[str] = None
    registration_status: Optional[str] = None
    role: Optional[str] = None
    unit: Optional[str] = None
    building: Optional[str] = None
    suspended: Optional[bool] = None
    needs_migration: Optional[bool] = None


def _user_matches_search(user: User, term: str, field: str) -> bool:
    term_lower = term.lower()
    name = user.display_name.lower()
    email = (user.email or "").lower()
    mobile = user.mobile or ""
    national_id = user.nationalId or ""

    if field == "name":
        return term_lower in name
    if field == "email":
        return term_lower in email
    if field == "mobile":
        return term in mobile
    if field == "nationalId":
        return term in national_id
    return term_lower in name or term_lower in email or term in mobile or term in national_id


def user_filter_chain(project_id: str, filters: UserFilters) -> List[Tuple[str, str, Optional[Predicate]]]:
    """(stage, name, predicate) triples for a user list; None predicates clear the filter"""

    def _active(value):
        return value not in (None, "", "all")

    chain: List[Tuple[str, str, Optional[Predicate]]] = []

    if filters.deletion == "deleted":
        chain.append(("deletion", "deleted", lambda u: u.isDeleted))
    elif filters.deletion == "all":
        chain.append(("deletion", "deleted", None))
    else:
        chain.append(("deletion", "deleted", lambda u: not u.isDeleted))

    term = (filters.search or "").strip()
    chain.append(("search", "text", (lambda u: _user_matches_search(u, term, filters.search_field)) if term else None))

    chain.append(("status", "approval", (lambda u: u.approvalStatus == filters.approval_status)
                  if _active(filters.approval_status) else None))
    chain.append(("status", "registration", (lambda u: u.registrationStatus == filters.registration_status)
                  if _active(filters.registration_status) else None))

    chain.append(("domain", "role", (lambda u: any(m.role == filters.role for m in u.memberships_for(project_id)))
                  if _active(filters.role) else None))
    chain.append(("domain", "unit", (lambda u: bool(u.memberships_for(project_id, filters.unit)))
                  if _active(filters.unit) else None))
    chain.append(("domain", "building",
                  (lambda u: any(m.building == str(filters.building) for m in u.memberships_for(project_id)))
                  if _active(filters.building) else None))
    chain.append(("domain", "suspended",
                  (lambda u: any(m.isSuspended for m in u.memberships_for(project_id)) == filters.suspended)
                  if filters.suspended is not None else None))
    chain.append(("domain", "migration", (lambda u: u.needs_migration == filters.needs_migration)
                  if filters.needs_migration is not None else None))
    return chain


class UserListView(InMemoryPager[User]):
    """In-memory user list of one project"""

    def __init__(self, project_id: str, users: Sequence[User], **kwargs):
        super().__init__(users, **kwargs)
        self.project_id = project_id
        self.apply_filters(UserFilters())

    def apply_filters(self, filters: UserFilters):
        for stage, name, predicate in user_filter_chain(self.project_id, filters):
            self.set_filter(stage, name, predicate)


# ──────────────────────────────────────────────────────────────────────────────
# Strategy 2: cursor-append browsing
# ──────────────────────────────────────────────────────────────────────────────

UNIT_ORDER = ("buildingNum", "unitNum")


class CursorPager(Generic[T]):
    """
    Pages through an ordered collection. ``load_more`` queries strictly after
    the last document seen and appends. ``has_more`` is true only while the
    last page came back full.
    """

    def __init__(
        self,
        collection: str,
        order_by: Sequence[str] = UNIT_ORDER,
        page_size: Optional[int] = None,
        filters: Optional[list] = None,
        transform: Optional[Callable[[Dict[str, Any]], T]] = None,
        db=None,
    ):
        self.db = db or database_service
        self.collection = collection
        self.order_by = list(order_by)
        self.page_size = page_size or settings.UNIT_PAGE_SIZE
        self.filters = filters
        self.transform = transform
        self.reset()

    def reset(self, collection: Optional[str] = None, filters: Optional[list] = None):
        """Drop everything loaded; required whenever the underlying query changes."""
        if collection is not None:
            self.collection = collection
        if filters is not None:
            self.filters = filters
        self.items: List[T] = []
        # id of the last document loaded
        self.cursor: Optional[str] = None
        self.has_more = True
        self.loaded = False

    async def load_first(self) -> List[T]:
        self.reset()
        return await self._fetch()

    async def load_more(self) -> List[T]:
        if not self.loaded:
            return await self.load_first()
        if not self.has_more:
            return []
        return await self._fetch()

    async def _fetch(self) -> List[T]:
        success, docs, error = await self.db.query_page(
            self.collection,
            order_by=self.order_by,
            limit=self.page_size,
            start_after=self.cursor,
            filters=self.filters,
        )
        if not success:
            logger.error(f"Failed to load page of {self.collection}: {error}")
            if not self.loaded:
                self.items = []
                self.has_more = False
            return []

        self.loaded = True
        self.has_more = len(docs) == self.page_size
        if docs:
            last = docs[-1]
            self.cursor = last.get("_doc_id") or last.get("id")

        page = [self.transform(doc) for doc in docs] if self.transform else docs
        self.items.extend(page)
        return page


# ──────────────────────────────────────────────────────────────────────────────
# Strategy 3: prefix search
# ──────────────────────────────────────────────────────────────────────────────

def qualifies_for_search(term: Optional[str], min_chars: Optional[int] = None) -> bool:
    min_chars = settings.PREFIX_SEARCH_MIN_CHARS if min_chars is None else min_chars
    stripped = (term or "").strip()
    return bool(stripped) and len(stripped) >= min_chars


class PrefixSearch(Generic[T]):
    def __init__(
        self,
        collection: str,
        fields: Sequence[str] = ("unitNum",),
        limit: Optional[int] = None,
        filters: Optional[list] = None,
        transform: Optional[Callable[[Dict[str, Any]], T]] = None,
        db=None,
    ):
        self.db = db or database_service
        self.collection = collection
        self.fields = list(fields)
        self.limit = limit or settings.PREFIX_SEARCH_LIMIT
        self.filters = filters
        self.transform = transform
        self.term: Optional[str] = None
        self.items: List[T] = []

    async def search(self, term: str) -> List[T]:
        """Replace the resident list with the matches for ``term``."""
        term = term.strip()
        self.term = term
        merged: Dict[str, Dict[str, Any]] = {}

        for field in self.fields:
            success, docs, error = await self.db.query_prefix(
                self.collection, field, term, self.limit, filters=self.filters
            )
            if not success:
                logger.error(f"Prefix search on {self.collection}.{field} failed: {error}")
                continue
            for doc in docs:
                merged.setdefault(doc.get("id") or doc.get("_doc_id"), doc)

        docs = list(merged.values())[:self.limit]
        self.items = [self.transform(doc) for doc in docs] if self.transform else docs
        return self.items

    def clear(self):
        self.term = None
        self.items = []


# ──────────────────────────────────────────────────────────────────────────────
# Unit browsing: strategy 2 or 3 depending on the search box
# ──────────────────────────────────────────────────────────────────────────────

class UnitBrowser:
    BROWSE = "browse"
    SEARCH = "search"

    def __init__(self, project_id: str, db=None, page_size: Optional[int] = None,
                 search_limit: Optional[int] = None, search_fields: Sequence[str] = ("unitNum",)):
        self.db = db or database_service
        self.project_id = project_id
        collection = project_collection(project_id, 'units')
        self.pager: CursorPager[Unit] = CursorPager(
            collection, page_size=page_size, transform=Unit.from_document, db=self.db
        )
        self.prefix: PrefixSearch[Unit] = PrefixSearch(
            collection, fields=search_fields, limit=search_limit, transform=Unit.from_document, db=self.db
        )
        self.mode = self.BROWSE

    @property
    def items(self) -> List[Unit]:
        return self.prefix.items if self.mode == self.SEARCH else self.pager.items

    @property
    def has_more(self) -> bool:
        # No pagination while a search is active
        return self.mode == self.BROWSE and self.pager.has_more

    async def open(self) -> List[Unit]:
        self.mode = self.BROWSE
        self.prefix.clear()
        return await self.pager.load_first()

    async def set_project(self, project_id: str) -> List[Unit]:
        self.project_id = project_id
        collection = project_collection(project_id, 'units')
        self.pager.reset(collection=collection)
        self.prefix.collection = collection
        return await self.open()

    async def set_search(self, term: Optional[str]) -> List[Unit]:
        if qualifies_for_search(term):
            self.mode = self.SEARCH
            return await self.prefix.search(term)

        # Leaving search (or never in it): browse again from the first page
        if self.mode == self.SEARCH or not self.pager.loaded:
            return await self.open()
        return self.pager.items

    async def load_more(self) -> List[Unit]:
        if self.mode == self.SEARCH:
            return []
        return await self.pager.load_more()


async def fetch_unit_page(
    project_id: str,
    search: Optional[str] = None,
    cursor: Optional[str] = None,
    db=None,
) -> Dict[str, Any]:
    """
    Stateless variant of UnitBrowser for request/response callers: a qualifying
    search term runs the prefix query, otherwise one cursor page is returned.
    """
    db = db or database_service
    collection = project_collection(project_id, 'units')

    if qualifies_for_search(search):
        prefix: PrefixSearch[Unit] = PrefixSearch(collection, transform=Unit.from_document, db=db)
        units = await prefix.search(search)
        return {"units": units, "mode": UnitBrowser.SEARCH, "hasMore": False, "nextCursor": None}

    pager: CursorPager[Unit] = CursorPager(collection, transform=Unit.from_document, db=db)
    if cursor:
        pager.loaded = True
        pager.cursor = cursor
    units = await pager.load_more()
    return {
        "units": units,
        "mode": UnitBrowser.BROWSE,
        "hasMore": pager.has_more,
        "nextCursor": pager.cursor if pager.has_more else None,
    }


# ──────────────────────────────────────────────────────────────────────────────
# Debounce
# ──────────────────────────────────────────────────────────────────────────────

class Debouncer:
    """
    Runs ``func`` only after ``delay_ms`` without a newer call; each call
    cancels the pending one. Returns the scheduled task.
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], delay_ms: Optional[int] = None):
        self.func = func
        self.delay = (settings.SEARCH_DEBOUNCE_MS if delay_ms is None else delay_ms) / 1000
        self._pending: Optional[asyncio.Task] = None

    def __call__(self, *args, **kwargs) -> asyncio.Task:
        self.cancel()
        self._pending = asyncio.ensure_future(self._run(*args, **kwargs))
        return self._pending

    async def _run(self, *args, **kwargs):
        await asyncio.sleep(self.delay)
        return await self.func(*args, **kwargs)

    def cancel(self):
        if self._pending and not self._pending.done():
            self._pending.cancel()
        self._pending = None
