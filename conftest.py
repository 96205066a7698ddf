import copy
import itertools

import pytest

from community_ops.database.database_service import PREFIX_SENTINEL


def _sort_key(doc, fields):
    return tuple((doc.get(f) is None, doc.get(f)) for f in fields)


def _matches(doc, field, op, value):
    current = doc.get(field)
    if op == "==":
        return current == value
    if op == "!=":
        return current != value
    if op == "in":
        return current in value
    if op == "array_contains":
        return value in (current or [])
    if current is None:
        return False
    if op == ">=":
        return current >= value
    if op == ">":
        return current > value
    if op == "<":
        return current < value
    if op == "<=":
        return current <= value
    raise ValueError(f"Unsupported operator {op}")


class FakeDB:
    """In-memory stand-in for DatabaseService with the same tuple contract"""

    def __init__(self, collections=None):
        self.collections = {}
        self.fail_reads = set()
        self.fail_updates = set()
        self.updates = []
        self.queries = []
        self.listeners = {}
        self._ids = itertools.count(1)
        for path, docs in (collections or {}).items():
            for doc in docs:
                self.add(path, doc)

    def add(self, path, doc):
        doc = copy.deepcopy(doc)
        doc_id = doc.get("id") or f"doc{next(self._ids)}"
        doc["id"] = doc_id
        self.collections.setdefault(path, {})[doc_id] = doc
        return doc_id

    def doc(self, path, doc_id):
        return self.collections.get(path, {}).get(doc_id)

    def _out(self, doc):
        out = copy.deepcopy(doc)
        out["_doc_id"] = doc["id"]
        return out

    async def get_document(self, collection, doc_id):
        if collection in self.fail_reads:
            return False, None, "read failed"
        doc = self.doc(collection, doc_id)
        if doc is None:
            return False, None, f"Document {doc_id} not found in {collection}"
        return True, self._out(doc), None

    async def create_document(self, collection, data, document_id=None, validate=True):
        data = dict(data)
        if document_id:
            data["id"] = document_id
        return True, self.add(collection, data), None

    async def update_document(self, collection, doc_id, data):
        if doc_id in self.fail_updates:
            return False, "write failed"
        doc = self.doc(collection, doc_id)
        if doc is None:
            return False, f"Document {doc_id} not found"
        doc.update(copy.deepcopy(data))
        self.updates.append((collection, doc_id, data))
        return True, None

    async def delete_document(self, collection, doc_id):
        self.collections.get(collection, {}).pop(doc_id, None)
        return True, None

    def _select(self, collection, filters=None, order_by=None, direction="asc"):
        docs = list(self.collections.get(collection, {}).values())
        for field, op, value in filters or []:
            docs = [d for d in docs if _matches(d, field, op, value)]
        if order_by:
            docs.sort(key=lambda d: _sort_key(d, order_by), reverse=direction == "desc")
        return docs

    async def query_documents(self, collection, filters=None, limit=None, order_by=None, direction="asc"):
        self.queries.append(collection)
        if collection in self.fail_reads:
            return False, [], "read failed"
        docs = self._select(collection, filters, order_by, direction)
        if limit:
            docs = docs[:limit]
        return True, [self._out(d) for d in docs], None

    async def get_all_documents(self, collection):
        success, docs, error = await self.query_documents(collection)
        return docs

    async def query_page(self, collection, order_by, limit, start_after=None, filters=None):
        self.queries.append(collection)
        if collection in self.fail_reads:
            return False, [], "read failed"
        docs = self._select(collection, filters, order_by)
        if start_after:
            last = self.doc(collection, start_after)
            if last is None:
                return False, [], f"Cursor document {start_after} not found"
            cursor = _sort_key(last, order_by)
            docs = [d for d in docs if _sort_key(d, order_by) > cursor]
        return True, [self._out(d) for d in docs[:limit]], None

    async def query_prefix(self, collection, field, term, limit, filters=None):
        range_filters = list(filters or []) + [(field, ">=", term), (field, "<", term + PREFIX_SENTINEL)]
        return await self.query_documents(collection, range_filters, limit=limit, order_by=[field])

    def listen(self, collection, on_change, on_error=None, filters=None):
        self.listeners[collection] = on_change

        def _unsubscribe():
            self.listeners.pop(collection, None)

        return _unsubscribe

    def push(self, collection):
        """Deliver the current state of a collection to its listener"""
        docs = [self._out(d) for d in self._select(collection)]
        self.listeners[collection](docs)


class FakeNotifier:
    def __init__(self, fail_for=None, raise_error=False):
        self.fail_for = set(fail_for or [])
        self.raise_error = raise_error
        self.sent = []
        self.status_notifications = []

    async def send(self, request):
        if self.raise_error:
            raise RuntimeError("dispatcher down")
        if request.user_id in self.fail_for:
            return False, None, "dispatch failed"
        self.sent.append(request)
        return True, f"n{len(self.sent)}", None

    async def send_status_notification(self, project_id, user_id, title_en, body_en, **kwargs):
        if self.raise_error:
            raise RuntimeError("dispatcher down")
        if user_id in self.fail_for:
            return False, None, "dispatch failed"
        self.status_notifications.append({
            "project_id": project_id,
            "user_id": user_id,
            "title_en": title_en,
            "body_en": body_en,
            **kwargs,
        })
        return True, f"s{len(self.status_notifications)}", None


def make_user(uid, memberships=(), **fields):
    doc = {
        "id": uid,
        "firstName": fields.pop("firstName", uid.upper()),
        "lastName": fields.pop("lastName", "Resident"),
        "email": fields.pop("email", f"{uid}@example.com"),
        "projects": [dict(m) for m in memberships],
        "createdAt": fields.pop("createdAt", None),
    }
    doc.update(fields)
    return doc


def membership(project_id, unit, role="owner", **fields):
    return {"projectId": project_id, "unit": unit, "role": role, **fields}


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def building_seven_db():
    """Building 7: unit 7-1 has owner A and family B, unit 7-2 is vacant."""
    db = FakeDB()
    db.add("users", make_user("userA", [
        membership("p1", "7-1", "owner"),
        membership("p2", "3-4", "owner"),
    ]))
    db.add("users", make_user("userB", [membership("p1", "7-1", "family")]))
    db.add("users", make_user("userC", [membership("p1", "8-1", "owner")]))
    db.add("projects/p1/units", {"id": "u71", "buildingNum": "7", "unitNum": "1"})
    db.add("projects/p1/units", {"id": "u72", "buildingNum": "7", "unitNum": "2"})
    db.add("projects/p1/units", {"id": "u81", "buildingNum": "8", "unitNum": "1"})
    return db
