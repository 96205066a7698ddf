from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from google.cloud.firestore_v1 import FieldFilter, Query

from .firestore_client import get_firestore_client

logger = logging.getLogger(__name__)

# Upper bound appended to a prefix to build a [term, term + sentinel) range
PREFIX_SENTINEL = "\uf8ff"

Filter = Tuple[str, str, Any]


class DatabaseService:
    """
    Thin async wrapper over Firestore.

    Reads and creates return (success, data, error); updates and deletes return
    (success, error). Nothing here raises for a failed round trip; callers
    decide whether a failure is fatal. Collection names may be slash-separated
    sub-collection paths such as ``projects/p1/unitRequests``.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    @staticmethod
    def _to_dict(snapshot) -> Dict[str, Any]:
        data = snapshot.to_dict() or {}
        data.setdefault("id", snapshot.id)
        data["_doc_id"] = snapshot.id
        return data

    def _build_query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[str]] = None,
        direction: str = "asc",
    ):
        query = self.client.collection(collection)
        for field, op, value in filters or []:
            query = query.where(filter=FieldFilter(field, op, value))
        firestore_direction = Query.DESCENDING if direction == "desc" else Query.ASCENDING
        for field in order_by or []:
            query = query.order_by(field, direction=firestore_direction)
        return query

    async def get_document(self, collection: str, doc_id: str) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        try:
            snapshot = self.client.collection(collection).document(doc_id).get()
            if not snapshot.exists:
                return False, None, f"Document {doc_id} not found in {collection}"
            return True, self._to_dict(snapshot), None
        except Exception as e:
            logger.error(f"Error reading {collection}/{doc_id}: {str(e)}")
            return False, None, str(e)

    async def create_document(
        self,
        collection: str,
        data: Dict[str, Any],
        document_id: Optional[str] = None,
        validate: bool = True,
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        try:
            if validate and not isinstance(data, dict):
                return False, None, "Document data must be a dict"
            collection_ref = self.client.collection(collection)
            doc_ref = collection_ref.document(document_id) if document_id else collection_ref.document()
            doc_ref.set(data)
            return True, doc_ref.id, None
        except Exception as e:
            logger.error(f"Error creating document in {collection}: {str(e)}")
            return False, None, str(e)

    async def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        try:
            self.client.collection(collection).document(doc_id).update(data)
            return True, None
        except Exception as e:
            logger.error(f"Error updating {collection}/{doc_id}: {str(e)}")
            return False, str(e)

    async def delete_document(self, collection: str, doc_id: str) -> Tuple[bool, Optional[str]]:
        try:
            self.client.collection(collection).document(doc_id).delete()
            return True, None
        except Exception as e:
            logger.error(f"Error deleting {collection}/{doc_id}: {str(e)}")
            return False, str(e)

    async def query_documents(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        limit: Optional[int] = None,
        order_by: Optional[Sequence[str]] = None,
        direction: str = "asc",
    ) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        try:
            query = self._build_query(collection, filters, order_by, direction)
            if limit:
                query = query.limit(limit)
            return True, [self._to_dict(doc) for doc in query.stream()], None
        except Exception as e:
            logger.error(f"Error querying {collection}: {str(e)}")
            return False, [], str(e)

    async def get_all_documents(self, collection: str) -> List[Dict[str, Any]]:
        success, docs, error = await self.query_documents(collection)
        if not success:
            logger.error(f"Error reading all documents from {collection}: {error}")
        return docs

    async def query_page(
        self,
        collection: str,
        order_by: Sequence[str],
        limit: int,
        start_after: Optional[str] = None,
        filters: Optional[Sequence[Filter]] = None,
    ) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        """
        One page of an ordered query. ``start_after`` is the id of the last
        document already seen; the page resumes strictly after its snapshot,
        so the stored sort-key types are compared as they are.
        """
        try:
            query = self._build_query(collection, filters, order_by)
            if start_after:
                snapshot = self.client.collection(collection).document(start_after).get()
                if not snapshot.exists:
                    return False, [], f"Cursor document {start_after} not found in {collection}"
                query = query.start_after(snapshot)
            query = query.limit(limit)
            return True, [self._to_dict(doc) for doc in query.stream()], None
        except Exception as e:
            logger.error(f"Error paging {collection}: {str(e)}")
            return False, [], str(e)

    async def query_prefix(
        self,
        collection: str,
        field: str,
        term: str,
        limit: int,
        filters: Optional[Sequence[Filter]] = None,
    ) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        """Range query matching every value of ``field`` that starts with ``term``."""
        range_filters = list(filters or []) + [
            (field, ">=", term),
            (field, "<", term + PREFIX_SENTINEL),
        ]
        return await self.query_documents(collection, range_filters, limit=limit, order_by=[field])

    def listen(
        self,
        collection: str,
        on_change: Callable[[List[Dict[str, Any]]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        filters: Optional[Sequence[Filter]] = None,
    ) -> Callable[[], None]:
        """
        Subscribe to a collection. ``on_change`` receives the full current
        document list on every pushed batch, on Firestore's watch thread.
        Returns a callable that cancels the subscription.
        """
        query = self._build_query(collection, filters)

        def _on_snapshot(snapshots, changes, read_time):
            try:
                on_change([self._to_dict(doc) for doc in snapshots])
            except Exception as e:
                logger.error(f"Listener callback for {collection} failed: {str(e)}")
                if on_error:
                    on_error(e)

        watch = query.on_snapshot(_on_snapshot)
        return watch.unsubscribe


database_service = DatabaseService()
