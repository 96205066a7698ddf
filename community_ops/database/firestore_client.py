import logging

from firebase_admin import firestore

from ..core.firebase_init import initialize_firebase, is_firebase_available

logger = logging.getLogger(__name__)

_client = None

def get_firestore_client():
    """Return the shared Firestore client, initializing Firebase on first use."""
    global _client
    if _client is not None:
        return _client

    if not is_firebase_available() and not initialize_firebase():
        raise Exception("Firebase initialization failed - Firestore not available")

    _client = firestore.client()
    logger.info("Firestore client created")
    return _client
