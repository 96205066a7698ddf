# community_ops/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _int_list(raw: str) -> list:
    return [int(part) for part in raw.split(",") if part.strip()]


class Settings:
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "community-ops")
    FIREBASE_SERVICE_ACCOUNT_PATH: str = os.getenv(
        "FIREBASE_SERVICE_ACCOUNT_PATH",
        "firebase-service-account.json",
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Directory reads: the full user list for a project is held in memory,
    # so it is capped to keep memory and latency bounded.
    USER_FETCH_CAP: int = int(os.getenv("USER_FETCH_CAP", "2000"))

    # Unit browsing (cursor-append) and search (prefix range query)
    UNIT_PAGE_SIZE: int = int(os.getenv("UNIT_PAGE_SIZE", "50"))
    PREFIX_SEARCH_LIMIT: int = int(os.getenv("PREFIX_SEARCH_LIMIT", "50"))
    PREFIX_SEARCH_MIN_CHARS: int = int(os.getenv("PREFIX_SEARCH_MIN_CHARS", "2"))
    SEARCH_DEBOUNCE_MS: int = int(os.getenv("SEARCH_DEBOUNCE_MS", "500"))

    # In-memory lists (users etc.)
    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
    PAGE_SIZE_OPTIONS: list = _int_list(os.getenv("PAGE_SIZE_OPTIONS", "20,50,100"))

    # Bulk actions fan out to every occupant; this bounds in-flight writes.
    BULK_MAX_CONCURRENCY: int = int(os.getenv("BULK_MAX_CONCURRENCY", "10"))

    DEFAULT_PROJECT_NAME: str = os.getenv("DEFAULT_PROJECT_NAME", "PRE Group")

    # Project notification documents are delivered by a Cloud Function; enable
    # this to also push directly through FCM from the console backend.
    SEND_DIRECT_PUSH: bool = os.getenv("SEND_DIRECT_PUSH", "false").lower() == "true"

    SUPER_ADMIN_ROLE: str = os.getenv("SUPER_ADMIN_ROLE", "super_admin")
    ADMIN_ROLES: list = ["admin", os.getenv("SUPER_ADMIN_ROLE", "super_admin")]


settings = Settings()
