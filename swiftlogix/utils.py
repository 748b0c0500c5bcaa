"""
Utility functions for identifiers and timestamps.
"""

import logging
import random
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


TRACKING_NUMBER_PATTERN = re.compile(r"^SWL-\d{4}-\d{4}-\d{4}$", re.IGNORECASE)
ORDER_NUMBER_PATTERN = re.compile(r"^CL-\d{8}-\d{4}$")
SESSION_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Loose shape accepted before asking the backend; the backend owns the real format
_TRACKING_CHARS = re.compile(r"^[A-Z0-9-]+$")
MAX_TRACKING_NUMBER_LENGTH = 40


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """
    Fixed-width ISO-8601 UTC timestamp with microseconds and Z suffix.
    Lexical order of these strings equals chronological order.
    """
    now = now or utc_now()
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def generate_order_number(now: Optional[datetime] = None) -> str:
    """
    Generate a human-readable order number: CL-YYYYMMDD-RRRR.

    The date is the current UTC date, RRRR is uniform in [1000, 9999].
    No uniqueness check is performed here.
    """
    now = now or utc_now()
    date_str = now.astimezone(timezone.utc).strftime("%Y%m%d")
    order_number = f"CL-{date_str}-{random.randint(1000, 9999)}"
    logger.debug(f"Generated order number: {order_number}")
    return order_number


def generate_tracking_number(now: Optional[datetime] = None) -> str:
    """Generate a tracking number: SWL-YYYY-MMDD-NNNN."""
    now = (now or utc_now()).astimezone(timezone.utc)
    return f"SWL-{now:%Y}-{now:%m%d}-{random.randint(1000, 9999)}"


def normalize_tracking_number(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def looks_like_tracking_number(value: str) -> bool:
    """Cheap sanity check run before any network call."""
    return (
        0 < len(value) <= MAX_TRACKING_NUMBER_LENGTH
        and bool(_TRACKING_CHARS.match(value))
    )


def is_tracking_number(value: str) -> bool:
    return bool(TRACKING_NUMBER_PATTERN.match(value))


def is_valid_session_id(value: Optional[str]) -> bool:
    return bool(value) and bool(SESSION_ID_PATTERN.match(value))


def resolve_session_id(existing: Optional[str]) -> str:
    """
    Reuse a cached client session id if it is UUID-shaped, otherwise mint a new one.
    Corrupted persisted values are discarded rather than trusted.
    """
    if is_valid_session_id(existing):
        return existing
    if existing:
        logger.warning("Discarding malformed session id")
    return str(uuid.uuid4())
