"""
Tests for identifier generation and validation helpers.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone

from swiftlogix.utils import (
    MAX_TRACKING_NUMBER_LENGTH,
    ORDER_NUMBER_PATTERN,
    generate_order_number,
    generate_tracking_number,
    is_tracking_number,
    looks_like_tracking_number,
    normalize_tracking_number,
    resolve_session_id,
    utc_now_iso,
)


FIXED_NOW = datetime(2026, 1, 18, 9, 30, tzinfo=timezone.utc)


class TestOrderNumber:
    def test_format(self):
        order_number = generate_order_number(FIXED_NOW)

        assert ORDER_NUMBER_PATTERN.match(order_number)
        assert order_number.startswith("CL-20260118-")

    def test_random_suffix_range(self):
        for _ in range(200):
            suffix = int(generate_order_number(FIXED_NOW).rsplit("-", 1)[1])
            assert 1000 <= suffix <= 9999

    def test_uses_utc_date(self):
        # 23:30 at UTC-5 is already the next day in UTC
        local = datetime(2026, 1, 18, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert generate_order_number(local).startswith("CL-20260119-")


class TestTrackingNumber:
    def test_format(self):
        tracking_number = generate_tracking_number(FIXED_NOW)

        assert re.match(r"^SWL-2026-0118-\d{4}$", tracking_number)
        assert is_tracking_number(tracking_number)

    def test_normalize(self):
        assert normalize_tracking_number("  swl-2026-0118-7890 ") == "SWL-2026-0118-7890"
        assert normalize_tracking_number(None) == ""

    def test_looks_like(self):
        assert looks_like_tracking_number("SWL-2026-0118-7890")
        assert looks_like_tracking_number("ABC123")
        assert not looks_like_tracking_number("")
        assert not looks_like_tracking_number("SWL 2026")
        assert not looks_like_tracking_number("<SCRIPT>")
        assert not looks_like_tracking_number("A" * (MAX_TRACKING_NUMBER_LENGTH + 1))

    def test_strict_format(self):
        assert is_tracking_number("swl-2026-0118-7890")
        assert not is_tracking_number("SWL-2026-118-7890")
        assert not is_tracking_number("XYZ-2026-0118-7890")


class TestTimestamps:
    def test_fixed_width_iso(self):
        assert utc_now_iso(FIXED_NOW) == "2026-01-18T09:30:00.000000Z"

    def test_lexical_order_is_chronological(self):
        earlier = utc_now_iso(datetime(2026, 1, 18, 9, 5, tzinfo=timezone.utc))
        later = utc_now_iso(datetime(2026, 1, 18, 10, 0, tzinfo=timezone.utc))
        assert earlier < later


class TestSessionId:
    def test_valid_id_is_kept(self):
        existing = str(uuid.uuid4())
        assert resolve_session_id(existing) == existing

    def test_malformed_id_is_replaced(self):
        replaced = resolve_session_id("not-a-uuid")

        assert replaced != "not-a-uuid"
        assert uuid.UUID(replaced)

    def test_missing_id_is_minted(self):
        assert uuid.UUID(resolve_session_id(None))
