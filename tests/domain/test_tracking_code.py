"""Batch code formatting and scanned-code matching."""

from datetime import datetime, timezone
from uuid import UUID

from cropchain_kernel.domain.tracking_code import (
    extract_scanned_codes,
    format_batch_code,
    format_qr_code,
    matches_batch,
)

FARM = UUID("11111111-1111-4111-8111-111111111111")


class TestFormatting:

    def test_batch_code_is_zero_padded(self):
        assert format_batch_code(2025, 1) == "CB-2025-001"
        assert format_batch_code(2025, 42) == "CB-2025-042"

    def test_batch_code_grows_past_three_digits(self):
        assert format_batch_code(2025, 1234) == "CB-2025-1234"

    def test_custom_prefix(self):
        assert format_batch_code(2026, 7, prefix="LAG") == "LAG-2026-007"

    def test_qr_code_embeds_batch_farm_and_instant(self):
        at = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
        qr = format_qr_code("CB-2025-001", FARM, at)
        assert qr.startswith(f"CB-2025-001-{FARM}-")
        assert qr.endswith(str(int(at.timestamp() * 1000)))


class TestScanMatching:

    def test_raw_batch_code(self):
        assert matches_batch("CB-2025-001", "CB-2025-001", "qr-1")

    def test_raw_qr_code(self):
        assert matches_batch("qr-1", "CB-2025-001", "qr-1")

    def test_surrounding_whitespace_ignored(self):
        assert matches_batch("  CB-2025-001\n", "CB-2025-001", None)

    def test_json_payload_with_batch_code(self):
        assert matches_batch('{"batchCode": "CB-2025-001", "v": 1}', "CB-2025-001", "qr-1")

    def test_json_payload_with_qr_code(self):
        assert matches_batch('{"qr_code": "qr-1"}', "CB-2025-001", "qr-1")

    def test_other_batch_rejected(self):
        assert not matches_batch("CB-2025-002", "CB-2025-001", "qr-1")
        assert not matches_batch('{"batchCode": "CB-2025-002"}', "CB-2025-001", "qr-1")

    def test_empty_scan_rejected(self):
        assert not matches_batch("", "CB-2025-001", "qr-1")
        assert extract_scanned_codes("   ") == set()

    def test_malformed_json_is_treated_as_raw(self):
        assert extract_scanned_codes("{not json") == {"{not json"}
