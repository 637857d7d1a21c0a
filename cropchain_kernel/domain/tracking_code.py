"""Batch tracking codes: generation and scanned-code matching."""

import json
from datetime import datetime
from typing import Any
from uuid import UUID

BATCH_CODE_PREFIX = "CB"

# Keys a scanned JSON payload may carry the code under.
_PAYLOAD_KEYS = ("batchCode", "qrCode", "batch_code", "qr_code")


def format_batch_code(year: int, number: int, prefix: str = BATCH_CODE_PREFIX) -> str:
    """``CB-2025-001`` style code; the number is zero-padded to three digits."""
    return f"{prefix}-{year}-{number:03d}"


def format_qr_code(batch_code: str, farm_id: UUID, at: datetime) -> str:
    return f"{batch_code}-{farm_id}-{int(at.timestamp() * 1000)}"


def extract_scanned_codes(scanned: str) -> set[str]:
    """Every candidate code carried by a scan.

    A scan is either the raw code or a JSON object holding it.
    """
    raw = (scanned or "").strip()
    if not raw:
        return set()
    candidates = {raw}
    if raw.startswith("{"):
        try:
            payload: Any = json.loads(raw)
        except json.JSONDecodeError:
            return candidates
        if isinstance(payload, dict):
            for key in _PAYLOAD_KEYS:
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    candidates.add(value.strip())
    return candidates


def matches_batch(scanned: str, batch_code: str, qr_code: str | None) -> bool:
    """True when the scan names this batch by its batch code or QR code."""
    canonical = {batch_code}
    if qr_code:
        canonical.add(qr_code)
    return bool(extract_scanned_codes(scanned) & canonical)
