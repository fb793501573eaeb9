"""Human-readable booking identifiers and account job PINs."""

from __future__ import annotations

import secrets
from typing import Optional

SEQUENCE_WIDTH = 8


def counter_key(operator_code: str) -> str:
    """Key of the per-operator counter row."""
    return f"bookingId_{operator_code}"


def format_booking_id(operator_code: str, sequence: int) -> str:
    """``OP001`` + ``7`` -> ``OP001/00000007``."""
    return f"{operator_code}/{sequence:0{SEQUENCE_WIDTH}d}"


def legacy_display_id(operator_code: Optional[str], booking_id: str) -> str:
    """Display id for rows created before sequential numbering existed."""
    prefix = operator_code or "OP001"
    short = booking_id.replace("-", "")[:SEQUENCE_WIDTH].upper()
    return f"{prefix}/{short}"


def generate_account_job_pin() -> str:
    """Four random digits; leading zeros allowed."""
    return f"{secrets.randbelow(10_000):04d}"
