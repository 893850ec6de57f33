"""
Naira Payroll — Utility functions
"""
from decimal import Decimal, InvalidOperation
import re


def parse_number(text):
    """Parse an amount from loose input, returning Decimal or None.
    Supports shorthand: 200k → 200000, 3.5m → 3500000
    """
    try:
        cleaned = str(text).lower().replace(',', '').replace('₦', '').strip()
        multiplier = 1
        if cleaned.endswith('k'):
            multiplier = 1_000
            cleaned = cleaned[:-1]
        elif cleaned.endswith('m'):
            multiplier = 1_000_000
            cleaned = cleaned[:-1]
        val = Decimal(cleaned) * multiplier
        if not val.is_finite() or val < 0 or val > 1_000_000_000:
            return None
        return val
    except InvalidOperation:
        return None


def fmt(amount) -> str:
    """Format amount as Nigerian Naira."""
    return f"₦{Decimal(str(amount)):,.2f}"


def sanitize_input(text: str, max_length: int = 500) -> str:
    """Strip control characters and enforce max length."""
    # Strip control chars except newline
    cleaned = re.sub(r'[\x00-\x09\x0b-\x1f\x7f]', '', text)
    return cleaned[:max_length].strip()
