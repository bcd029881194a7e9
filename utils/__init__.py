"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_stored, format_stored
from utils.money import ZERO, to_amount, round_amount, clamp_zero
