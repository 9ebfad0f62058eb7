"""Formatting helpers for invoice fields.

Money is handled as :class:`~decimal.Decimal` and rounded half-up to whole
cents. Floats are converted through their shortest ``repr`` so that a value
such as ``99.995`` rounds to ``100.00`` instead of the binary neighbour below
it.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from dateutil import parser as dateutil_parser

from .errors import InvalidAmount, InvalidDate, InvalidDuration, InvalidFolio, InvalidText

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.000001")
CFDI_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

MAX_AMOUNT = Decimal("9999999999999999.99")
MAX_DIGITS = 18
MAX_MINUTES = 10 ** 9

# Anything outside the XML 1.0 Char production.
_XML_ILLEGAL = re.compile(r"[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def to_amount(value: Any) -> Decimal:
    """Convert ``value`` to a finite, non-negative Decimal or raise InvalidAmount."""
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Amount must be a number, got {value!r}.")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, float):
            amount = Decimal(repr(value))
        elif isinstance(value, int):
            amount = Decimal(value)
        elif isinstance(value, str):
            amount = Decimal(value.strip())
        else:
            raise InvalidAmount(f"Amount must be a number, got {type(value).__name__}.")
    except InvalidOperation as exc:
        raise InvalidAmount(f"Amount is not numeric: {value!r}.") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {amount}.")
    if amount < 0:
        raise InvalidAmount(f"Amount must not be negative, got {amount}.")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Amount must not exceed {MAX_AMOUNT}.")
    # -0.0 from JSON would otherwise print as "-0.00".
    if amount.is_zero():
        amount = Decimal(0)
    return amount


def round2(amount: Decimal) -> Decimal:
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise InvalidAmount(f"Amount cannot be rounded to cents: {amount}.") from exc


def fmt_money(amount: Decimal) -> str:
    return f"{round2(amount):.2f}"


def fmt_rate(rate: Decimal) -> str:
    return f"{rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP):.6f}"


def _digits(raw: str) -> bool:
    return raw.isascii() and raw.isdigit() and len(raw) <= MAX_DIGITS


def to_folio(value: Any, width: int = 6) -> int:
    limit = 10 ** width - 1
    if isinstance(value, bool):
        raise InvalidFolio(f"Folio must be an integer, got {value!r}.")
    if isinstance(value, str):
        raw = value.strip()
        if not _digits(raw):
            raise InvalidFolio(f"Folio must be at most {MAX_DIGITS} digits.")
        value = int(raw)
    if not isinstance(value, int):
        raise InvalidFolio(f"Folio must be an integer, got {type(value).__name__}.")
    if value < 0 or value > limit:
        raise InvalidFolio(f"Folio does not fit in {width} digits.")
    return value


def fmt_folio(value: Any, width: int = 6) -> str:
    """Return the folio zero-padded to ``width`` digits, e.g. 42 -> '000042'."""
    return str(to_folio(value, width)).zfill(width)


def fmt_fecha(raw: Union[str, datetime]) -> str:
    """Normalise an ISO-8601 timestamp to the CFDI 'YYYY-MM-DDTHH:MM:SS' form.

    Fractional seconds and any UTC offset are dropped; the wall-clock time of
    the given value is kept as-is.
    """
    if isinstance(raw, datetime):
        return raw.strftime(CFDI_DATE_FORMAT)
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidDate(f"Date must be an ISO-8601 string, got {raw!r}.")
    try:
        dt = dateutil_parser.isoparse(raw.strip())
    except (ValueError, OverflowError) as exc:
        raise InvalidDate(f"Date is not ISO-8601: {raw!r}.") from exc
    return dt.strftime(CFDI_DATE_FORMAT)


def to_minutes(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidDuration(f"Duration must be whole minutes, got {value!r}.")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and _digits(value.strip()):
        value = int(value.strip())
    if not isinstance(value, int):
        raise InvalidDuration("Duration must be whole minutes.")
    if value < 0 or value > MAX_MINUTES:
        raise InvalidDuration(f"Duration must be between 0 and {MAX_MINUTES} minutes.")
    return value


def to_text(value: Any, field: str) -> str:
    """Return ``value`` if it is a string XML 1.0 can carry, else raise InvalidText."""
    if not isinstance(value, str):
        raise InvalidText(f"{field} must be a string.")
    match = _XML_ILLEGAL.search(value)
    if match is not None:
        raise InvalidText(
            f"{field} contains a character not allowed in XML: {match.group()!r}."
        )
    return value
