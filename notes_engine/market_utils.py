"""
Brazilian Market Utilities for Settlement Notes

Essential helpers shared by the extraction and calculation modules:
- Brazilian number formatting ("1.234,56") to Decimal
- Monetary rounding (R$ 0.01, half-up)
- Settlement note dates (DD/MM/YYYY) and reference months
- T+2 settlement dates on the B3 business day calendar (dias_uteis)
"""

import logging
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

import dias_uteis
import pytz

# Configure logging
logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
MARKET_TIMEZONE = "America/Sao_Paulo"

DATE_PATTERN = re.compile(r"(?<!\d)(\d{2})/(\d{2})/(\d{4})(?!\d)")
_THOUSANDS_ONLY = re.compile(r"^\d{1,3}(?:\.\d{3})+$")


def money(value: Union[Decimal, int, float, str]) -> Decimal:
    """
    Round a monetary value to two decimal places using half-up rounding.

    Args:
        value: Amount to round

    Returns:
        Decimal quantized to R$ 0.01

    Examples:
        >>> money(Decimal("10.005"))
        Decimal('10.01')
        >>> money(Decimal("-2.345"))
        Decimal('-2.35')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_br_number(text: str) -> Optional[Decimal]:
    """
    Convert a number printed in Brazilian format into a Decimal.

    Brazilian notes use "." as thousands separator and "," as decimal
    separator. Text without a comma is accepted too: a dot followed by
    groups of exactly three digits is read as thousands ("1.000"),
    otherwise the dot is the decimal point ("50.00").

    Args:
        text: Numeric substring as matched in the note

    Returns:
        Decimal value, or None when the text is not a number

    Examples:
        >>> parse_br_number("1.234,56")
        Decimal('1234.56')
        >>> parse_br_number("1.000")
        Decimal('1000')
        >>> parse_br_number("50.00")
        Decimal('50.00')
    """
    if text is None:
        return None

    cleaned = text.strip().replace(" ", "")
    if not cleaned:
        return None

    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif _THOUSANDS_ONLY.match(cleaned):
        cleaned = cleaned.replace(".", "")

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        logger.debug(f"Not a number: {text!r}")
        return None


def parse_note_date(text: str) -> Optional[date]:
    """
    Find the first DD/MM/YYYY date in a piece of text.

    Args:
        text: Any line of a settlement note

    Returns:
        The parsed date, or None when no valid date is present
    """
    for match in DATE_PATTERN.finditer(text):
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            logger.debug(f"Ignoring impossible date {match.group(0)}")
    return None


def reference_month(value: date) -> str:
    """Return the YYYY-MM reference month of a trade date."""
    return value.strftime("%Y-%m")


def market_today(received_at: Optional[datetime] = None, timezone: str = MARKET_TIMEZONE) -> date:
    """
    Date of receipt in the market timezone.

    Naive datetimes are assumed to already be in market time.

    Args:
        received_at: Receipt timestamp (default: now)
        timezone: Market timezone name

    Returns:
        Calendar date in the market timezone
    """
    tz = pytz.timezone(timezone)
    if received_at is None:
        return datetime.now(tz).date()
    if received_at.tzinfo is None:
        return received_at.date()
    return received_at.astimezone(tz).date()


def calculate_settlement_date(trade_date: date, settlement_days: int = 2) -> date:
    """
    Calculate the settlement date N business days after the trade date.

    B3 settles cash equities at T+2 on its own business day calendar.
    When the trade date itself is not a business day the count starts
    at the next business day.

    Args:
        trade_date: Trading session date
        settlement_days: Settlement cycle length in business days

    Returns:
        Settlement date
    """
    if settlement_days < 0:
        raise ValueError("Settlement days must be non-negative")

    current = trade_date
    while not dias_uteis.is_du(current):
        current = current + timedelta(days=1)

    if settlement_days == 0:
        return current
    return dias_uteis.delta_du(current, settlement_days)
