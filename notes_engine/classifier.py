"""
Instrument Classifier for B3 Ticker Codes

Maps a ticker code to an instrument type using the B3 code conventions:
- Real estate funds (FII) and units end in 11
- A small set of ETFs also end in 11 and must be told apart from FIIs
- Option series carry a month letter and a strike number after the root
- Mini index and mini dollar futures use fixed 3-letter roots
- Ordinary (3) and preferred (4) shares
"""

import re
from typing import Any

from notes_engine.models import InstrumentType

ETF_ALLOW_LIST = frozenset([
    "BOVA11", "IVVB11", "SMAL11", "HASH11", "ECOO11", "BBSD11", "XINA11",
])

FUTURES_ROOTS = ("WIN", "WDO", "IND")
FUTURES_MONTH_CODES = "FGHJKMNQUVXZ"

# Anchored patterns used to classify a single normalized code
# The option shape here is broader than OPTION_PATTERN below: a single strike
# digit (PETRC3) classifies as an option, but only 2-3 digit series on a
# catalogued root pass InstrumentRegistry.exists.
_REIT_CODE = re.compile(r"^[A-Z]{4}11$")
_OPTION_CODE = re.compile(r"^[A-Z]{4,5}[A-Z0-9][0-9]{1,3}$")
_FUTURE_CODE = re.compile(rf"^(?:{'|'.join(FUTURES_ROOTS)})[{FUTURES_MONTH_CODES}][0-9]{{1,2}}$")
_STOCK_CODE = re.compile(r"^[A-Z]{4}[34]$")

# Unanchored patterns used to scan note text for candidate codes
STOCK_PATTERN = re.compile(r"(?<![A-Z0-9])[A-Z]{4}[34](?![A-Z0-9])")
REIT_PATTERN = re.compile(r"(?<![A-Z0-9])[A-Z]{4}11(?![A-Z0-9])")
ETF_PATTERN = re.compile(
    r"(?<![A-Z0-9])(?:" + "|".join(sorted(ETF_ALLOW_LIST)) + r")(?![A-Z0-9])"
)
OPTION_PATTERN = re.compile(r"(?<![A-Z0-9])([A-Z]{4})[A-Z][0-9]{2,3}(?![A-Z0-9])")
FUTURE_PATTERN = re.compile(
    rf"(?<![A-Z0-9])(?:{'|'.join(FUTURES_ROOTS)})[{FUTURES_MONTH_CODES}][0-9]{{1,2}}(?![A-Z0-9])"
)


def normalize_code(code: Any) -> str:
    """Uppercase a code and drop all whitespace; non-strings become ''."""
    if not isinstance(code, str):
        return ""
    return "".join(code.split()).upper()


def classify(code: Any) -> InstrumentType:
    """
    Classify a ticker code.

    Rules are applied in priority order and the first match wins. The ETF
    allow-list has to be honoured before the generic "ends in 11" rule,
    because both share the same shape.

    Args:
        code: Ticker code (case and surrounding whitespace are ignored)

    Returns:
        InstrumentType, UNKNOWN when no rule matches

    Examples:
        >>> classify("petr4")
        <InstrumentType.STOCK: 'stock'>
        >>> classify("BOVA11")
        <InstrumentType.ETF: 'etf'>
        >>> classify("HGLG11")
        <InstrumentType.REIT_FUND: 'reit_fund'>
    """
    normalized = normalize_code(code)
    if not normalized:
        return InstrumentType.UNKNOWN

    if _REIT_CODE.match(normalized) and normalized not in ETF_ALLOW_LIST:
        return InstrumentType.REIT_FUND

    if normalized in ETF_ALLOW_LIST:
        return InstrumentType.ETF

    # WINJ24 also fits the broad option shape; futures roots are reserved
    if _OPTION_CODE.match(normalized) and not _FUTURE_CODE.match(normalized):
        return InstrumentType.OPTION

    if _FUTURE_CODE.match(normalized):
        return InstrumentType.FUTURE

    if _STOCK_CODE.match(normalized):
        return InstrumentType.STOCK

    return InstrumentType.UNKNOWN


def is_ticker_shaped(code: Any) -> bool:
    """True when a code already has the shape of a B3 ticker of any type."""
    normalized = normalize_code(code)
    if not normalized:
        return False
    return normalized in ETF_ALLOW_LIST or any(
        pattern.match(normalized) for pattern in (_STOCK_CODE, _REIT_CODE, _OPTION_CODE, _FUTURE_CODE)
    )
