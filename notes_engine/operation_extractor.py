"""
Detailed Operation Extractor for Settlement Notes

Line-oriented extraction of fully structured trade records. Each line of
the note is tagged with one category and processed by explicit dispatch:
- DateLine: "DD/MM/YYYY", updates the running trading date
- OptionTriggerLine: "OPÇÃO DE COMPRA" / "OPÇÃO DE VENDA" rows
- SpotTradeLine: cash market rows ("C VISTA", "V FRACIONARIO", ...) and
  "COMPRAS" / "VENDAS" section headers
- NumericTripleLine: quantity / unit price / total on a line of its own
- OtherLine: anything else

Layouts differ between brokers, so a trade row whose numbers cannot be
found within the look-ahead window is skipped and counted, never fatal.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

from notes_engine.classifier import FUTURE_PATTERN, OPTION_PATTERN, REIT_PATTERN, STOCK_PATTERN, classify
from notes_engine.fees import NoteCostCalculator
from notes_engine.market_utils import parse_br_number, parse_note_date
from notes_engine.models import Operation, Side

# Configure logging
logger = logging.getLogger(__name__)

OPTION_LOOKAHEAD = 3
SPOT_LOOKAHEAD = 2

OPTION_MARKER = re.compile(r"OP[CÇ][AÃ]O\s+DE\s+(?:COMPRA|VENDA)")
SPOT_MARKER = re.compile(r"(?<![A-Z0-9])([CV])\s+(?:VISTA|FRACION[AÁ]RIO|TERMO)(?![A-Z])")
FUTURES_MARKER = re.compile(r"(?<![A-Z0-9])([CV])\s+(?=(?:WIN|WDO|IND)[FGHJKMNQUVXZ]\d)")
VISTA_MARKER = re.compile(r"(?<![A-Z])(?:MERCADO\s+[AÀ]\s+)?VISTA(?![A-Z])")
SECTION_HEADER = re.compile(r"(?<![A-Z])(COMPRAS|VENDAS)(?![A-Z])")

SIDE_TOKEN = re.compile(r"(?<![A-Z0-9\-])([CV])(?![A-Z0-9])")
SIDE_WORD = re.compile(r"(?<![A-Z])(COMPRAS?|VENDAS?)(?![A-Z])")

# "1.000 0,85 850,00 D": thousand-separated triple closed by a debit/credit flag
COMPACT_TRIPLE = re.compile(
    r"(?<![\d.,])(\d{1,3}(?:\.\d{3})*)\s+(\d{1,3}(?:\.\d{3})*,\d{2,6})\s+"
    r"(\d{1,3}(?:\.\d{3})*,\d{2})\s*([DC])(?![A-Z0-9])"
)
# "100 50.00 5000.00" or "100 50,00 5.000,00"
GENERIC_TRIPLE = re.compile(
    r"(?<![\d.,/])(\d+(?:\.\d{3})*)\s+(\d+(?:[.,]\d+)*)\s+(\d+(?:[.,]\d+)*)(?![\d/])"
)
DECIMAL_VALUE = re.compile(
    r"(?<![\d.,])(?:\d{1,3}(?:\.\d{3})*,\d{2}|\d+\.\d{2})(?![\d,])"
)

# Ticker patterns tried on spot rows, in priority order
SPOT_TICKER_PATTERNS = (STOCK_PATTERN, REIT_PATTERN, FUTURE_PATTERN)


@dataclass(frozen=True)
class NumericTriple:
    """Quantity, unit price and stated total read from one line."""
    quantity: int
    unit_price: Decimal
    total_value: Decimal
    flag: Optional[str] = None
    start: int = 0

    @property
    def flag_side(self) -> Optional[Side]:
        """Debit (D) means the investor paid: a buy. Credit (C) is a sell."""
        if self.flag == "D":
            return Side.BUY
        if self.flag == "C":
            return Side.SELL
        return None


@dataclass(frozen=True)
class NoteLine:
    """A trimmed, non-empty line and where it starts in the raw text."""
    index: int
    offset: int
    text: str


@dataclass(frozen=True)
class DateLine(NoteLine):
    trade_date: date


@dataclass(frozen=True)
class OptionTriggerLine(NoteLine):
    marker_end: int


@dataclass(frozen=True)
class SpotTradeLine(NoteLine):
    marker_side: Optional[Side]


@dataclass(frozen=True)
class NumericTripleLine(NoteLine):
    triple: NumericTriple


@dataclass(frozen=True)
class OtherLine(NoteLine):
    pass


TaggedLine = Union[DateLine, OptionTriggerLine, SpotTradeLine, NumericTripleLine, OtherLine]


def _side_from_word(word: str) -> Side:
    return Side.BUY if word.startswith("C") else Side.SELL


def parse_triple(text: str) -> Optional[NumericTriple]:
    """
    Read a quantity / unit price / total triple from a piece of text.

    The compact debit/credit format is tried first, then a generic
    whitespace-separated triple.

    Args:
        text: Line (or part of a line) of a settlement note

    Returns:
        NumericTriple, or None when no valid triple is present
    """
    for pattern in (COMPACT_TRIPLE, GENERIC_TRIPLE):
        for match in pattern.finditer(text):
            quantity = parse_br_number(match.group(1))
            unit_price = parse_br_number(match.group(2))
            total_value = parse_br_number(match.group(3))
            if quantity is None or unit_price is None or total_value is None:
                continue
            if quantity <= 0 or quantity != quantity.to_integral_value():
                continue
            if unit_price <= 0 or total_value <= 0:
                continue
            flag = match.group(4) if pattern is COMPACT_TRIPLE else None
            return NumericTriple(int(quantity), unit_price, total_value, flag, match.start())
    return None


def split_lines(raw_text: str) -> List[Tuple[int, str]]:
    """Split text into (offset, stripped line) pairs, dropping empty lines."""
    lines = []
    offset = 0
    for raw_line in raw_text.splitlines(keepends=True):
        stripped = raw_line.strip()
        if stripped:
            lines.append((offset + raw_line.index(stripped[0]), stripped))
        offset += len(raw_line)
    return lines


def tag_line(index: int, offset: int, text: str) -> TaggedLine:
    """
    Tag one line with its category.

    Trade rows are recognized before dates because futures rows print the
    contract maturity date, which must not replace the trading date.
    """
    upper = text.upper()

    option_marker = OPTION_MARKER.search(upper)
    if option_marker:
        return OptionTriggerLine(index, offset, upper, option_marker.end())

    spot_marker = SPOT_MARKER.search(upper) or FUTURES_MARKER.search(upper)
    if spot_marker:
        return SpotTradeLine(index, offset, upper, _side_from_word(spot_marker.group(1)))

    header = SECTION_HEADER.search(upper)
    if header:
        return SpotTradeLine(index, offset, upper, _side_from_word(header.group(1)))

    if VISTA_MARKER.search(upper):
        return SpotTradeLine(index, offset, upper, None)

    trade_date = parse_note_date(upper)
    if trade_date is not None:
        return DateLine(index, offset, upper, trade_date)

    triple = parse_triple(upper)
    if triple is not None:
        return NumericTripleLine(index, offset, upper, triple)

    return OtherLine(index, offset, upper)


def mark_day_trades(operations: Sequence[Operation]) -> List[Operation]:
    """
    Flag operations that belong to a same-day buy and sell of one asset.

    Operations are grouped by (trade date, asset code); every operation in
    a group holding at least one buy and one sell is marked as day trade,
    every other operation is marked as not.

    Args:
        operations: Operations in any order

    Returns:
        New list, same order, with ``is_day_trade`` recomputed
    """
    sides: Dict[Tuple[date, str], set] = defaultdict(set)
    for op in operations:
        sides[(op.trade_date, op.asset_code)].add(op.side)

    marked = []
    for op in operations:
        is_day_trade = len(sides[(op.trade_date, op.asset_code)]) == 2
        marked.append(op if op.is_day_trade == is_day_trade else replace(op, is_day_trade=is_day_trade))
    return marked


class OperationExtractor:
    """
    Line-by-line extractor producing structured operations.

    Features:
    - Running trading date from date lines
    - Option rows with strike and underlying root
    - Spot rows for stocks, funds, ETFs and futures
    - Brazilian number normalization
    - Day-trade marking per (date, asset)
    """

    def __init__(self, cost_calculator: Optional[NoteCostCalculator] = None):
        """
        Initialize the extractor.

        Args:
            cost_calculator: Derives the per-operation brokerage fee
        """
        self.cost_calculator = cost_calculator or NoteCostCalculator(config={})
        self.skipped_lines = 0

    def extract(self, raw_text: str, default_date: Optional[date] = None) -> List[Operation]:
        """
        Extract every recognizable operation from raw note text.

        Args:
            raw_text: Document text from the extraction collaborator
            default_date: Trading date used before any date line is seen

        Returns:
            Operations in extraction order, day trades marked
        """
        self.skipped_lines = 0
        tagged = [tag_line(i, offset, text) for i, (offset, text) in enumerate(split_lines(raw_text or ""))]

        operations: List[Operation] = []
        consumed = set()
        current_date = default_date

        for line in tagged:
            if isinstance(line, DateLine):
                current_date = line.trade_date
            elif isinstance(line, OptionTriggerLine):
                op = self._read_option(line, tagged, consumed, current_date)
                if op is not None:
                    operations.append(op)
            elif isinstance(line, SpotTradeLine):
                op = self._read_spot(line, tagged, consumed, current_date)
                if op is not None:
                    operations.append(op)

        logger.info(f"Extracted {len(operations)} operations ({self.skipped_lines} candidate lines skipped)")
        return mark_day_trades(operations)

    def _skip(self, line: NoteLine, reason: str) -> None:
        self.skipped_lines += 1
        logger.warning(f"Skipping note line {line.index + 1}: {reason} ({line.text!r})")

    def _look_ahead(self, line: NoteLine, tagged: List[TaggedLine], consumed: set,
                    window: int) -> Optional[NumericTriple]:
        """Find a triple on the next lines, stopping at the next trade row."""
        for candidate in tagged[line.index + 1:line.index + 1 + window]:
            if isinstance(candidate, (OptionTriggerLine, SpotTradeLine)):
                break
            if isinstance(candidate, NumericTripleLine) and candidate.index not in consumed:
                consumed.add(candidate.index)
                return candidate.triple
        return None

    def _resolve_side(self, prefix: str, marker_side: Optional[Side],
                      triple: NumericTriple) -> Optional[Side]:
        if marker_side is not None:
            return marker_side
        token = SIDE_TOKEN.search(prefix)
        if token:
            return _side_from_word(token.group(1))
        word = SIDE_WORD.search(prefix)
        if word:
            return _side_from_word(word.group(1))
        return triple.flag_side

    def _build(self, side: Side, code: str, triple: NumericTriple, trade_date: date,
               line: NoteLine, strike: Optional[Decimal] = None,
               base_instrument: Optional[str] = None) -> Operation:
        return Operation(
            side=side,
            asset_code=code,
            instrument_type=classify(code),
            quantity=triple.quantity,
            unit_price=triple.unit_price,
            trade_date=trade_date,
            total_value=triple.total_value,
            brokerage_fee=self.cost_calculator.brokerage_fee(triple.total_value),
            option_strike=strike,
            base_instrument=base_instrument,
            source_offset=line.offset,
        )

    def _read_option(self, line: OptionTriggerLine, tagged: List[TaggedLine], consumed: set,
                     current_date: Optional[date]) -> Optional[Operation]:
        """Read an option row: code and root from the row, strike below it."""
        text = line.text
        code_match = OPTION_PATTERN.search(text, line.marker_end) or OPTION_PATTERN.search(text)
        if not code_match:
            self._skip(line, "option row without option series code")
            return None

        code = code_match.group(0)
        base_instrument = code_match.group(1)
        rest = text[code_match.end():]

        triple = parse_triple(rest)
        strike = None
        if triple is not None:
            strike_match = DECIMAL_VALUE.search(rest[:triple.start])
            if strike_match:
                strike = parse_br_number(strike_match.group(0))
        else:
            following = tagged[line.index + 1] if line.index + 1 < len(tagged) else None
            if following is not None and not isinstance(following, NumericTripleLine):
                strike_match = DECIMAL_VALUE.search(following.text)
                if strike_match:
                    strike = parse_br_number(strike_match.group(0))
            triple = self._look_ahead(line, tagged, consumed, OPTION_LOOKAHEAD)

        if triple is None:
            self._skip(line, f"no quantity/price/total for option {code}")
            return None
        if current_date is None:
            self._skip(line, f"no trading date for option {code}")
            return None

        marker_free = OPTION_MARKER.sub(" ", text[:code_match.start()])
        side = self._resolve_side(marker_free, None, triple)
        if side is None:
            self._skip(line, f"cannot tell buy from sell for option {code}")
            return None

        logger.debug(f"Option {code} ({side.value}) base={base_instrument} strike={strike}")
        return self._build(side, code, triple, current_date, line, strike, base_instrument)

    def _read_spot(self, line: SpotTradeLine, tagged: List[TaggedLine], consumed: set,
                   current_date: Optional[date]) -> Optional[Operation]:
        """Read a cash market or futures row."""
        text = line.text
        ticker_match = None
        for pattern in SPOT_TICKER_PATTERNS:
            ticker_match = pattern.search(text)
            if ticker_match:
                break
        if ticker_match is None:
            # Section headers often stand alone on their line
            logger.debug(f"No ticker on trade row {line.index + 1}")
            return None

        code = ticker_match.group(0)
        triple = parse_triple(text[ticker_match.end():])
        if triple is None:
            triple = self._look_ahead(line, tagged, consumed, SPOT_LOOKAHEAD)

        if triple is None:
            self._skip(line, f"no quantity/price/total for {code}")
            return None
        if current_date is None:
            self._skip(line, f"no trading date for {code}")
            return None

        side = self._resolve_side(text[:ticker_match.start()], line.marker_side, triple)
        if side is None:
            self._skip(line, f"cannot tell buy from sell for {code}")
            return None

        logger.debug(f"Spot {code} ({side.value}) qty={triple.quantity} price={triple.unit_price}")
        return self._build(side, code, triple, current_date, line)


def extract_operations(raw_text: str, default_date: Optional[date] = None) -> List[Operation]:
    """
    Extract structured operations from raw settlement note text.

    Args:
        raw_text: Document text from the extraction collaborator
        default_date: Trading date used before any date line is seen

    Returns:
        Operations in extraction order, day trades marked
    """
    return OperationExtractor().extract(raw_text, default_date)
