"""
Data model for settlement notes, operations and derived figures.

Operations and notes are immutable once built. Portfolio positions and
tax liabilities are derived snapshots recomputed from the full operation
history; they are never mutated in place.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class InstrumentType(Enum):
    """Enumeration for traded instrument types."""
    STOCK = "stock"
    REIT_FUND = "reit_fund"
    ETF = "etf"
    OPTION = "option"
    FUTURE = "future"
    UNKNOWN = "unknown"


class Side(Enum):
    """Enumeration for operation sides."""
    BUY = "buy"
    SELL = "sell"


class ExtractionMethod(Enum):
    """How the extraction collaborator obtained the document text."""
    TEXT = "text"
    OCR = "ocr"


@dataclass(frozen=True)
class Operation:
    """
    One trade line of a settlement note.

    Attributes:
        side: Buy or sell
        asset_code: Exchange ticker, uppercase and trimmed
        instrument_type: Classification of the ticker
        quantity: Number of units traded (positive)
        unit_price: Price per unit (positive)
        trade_date: Trading session date
        total_value: Line total as stated on the note (not recomputed)
        brokerage_fee: Brokerage attributed to the line
        is_day_trade: Same-day buy and sell of the same instrument
        is_in_block: Found inside a recognized section of the note
        option_strike: Strike price, options only
        base_instrument: Underlying 4-letter root, options only
        source_offset: Character offset of the originating line
    """
    side: Side
    asset_code: str
    instrument_type: InstrumentType
    quantity: int
    unit_price: Decimal
    trade_date: date
    total_value: Decimal
    brokerage_fee: Decimal = Decimal("0")
    is_day_trade: bool = False
    is_in_block: bool = False
    option_strike: Optional[Decimal] = None
    base_instrument: Optional[str] = None
    source_offset: int = -1

    def __post_init__(self):
        if not isinstance(self.side, Side):
            raise ValueError("Side must be a Side enum")
        if not self.asset_code or not isinstance(self.asset_code, str):
            raise ValueError("Asset code must be a non-empty string")
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError("Quantity must be a positive integer")
        if self.unit_price <= 0:
            raise ValueError("Unit price must be positive")
        if not isinstance(self.trade_date, date):
            raise ValueError("Trade date must be a date object")

    @property
    def is_buy(self) -> bool:
        return self.side is Side.BUY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'side': self.side.value,
            'asset_code': self.asset_code,
            'instrument_type': self.instrument_type.value,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'trade_date': self.trade_date.isoformat(),
            'total_value': str(self.total_value),
            'brokerage_fee': str(self.brokerage_fee),
            'is_day_trade': self.is_day_trade,
            'is_in_block': self.is_in_block,
            'option_strike': str(self.option_strike) if self.option_strike is not None else None,
            'base_instrument': self.base_instrument,
        }


@dataclass(frozen=True)
class TypeResult:
    """Day-trade and swing-trade figures for one instrument type."""
    day_trade: Decimal = Decimal("0")
    swing_trade: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, str]:
        return {'day_trade': str(self.day_trade), 'swing_trade': str(self.swing_trade)}


@dataclass(frozen=True)
class NoteFees:
    """Fees charged on a settlement note."""
    brokerage_fee: Decimal
    settlement_fee: Decimal
    registration_fee: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            'brokerage_fee': str(self.brokerage_fee),
            'settlement_fee': str(self.settlement_fee),
            'registration_fee': str(self.registration_fee),
            'total': str(self.total),
        }


@dataclass(frozen=True)
class SettlementNote:
    """One successfully parsed brokerage settlement note."""
    note_id: str
    trade_date: date
    reference_month: str
    settlement_date: date
    broker: str
    total_value: Decimal
    operations: Tuple[Operation, ...]
    day_trade_result: Decimal
    swing_trade_result: Decimal
    result_by_instrument_type: Dict[InstrumentType, TypeResult]
    fees: NoteFees
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'note_id': self.note_id,
            'trade_date': self.trade_date.isoformat(),
            'reference_month': self.reference_month,
            'settlement_date': self.settlement_date.isoformat(),
            'broker': self.broker,
            'total_value': str(self.total_value),
            'operations': [op.to_dict() for op in self.operations],
            'day_trade_result': str(self.day_trade_result),
            'swing_trade_result': str(self.swing_trade_result),
            'result_by_instrument_type': {
                itype.value: result.to_dict()
                for itype, result in self.result_by_instrument_type.items()
            },
            'fees': self.fees.to_dict(),
            'extraction_method': self.extraction_method.value,
        }


@dataclass(frozen=True)
class PortfolioPosition:
    """Derived position for one instrument currently held."""
    asset_code: str
    quantity: int
    average_cost: Decimal
    total_value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'asset_code': self.asset_code,
            'quantity': self.quantity,
            'average_cost': str(self.average_cost),
            'total_value': str(self.total_value),
        }


@dataclass(frozen=True)
class TaxLiability:
    """
    Derived tax snapshot over the full operation history.

    Attributes:
        day_trade: Tax due on day-trade results
        swing_trade: Tax due on swing-trade results
        carried_loss: Advisory carried-forward loss figure
        by_instrument_type: Tax due per instrument type
        day_trade_result: Net day-trade result (informational)
        swing_trade_result: Net swing-trade result (informational)
        results_by_instrument_type: Net results per instrument type
    """
    day_trade: Decimal
    swing_trade: Decimal
    carried_loss: Decimal
    by_instrument_type: Dict[InstrumentType, TypeResult]
    day_trade_result: Decimal = Decimal("0.00")
    swing_trade_result: Decimal = Decimal("0.00")
    results_by_instrument_type: Dict[InstrumentType, TypeResult] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.day_trade + self.swing_trade

    def to_dict(self) -> Dict[str, Any]:
        return {
            'day_trade': str(self.day_trade),
            'swing_trade': str(self.swing_trade),
            'carried_loss': str(self.carried_loss),
            'by_instrument_type': {
                itype.value: result.to_dict() for itype, result in self.by_instrument_type.items()
            },
            'day_trade_result': str(self.day_trade_result),
            'swing_trade_result': str(self.swing_trade_result),
        }


@dataclass(frozen=True)
class DocumentText:
    """Raw text handed over by the extraction (text or OCR) collaborator."""
    text: str
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT


@dataclass
class ExtractionSummary:
    """
    Outcome of reading one document, for display to the user.

    ``success`` holds only when a recognized block was found and at least
    one valid operation was extracted.
    """
    success: bool
    method: ExtractionMethod
    assets: List[str]
    asset_type_counts: List[Dict[str, Any]]
    total_operations: int
    block_found: bool
    discrepancies: Optional[Dict[str, bool]] = None
    direct_extraction: bool = False
    skipped_lines: int = 0
    unrecognized_assets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'method': self.method.value,
            'assets': list(self.assets),
            'asset_type_counts': [
                {'type': entry['type'].value, 'count': entry['count']}
                for entry in self.asset_type_counts
            ],
            'total_operations': self.total_operations,
            'block_found': self.block_found,
            'discrepancies': dict(self.discrepancies) if self.discrepancies else None,
            'direct_extraction': self.direct_extraction,
            'skipped_lines': self.skipped_lines,
            'unrecognized_assets': list(self.unrecognized_assets),
        }


def empty_type_results() -> Dict[InstrumentType, TypeResult]:
    """Zeroed results for every instrument type, in enum order."""
    return {itype: TypeResult(Decimal("0.00"), Decimal("0.00")) for itype in InstrumentType}
