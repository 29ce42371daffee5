"""
Note History and Dashboard Aggregation

Holds every successfully parsed settlement note of a user and derives the
dashboard figures from the full operation history:
- Append-only note list guarded by a lock
- Full recompute on every append (portfolio, tax, exemptions, assets)
- Best-effort quote refresh that never blocks the recompute

Derived figures are never updated incrementally, so the dashboard always
matches what a fresh computation over all notes would produce.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from market_data.quotes import Quote, QuoteProvider, fetch_quotes
from market_data.valuation import PositionValuation, value_portfolio
from notes_engine.config import load_config
from notes_engine.models import Operation, PortfolioPosition, SettlementNote, TaxLiability
from notes_engine.operation_extractor import mark_day_trades
from notes_engine.reconciliation import reconcile, valid_operations
from notes_engine.registry import InstrumentRegistry, create_registry
from notes_engine.tax import ExemptionStatus, TaxCalculator

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardReport:
    """Snapshot of everything derived from the note history."""
    notes: Tuple[SettlementNote, ...]
    assets: List[str]
    portfolio: List[PortfolioPosition]
    tax: TaxLiability
    exemptions: List[ExemptionStatus]
    day_trade_quantities: Dict[str, int] = field(default_factory=dict)
    valuations: List[PositionValuation] = field(default_factory=list)
    quotes_updated_at: Optional[datetime] = None

    @property
    def total_operations(self) -> int:
        return sum(len(note.operations) for note in self.notes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'notes': [note.to_dict() for note in self.notes],
            'assets': list(self.assets),
            'portfolio': [position.to_dict() for position in self.portfolio],
            'tax': self.tax.to_dict(),
            'exemptions': [status.to_dict() for status in self.exemptions],
            'day_trade_quantities': dict(self.day_trade_quantities),
            'valuations': [valuation.to_dict() for valuation in self.valuations],
            'quotes_updated_at': self.quotes_updated_at.isoformat() if self.quotes_updated_at else None,
        }


class NoteHistory:
    """
    Append-only store of parsed notes with derived dashboard figures.

    Appends are serialized; every append recomputes portfolio and tax from
    all notes. Readers get immutable DashboardReport snapshots.
    """

    def __init__(self,
                 config_path: str = "config/settings.yaml",
                 config: Optional[Dict[str, Any]] = None,
                 registry: Optional[InstrumentRegistry] = None):
        self.config = config if config is not None else load_config(config_path)
        self.registry = registry or create_registry(self.config)
        self.tax_calculator = TaxCalculator(config=self.config)

        self._lock = threading.Lock()
        self._notes: List[SettlementNote] = []
        self._quotes: List[Quote] = []
        self._quotes_updated_at: Optional[datetime] = None
        self._report = self._recompute()

    @property
    def notes(self) -> Tuple[SettlementNote, ...]:
        return tuple(self._notes)

    @property
    def report(self) -> DashboardReport:
        return self._report

    def __len__(self) -> int:
        return len(self._notes)

    def append(self, note: SettlementNote) -> DashboardReport:
        """
        Add a parsed note and recompute every derived figure.

        Args:
            note: Successfully parsed settlement note

        Returns:
            The new DashboardReport
        """
        with self._lock:
            if any(existing.note_id == note.note_id for existing in self._notes):
                logger.warning(f"Note {note.note_id} appended again - kept both copies")
            self._notes.append(note)
            self._report = self._recompute()
            logger.info(f"Note {note.note_id} added; history holds {len(self._notes)} notes")
            return self._report

    def extend(self, notes: Iterable[SettlementNote]) -> DashboardReport:
        """Add several notes with a single recompute."""
        with self._lock:
            self._notes.extend(notes)
            self._report = self._recompute()
            return self._report

    def operations(self) -> List[Operation]:
        """
        Valid operations of the whole history, day trades re-marked.

        A same-day buy and sell may come from two different notes, so day
        trades are marked again across the flattened history.
        """
        flattened = [op for note in self._notes for op in note.operations]
        return mark_day_trades(valid_operations(flattened))

    def _recompute(self) -> DashboardReport:
        operations = self.operations()
        reconciliation = reconcile(operations)
        tax = self.tax_calculator.calculate_tax(operations)
        exemptions = self.tax_calculator.swing_exemption_status(operations)

        assets = []
        for op in operations:
            code = self.registry.correct(op.asset_code)
            if code and code not in assets:
                assets.append(code)

        return DashboardReport(
            notes=tuple(self._notes),
            assets=assets,
            portfolio=reconciliation.portfolio,
            tax=tax,
            exemptions=exemptions,
            day_trade_quantities=reconciliation.day_trade_quantities,
            valuations=value_portfolio(reconciliation.portfolio, self._quotes),
            quotes_updated_at=self._quotes_updated_at,
        )

    def refresh_quotes(self, provider: QuoteProvider, now: Optional[datetime] = None) -> DashboardReport:
        """
        Fetch quotes for the current portfolio and revalue it.

        The request runs outside the lock; failures leave the previous
        quotes in place.

        Args:
            provider: Quote provider
            now: Refresh timestamp (default: now)

        Returns:
            The DashboardReport with updated valuations
        """
        codes = [position.asset_code for position in self._report.portfolio]
        if not codes:
            return self._report

        quotes = fetch_quotes(provider, codes, self.registry)
        if not quotes:
            logger.warning("No quotes received - keeping previous valuations")
            return self._report

        with self._lock:
            self._quotes = quotes
            self._quotes_updated_at = now or datetime.now()
            self._report = replace(
                self._report,
                valuations=value_portfolio(self._report.portfolio, quotes),
                quotes_updated_at=self._quotes_updated_at,
            )
            return self._report
