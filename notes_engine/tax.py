"""
Capital Gains Tax Calculator for Brazilian Market

Tax figures for individual taxpayers trading on B3:
- Day trade: 20% on the net intraday result
- Swing trade: 15% on the net result, 20% for real estate funds (FII)
- Per instrument type and per modality (DAY/SWING) buckets
- Losses are not taxed; an advisory carried-loss figure is reported
- Monthly R$ 20,000 swing-trade exemption status for stocks

The R$ 20,000 exemption is reported separately by ``swing_exemption_status``
and is not deducted from the liability computed here; the dashboard decides
how to present it.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from notes_engine.config import load_config
from notes_engine.market_utils import ZERO, money, reference_month
from notes_engine.models import InstrumentType, Operation, TaxLiability, TypeResult
from notes_engine.reconciliation import compute_trade_results, valid_operations

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TAXES = {
    'day_trade_rate': 0.20,
    'swing_trade_rate': 0.15,
    'rate_overrides': {'reit_fund': {'swing_trade': 0.20}},
    'carried_loss_factor': 0.3,
    'swing_exemption_limit': 20000,
    'exemption_eligible_types': ['stock'],
}


@dataclass(frozen=True)
class ExemptionStatus:
    """Swing-trade exemption check for one month."""
    month: str
    disposal_value: Decimal
    limit: Decimal
    exempt: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'disposal_value': str(self.disposal_value),
            'limit': str(self.limit),
            'exempt': self.exempt,
        }


class TaxCalculator:
    """
    Tax calculator over a full operation history.

    Features:
    - Configurable day-trade and swing-trade rates
    - Per instrument type rate overrides
    - Deterministic output (no clock, no randomness)
    - Half-up rounding at output only
    """

    def __init__(self, config_path: str = "config/settings.yaml", config: Optional[Dict[str, Any]] = None):
        """
        Initialize the tax calculator.

        Args:
            config_path: Path to configuration file (used when no config is given)
            config: Already loaded configuration dictionary
        """
        self.config = config if config is not None else load_config(config_path)
        tax_config = dict(DEFAULT_TAXES)
        tax_config.update(self.config.get('taxes', {}) or {})

        self.day_trade_rate = Decimal(str(tax_config['day_trade_rate']))
        self.swing_trade_rate = Decimal(str(tax_config['swing_trade_rate']))
        self.carried_loss_factor = Decimal(str(tax_config['carried_loss_factor']))
        self.swing_exemption_limit = Decimal(str(tax_config['swing_exemption_limit']))
        self.exemption_eligible_types = tuple(
            InstrumentType(name) for name in tax_config['exemption_eligible_types']
        )
        self.rates = self._build_rate_table(tax_config.get('rate_overrides') or {})

        self._validate_rates()
        logger.debug(f"Tax calculator initialized (day trade: {self.day_trade_rate:.0%}, "
                     f"swing trade: {self.swing_trade_rate:.0%})")

    def _build_rate_table(self, overrides: Dict[str, Dict[str, Any]]) -> Dict[InstrumentType, TypeResult]:
        rates = {}
        for itype in InstrumentType:
            override = overrides.get(itype.value, {}) or {}
            rates[itype] = TypeResult(
                day_trade=Decimal(str(override.get('day_trade', self.day_trade_rate))),
                swing_trade=Decimal(str(override.get('swing_trade', self.swing_trade_rate))),
            )
        return rates

    def _validate_rates(self) -> None:
        """
        Validate tax parameters.

        Raises:
            ValueError: If a rate is outside [0, 1] or a limit is negative
        """
        for itype, rate in self.rates.items():
            for value in (rate.day_trade, rate.swing_trade):
                if value < 0 or value > 1:
                    raise ValueError(f"Tax rate for {itype.value} must be between 0 and 1")
        if self.carried_loss_factor < 0 or self.carried_loss_factor > 1:
            raise ValueError("Carried loss factor must be between 0 and 1")
        if self.swing_exemption_limit < 0:
            raise ValueError("Swing exemption limit must be non-negative")

    def rate_for(self, instrument_type: InstrumentType, day_trade: bool) -> Decimal:
        """Tax rate for an instrument type and modality."""
        rate = self.rates[instrument_type]
        return rate.day_trade if day_trade else rate.swing_trade

    def calculate_tax(self, operations: Iterable[Operation]) -> TaxLiability:
        """
        Calculate the tax liability of an operation history.

        Day-trade operations are netted per date and instrument; swing-trade
        operations are summed per instrument type across the history. Each
        (type, modality) bucket is taxed at its rate, negative buckets owe
        nothing. The carried loss is ``max(0, -(day + swing) * factor)``,
        an advisory figure.

        Args:
            operations: Operation history; operations outside recognized
                blocks are ignored

        Returns:
            TaxLiability rounded to R$ 0.01
        """
        results = compute_trade_results(valid_operations(operations))

        day_trade_tax = ZERO
        swing_trade_tax = ZERO
        by_type: Dict[InstrumentType, TypeResult] = {}

        for itype, (dt_result, sw_result) in results.by_type.items():
            dt_tax = max(ZERO, dt_result) * self.rate_for(itype, day_trade=True)
            sw_tax = max(ZERO, sw_result) * self.rate_for(itype, day_trade=False)
            day_trade_tax += dt_tax
            swing_trade_tax += sw_tax
            by_type[itype] = TypeResult(money(dt_tax), money(sw_tax))

        carried_loss = max(ZERO, -(results.day_trade + results.swing_trade) * self.carried_loss_factor)

        liability = TaxLiability(
            day_trade=money(day_trade_tax),
            swing_trade=money(swing_trade_tax),
            carried_loss=money(carried_loss),
            by_instrument_type=by_type,
            day_trade_result=money(results.day_trade),
            swing_trade_result=money(results.swing_trade),
            results_by_instrument_type=results.rounded_by_type(),
        )

        logger.info(f"Tax calculation: day trade R$ {liability.day_trade:,.2f}, "
                    f"swing trade R$ {liability.swing_trade:,.2f}, "
                    f"carried loss R$ {liability.carried_loss:,.2f}")
        return liability

    def swing_exemption_status(self, operations: Iterable[Operation]) -> List[ExemptionStatus]:
        """
        Check the monthly swing-trade exemption.

        Swing-trade gains are exempt in months where the disposal value
        (swing-trade sales) of eligible instrument types stays at or below
        the limit.

        Args:
            operations: Operation history

        Returns:
            One ExemptionStatus per month with operations, in month order
        """
        return swing_exemption_status(operations, self.swing_exemption_limit, self.exemption_eligible_types)


def swing_exemption_status(operations: Iterable[Operation],
                           limit: Decimal = Decimal("20000"),
                           eligible_types: Sequence[InstrumentType] = (InstrumentType.STOCK,)) -> List[ExemptionStatus]:
    """
    Per-month swing-trade exemption status.

    Args:
        operations: Operation history
        limit: Monthly disposal threshold in BRL
        eligible_types: Instrument types the exemption applies to

    Returns:
        ExemptionStatus list ordered by month
    """
    limit = Decimal(str(limit))
    disposals: Dict[str, Decimal] = OrderedDict()

    for op in sorted(valid_operations(operations), key=lambda o: o.trade_date):
        month = reference_month(op.trade_date)
        disposals.setdefault(month, ZERO)
        if not op.is_day_trade and not op.is_buy and op.instrument_type in eligible_types:
            disposals[month] += op.total_value

    statuses = []
    for month, disposal_value in disposals.items():
        statuses.append(ExemptionStatus(
            month=month,
            disposal_value=money(disposal_value),
            limit=money(limit),
            exempt=disposal_value <= limit,
        ))
    return statuses


def calculate_tax(operations: Iterable[Operation], config: Optional[Dict[str, Any]] = None) -> TaxLiability:
    """
    Calculate the tax liability with default (or given) settings.

    Args:
        operations: Operation history
        config: Optional configuration dictionary

    Returns:
        TaxLiability
    """
    return TaxCalculator(config=config if config is not None else {}).calculate_tax(operations)
