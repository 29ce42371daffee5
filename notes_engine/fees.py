"""
Settlement Note Cost Calculator for Brazilian Market

Fee calculation for B3 brokerage notes:
- Brokerage fee per operation with minimum charge enforcement
- B3 settlement fee (taxa de liquidação) on the note volume
- B3 registration fee (taxa de registro) on the note volume
- Fees printed on the note take precedence over derived values

Compliance: B3 fee structure
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from notes_engine.config import load_config
from notes_engine.market_utils import ZERO, money, parse_br_number
from notes_engine.models import NoteFees, Operation

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_COSTS = {
    'brokerage_rate': 0.0025,      # 0.25%
    'min_brokerage': 5.00,         # R$ 5.00
    'settlement_rate': 0.00025,    # 0.025%
    'registration_rate': 0.00005,  # 0.005%
}

_AMOUNT = r"(\d{1,3}(?:\.\d{3})*,\d{2})"
STATED_FEE_PATTERNS = {
    'brokerage_fee': re.compile(r"(?:(?<!NOTA DE )CORRETAGEM|TAXA\s+OPERACIONAL)\D{0,40}?" + _AMOUNT),
    'settlement_fee': re.compile(r"TAXA\s+DE\s+LIQUIDA[CÇ][AÃ]O\D{0,40}?" + _AMOUNT),
    'registration_fee': re.compile(r"TAXA\s+DE\s+REGISTRO\D{0,40}?" + _AMOUNT),
}


@dataclass(frozen=True)
class StatedFees:
    """Fees printed on the note, None where the note is silent."""
    brokerage_fee: Optional[Decimal] = None
    settlement_fee: Optional[Decimal] = None
    registration_fee: Optional[Decimal] = None


def read_stated_fees(raw_text: str) -> StatedFees:
    """
    Read fee amounts printed in the note's financial summary.

    Args:
        raw_text: Document text

    Returns:
        StatedFees with the amounts found
    """
    upper = (raw_text or "").upper()
    found = {}
    for name, pattern in STATED_FEE_PATTERNS.items():
        match = pattern.search(upper)
        if match:
            found[name] = parse_br_number(match.group(1))
    return StatedFees(**found)


class NoteCostCalculator:
    """
    Cost calculator for settlement notes.

    Features:
    - Loads cost parameters from configuration
    - Derives per-operation brokerage (rate with a minimum charge)
    - Derives note-level settlement and registration fees
    - Validates cost parameters
    """

    def __init__(self, config_path: str = "config/settings.yaml", config: Optional[Dict[str, Any]] = None):
        """
        Initialize the calculator.

        Args:
            config_path: Path to configuration file (used when no config is given)
            config: Already loaded configuration dictionary
        """
        self.config = config if config is not None else load_config(config_path)
        costs = dict(DEFAULT_COSTS)
        costs.update(self.config.get('costs', {}) or {})
        self.cost_params = {name: Decimal(str(value)) for name, value in costs.items()
                            if name in DEFAULT_COSTS}

        self._validate_cost_parameters()
        logger.debug(f"Note cost calculator initialized: {self.cost_params}")

    def _validate_cost_parameters(self) -> None:
        """
        Validate cost parameters for logical consistency.

        Raises:
            ValueError: If parameters are invalid
        """
        for name, value in self.cost_params.items():
            if value < 0:
                raise ValueError(f"Cost parameter {name} must be non-negative")
        for name in ('brokerage_rate', 'settlement_rate', 'registration_rate'):
            if self.cost_params[name] > 1:
                raise ValueError(f"Cost parameter {name} must be a fraction (<= 1)")

    def brokerage_fee(self, total_value: Decimal) -> Decimal:
        """
        Brokerage for one operation: rate on the total, at least the minimum.

        Args:
            total_value: Operation total in BRL

        Returns:
            Fee rounded to R$ 0.01
        """
        fee = total_value * self.cost_params['brokerage_rate']
        return money(max(fee, self.cost_params['min_brokerage']))

    def note_fees(self, operations: Iterable[Operation], stated: Optional[StatedFees] = None) -> NoteFees:
        """
        Fees for a whole note.

        Args:
            operations: Valid operations of the note
            stated: Fees printed on the note, when available

        Returns:
            NoteFees with the total
        """
        operations = list(operations)
        stated = stated or StatedFees()
        volume = sum((op.total_value for op in operations), ZERO)

        brokerage = stated.brokerage_fee
        if brokerage is None:
            brokerage = sum((op.brokerage_fee for op in operations), ZERO)

        settlement = stated.settlement_fee
        if settlement is None:
            settlement = volume * self.cost_params['settlement_rate']

        registration = stated.registration_fee
        if registration is None:
            registration = volume * self.cost_params['registration_rate']

        brokerage, settlement, registration = money(brokerage), money(settlement), money(registration)
        return NoteFees(
            brokerage_fee=brokerage,
            settlement_fee=settlement,
            registration_fee=registration,
            total=brokerage + settlement + registration,
        )

    def get_cost_parameters(self) -> Dict[str, Decimal]:
        """Current cost parameters, for reference."""
        return dict(self.cost_params)
