"""
Settlement Note Parser

Turns the raw text of one brokerage note into a SettlementNote plus an
extraction summary for the user:
1. Rejects documents without text (the only hard failure)
2. Locates recognized sections (block-scoped asset scan)
3. Extracts structured operations line by line
4. Corrects and validates codes against the B3 registry
5. Keeps only operations inside recognized sections
6. Marks day trades, derives fees, results and dates
7. Reports yield problems as discrepancies instead of raising

"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from notes_engine.block_extractor import BlockExtraction, extract_assets
from notes_engine.classifier import classify, is_ticker_shaped
from notes_engine.config import load_config
from notes_engine.errors import EmptyDocumentError, ExtractionEmptyError
from notes_engine.fees import NoteCostCalculator, read_stated_fees
from notes_engine.market_utils import (ZERO, calculate_settlement_date, market_today, money,
                                       parse_br_number, parse_note_date, reference_month)
from notes_engine.models import DocumentText, ExtractionSummary, Operation, SettlementNote
from notes_engine.operation_extractor import OperationExtractor, mark_day_trades
from notes_engine.reconciliation import reconcile
from notes_engine.registry import InstrumentRegistry, create_registry

# Configure logging
logger = logging.getLogger(__name__)

KNOWN_BROKERS = (
    ("XP INVESTIMENTOS", "XP Investimentos"),
    ("CLEAR CORRETORA", "Clear Corretora"),
    ("RICO INVESTIMENTOS", "Rico Investimentos"),
    ("BTG PACTUAL", "BTG Pactual"),
    ("INTER DTVM", "Inter DTVM"),
    ("NU INVEST", "Nu Invest"),
    ("GENIAL INVESTIMENTOS", "Genial Investimentos"),
    ("TORO INVESTIMENTOS", "Toro Investimentos"),
    ("MODAL DTVM", "Modal DTVM"),
    ("ÁGORA INVESTIMENTOS", "Ágora Investimentos"),
    ("AGORA INVESTIMENTOS", "Ágora Investimentos"),
)

STATED_OPERATIONS_VALUE = re.compile(
    r"VALOR\s+DAS\s+OPERA[CÇ][OÕ]ES\D{0,40}?(\d{1,3}(?:\.\d{3})*,\d{2})"
)
VALUE_TOLERANCE = Decimal("0.01")


@dataclass
class ParseOutcome:
    """Parsed note (None when nothing usable was read) and its summary."""
    note: Optional[SettlementNote]
    summary: ExtractionSummary

    @property
    def success(self) -> bool:
        return self.summary.success


def note_id_from_filename(filename: str) -> str:
    """Derive the note identifier from a document file name."""
    return Path(filename).stem


def detect_broker(raw_text: str, default: str) -> str:
    """Broker name printed on the note, or the default."""
    upper = raw_text.upper()
    for needle, name in KNOWN_BROKERS:
        if needle in upper:
            return name
    return default


def _line_end(text: str, offset: int) -> int:
    end = text.find("\n", offset)
    return len(text) if end == -1 else end


class SettlementNoteParser:
    """
    Settlement note parser.

    Features:
    - Block-scoped validation of extracted operations
    - B3 registry correction and filtering
    - Note fees (stated or derived), results and settlement date
    - Structured summary with discrepancy flags
    """

    def __init__(self,
                 config_path: str = "config/settings.yaml",
                 config: Optional[Dict[str, Any]] = None,
                 registry: Optional[InstrumentRegistry] = None,
                 strict: bool = False):
        """
        Initialize the parser.

        Args:
            config_path: Path to configuration file (used when no config is given)
            config: Already loaded configuration dictionary
            registry: Instrument registry (default: built from config)
            strict: Raise ExtractionEmptyError when no recognized section exists
        """
        self.config = config if config is not None else load_config(config_path)
        market_config = self.config.get('market', {}) or {}
        self.timezone = market_config.get('timezone', 'America/Sao_Paulo')
        self.settlement_days = int(market_config.get('settlement_days', 2))
        self.default_broker = market_config.get('default_broker', 'XP Investimentos')

        self.registry = registry or create_registry(self.config)
        self.cost_calculator = NoteCostCalculator(config=self.config)
        self.strict = strict

    def parse(self,
              document: DocumentText,
              note_id: str,
              received_at: Optional[datetime] = None,
              broker: Optional[str] = None) -> ParseOutcome:
        """
        Parse one settlement note.

        Args:
            document: Text handed over by the extraction collaborator
            note_id: Note identifier (usually from the file name)
            received_at: Receipt time, fallback for the trading date
            broker: Broker name overriding detection

        Returns:
            ParseOutcome with the note (None on failure) and the summary

        Raises:
            EmptyDocumentError: If the document has no text at all
            ExtractionEmptyError: In strict mode, if no recognized section exists
        """
        text = document.text or ""
        if not text.strip():
            logger.error(f"Note {note_id}: extraction returned no text")
            raise EmptyDocumentError(f"Document {note_id} yielded no text")

        received_date = market_today(received_at, self.timezone)

        blocks = extract_assets(text, self.registry)
        if self.strict and not blocks.block_offsets:
            raise ExtractionEmptyError(note_id)

        extractor = OperationExtractor(self.cost_calculator)
        extracted = extractor.extract(text, default_date=received_date)

        operations, unrecognized = self._validate(extracted, text, blocks)
        block_found = blocks.was_in_recognized_block or bool(operations)

        summary = self._summarize(document, text, blocks, operations, block_found,
                                  extractor.skipped_lines, unrecognized)

        if not summary.success:
            logger.warning(f"Note {note_id}: could not read any operation "
                           f"(block found: {block_found}, assets: {len(summary.assets)})")
            return ParseOutcome(note=None, summary=summary)

        note = self._build_note(note_id, document, text, operations, received_date, broker)
        logger.info(f"Note {note_id}: {len(operations)} operations, "
                    f"{len(summary.assets)} assets, total R$ {note.total_value:,.2f}")
        return ParseOutcome(note=note, summary=summary)

    def _validate(self, extracted: List[Operation], text: str, blocks: BlockExtraction):
        """Correct codes, drop unknown assets and operations outside any block."""
        first_block = blocks.first_block_offset()
        operations: List[Operation] = []
        unrecognized: List[str] = []

        for op in extracted:
            code = op.asset_code
            if not is_ticker_shaped(code):
                code = self.registry.correct(code)
            if code != op.asset_code:
                logger.info(f"Asset code {op.asset_code} corrected to {code}")
                op = replace(op, asset_code=code, instrument_type=classify(code))

            if not self.registry.exists(code):
                logger.warning(f"Asset {code} not found in B3 list - ignored")
                if code not in unrecognized:
                    unrecognized.append(code)
                continue

            in_block = first_block is not None and first_block < _line_end(text, op.source_offset)
            if not in_block:
                logger.info(f"Operation on {code} outside any recognized section - ignored")
                continue

            operations.append(replace(op, is_in_block=True))

        return mark_day_trades(operations), unrecognized

    def _summarize(self, document: DocumentText, text: str, blocks: BlockExtraction,
                   operations: List[Operation], block_found: bool, skipped_lines: int,
                   unrecognized: List[str]) -> ExtractionSummary:
        if operations:
            assets = list(dict.fromkeys(op.asset_code for op in operations))
        else:
            assets = blocks.codes

        type_counts = Counter(op.instrument_type for op in operations)
        asset_type_counts = [{'type': itype, 'count': count} for itype, count in type_counts.items()]

        discrepancies = self._discrepancies(text, blocks, operations)

        summary = ExtractionSummary(
            success=block_found and len(operations) > 0,
            method=document.extraction_method,
            assets=assets,
            asset_type_counts=asset_type_counts,
            total_operations=len(operations),
            block_found=block_found,
            discrepancies=discrepancies,
            direct_extraction=bool(operations),
            skipped_lines=skipped_lines,
            unrecognized_assets=unrecognized,
        )

        if discrepancies:
            logger.warning(f"Discrepancies detected: {discrepancies}")
        return summary

    def _discrepancies(self, text: str, blocks: BlockExtraction,
                       operations: List[Operation]) -> Optional[Dict[str, bool]]:
        """Compare the note's own totals with what was extracted."""
        if not operations:
            return None

        flags = {}
        stated = STATED_OPERATIONS_VALUE.search(text.upper())
        if stated:
            stated_value = parse_br_number(stated.group(1))
            extracted_value = sum((op.total_value for op in operations), ZERO)
            if stated_value is not None and abs(stated_value - extracted_value) > VALUE_TOLERANCE:
                flags['total_value_mismatch'] = True

        operation_assets = {op.asset_code for op in operations}
        if blocks.assets and len(set(blocks.codes)) != len(operation_assets):
            flags['share_count_mismatch'] = True

        return flags or None

    def _build_note(self, note_id: str, document: DocumentText, text: str,
                    operations: List[Operation], received_date: date,
                    broker: Optional[str]) -> SettlementNote:
        trade_date = min(op.trade_date for op in operations) if operations else (
            parse_note_date(text) or received_date)

        fees = self.cost_calculator.note_fees(operations, read_stated_fees(text))
        results = reconcile(operations)

        return SettlementNote(
            note_id=note_id,
            trade_date=trade_date,
            reference_month=reference_month(trade_date),
            settlement_date=calculate_settlement_date(trade_date, self.settlement_days),
            broker=broker or detect_broker(text, self.default_broker),
            total_value=money(sum((op.total_value for op in operations), ZERO)),
            operations=tuple(operations),
            day_trade_result=results.day_trade_result,
            swing_trade_result=results.swing_trade_result,
            result_by_instrument_type=results.result_by_instrument_type,
            fees=fees,
            extraction_method=document.extraction_method,
        )
