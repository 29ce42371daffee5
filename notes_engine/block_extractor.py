"""
Block-Scoped Text Extractor

Finds asset codes in settlement note text, considering only the spans that
start at a recognized section marker ("NEGOCIAÇÃO", "RESUMO DAS OPERAÇÕES",
...). Legal boilerplate and page footers outside those spans are full of
4-letter uppercase tokens, so matches outside any block are rejected.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from notes_engine.classifier import ETF_ALLOW_LIST, ETF_PATTERN, FUTURE_PATTERN, OPTION_PATTERN, REIT_PATTERN, STOCK_PATTERN
from notes_engine.models import InstrumentType
from notes_engine.registry import DEFAULT_REGISTRY, InstrumentRegistry

# Configure logging
logger = logging.getLogger(__name__)

SECTION_MARKERS: Tuple[str, ...] = (
    "NEGOCIAÇÃO",
    "NEGOCIACAO",
    "MERCADO",
    "ESPECIFICAÇÃO DO TÍTULO",
    "ESPECIFICACAO DO TITULO",
    "RESUMO DAS OPERAÇÕES",
    "RESUMO DAS OPERACOES",
    "TÍTULOS NEGOCIADOS",
    "TITULOS NEGOCIADOS",
    "COMPRAS",
    "VENDAS",
    "NOTA DE CORRETAGEM",
    "BOLSA DE VALORES",
    "OPÇÃO DE COMPRA",
    "OPCAO DE COMPRA",
    "OPÇÃO DE VENDA",
    "OPCAO DE VENDA",
    "NEGÓCIOS REALIZADOS",
    "NEGOCIOS REALIZADOS",
)

# Matchers run on every span, tagged with the type they look for
SPAN_MATCHERS = (
    (STOCK_PATTERN, InstrumentType.STOCK),
    (REIT_PATTERN, InstrumentType.REIT_FUND),
    (ETF_PATTERN, InstrumentType.ETF),
    (OPTION_PATTERN, InstrumentType.OPTION),
    (FUTURE_PATTERN, InstrumentType.FUTURE),
)


@dataclass(frozen=True)
class ExtractedAsset:
    """Asset code found inside a recognized block, tagged by its matcher."""
    code: str
    instrument_type: InstrumentType


@dataclass
class BlockExtraction:
    """
    Result of block-scoped asset extraction.

    Attributes:
        assets: Validated, de-duplicated assets in order of discovery
        was_in_recognized_block: At least one span produced a validated asset
        block_offsets: Sorted start offsets of every recognized marker
        rejected: Candidate codes dropped by the registry check
    """
    assets: List[ExtractedAsset] = field(default_factory=list)
    was_in_recognized_block: bool = False
    block_offsets: List[int] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)

    @property
    def codes(self) -> List[str]:
        return [asset.code for asset in self.assets]

    def first_block_offset(self) -> Optional[int]:
        """Offset of the earliest marker, None when the text has no block."""
        return self.block_offsets[0] if self.block_offsets else None


def find_block_offsets(text: str) -> List[int]:
    """
    Find the start offset of every occurrence of every section marker.

    Args:
        text: Raw note text (any case)

    Returns:
        Sorted list of unique offsets
    """
    upper_text = text.upper()
    offsets = set()
    for marker in SECTION_MARKERS:
        idx = upper_text.find(marker)
        while idx != -1:
            offsets.add(idx)
            idx = upper_text.find(marker, idx + 1)
    return sorted(offsets)


def extract_assets(raw_text: str, registry: Optional[InstrumentRegistry] = None) -> BlockExtraction:
    """
    Extract asset codes found inside recognized note sections.

    A text with no marker at all yields an empty result with
    ``was_in_recognized_block=False``; callers must treat that as a failure
    to read the document, not as a note without trades.

    Args:
        raw_text: Document text from the extraction collaborator
        registry: Instrument registry used to validate candidates

    Returns:
        BlockExtraction with assets and block offsets
    """
    registry = registry or DEFAULT_REGISTRY
    text = (raw_text or "").upper()

    offsets = find_block_offsets(text)
    if not offsets:
        logger.warning("No recognized section marker found in document text")
        return BlockExtraction()

    result = BlockExtraction(block_offsets=offsets)
    seen = set()
    rejected = set()

    for i, start in enumerate(offsets):
        end = offsets[i + 1] if i + 1 < len(offsets) else len(text)
        span = text[start:end]

        matches = []
        for pattern, instrument_type in SPAN_MATCHERS:
            for m in pattern.finditer(span):
                # allow-listed ETFs share the fund shape
                if instrument_type is InstrumentType.REIT_FUND and m.group(0) in ETF_ALLOW_LIST:
                    continue
                matches.append((m.group(0), instrument_type))

        for code, instrument_type in matches:
            if not registry.exists(code):
                if code not in rejected:
                    rejected.add(code)
                    result.rejected.append(code)
                    logger.info(f"Asset {code} not found in B3 registry - ignored")
                continue

            result.was_in_recognized_block = True
            if code not in seen:
                seen.add(code)
                result.assets.append(ExtractedAsset(code, instrument_type))

    logger.info(f"Assets found after validation: {len(result.assets)} "
                f"({len(offsets)} block markers, {len(result.rejected)} rejected)")
    return result
