"""
Known-Instrument Registry

Static catalog of B3 codes plus a correction map from company names and
common misspellings to tickers. The registry is built once and never
modified; extending it from configuration produces a new instance.

Options and futures are not catalogued one by one: an option series is
known when its 4-letter root belongs to a catalogued code, and a futures
contract when its 3-letter root is a catalogued futures root.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from notes_engine.classifier import FUTURE_PATTERN, FUTURES_ROOTS, OPTION_PATTERN, is_ticker_shaped, normalize_code

# Shorter alias keys only match exactly
MIN_ALIAS_SUBSTRING = 4

# Configure logging
logger = logging.getLogger(__name__)

B3_CODES: Tuple[str, ...] = (
    # Stocks and units
    'ABEV3', 'ALPA4', 'AMER3', 'ASAI3', 'AZUL4', 'B3SA3', 'BBAS3', 'BBDC3', 'BBDC4', 'BBSE3',
    'BEEF3', 'BPAC11', 'BRAP4', 'BRFS3', 'BRKM5', 'BRML3', 'CASH3', 'CCRO3', 'CIEL3', 'CMIG4',
    'CMIN3', 'COGN3', 'CPFE3', 'CPLE6', 'CRFB3', 'CSAN3', 'CSNA3', 'CVCB3', 'CYRE3', 'DXCO3',
    'EGIE3', 'ELET3', 'ELET6', 'EMBR3', 'ENBR3', 'ENEV3', 'ENGI11', 'EQTL3', 'EZTC3', 'FLRY3',
    'GGBR4', 'GOAU4', 'GOLL4', 'HAPV3', 'HYPE3', 'IGTI11', 'IRBR3', 'ITSA4', 'ITUB4', 'JBSS3',
    'JHSF3', 'KLBN11', 'LCAM3', 'LWSA3', 'MGLU3', 'MRFG3', 'MRVE3', 'MULT3', 'NTCO3', 'PCAR3',
    'PETR3', 'PETR4', 'PETZ3', 'POSI3', 'PRIO3', 'QUAL3', 'RADL3', 'RAIL3', 'RAIZ4', 'RDOR3',
    'RENT3', 'RRRP3', 'SANB11', 'SBSP3', 'SLCE3', 'SMTO3', 'SOMA3', 'SUZB3', 'TAEE11', 'TIMS3',
    'TOTS3', 'UGPA3', 'USIM5', 'VALE3', 'VBBR3', 'VIIA3', 'VIVT3', 'WEGE3', 'YDUQ3',
    # Real estate funds
    'HGLG11', 'KNRI11', 'MXRF11', 'XPML11', 'VISC11', 'HGBR11', 'BCFF11', 'XPLG11', 'KNCR11',
    'HGRU11', 'BTLG11', 'VGIR11',
    # ETFs
    'BOVA11', 'IVVB11', 'SMAL11', 'HASH11', 'ECOO11', 'BBSD11', 'XINA11',
)

NAME_ALIASES: Mapping[str, str] = MappingProxyType({
    'PETROBRAS': 'PETR4',
    'PETROBRAS PN': 'PETR4',
    'PETROBRAS ON': 'PETR3',
    'PETRO4': 'PETR4',
    'VALE': 'VALE3',
    'VALE ON': 'VALE3',
    'ITAU': 'ITUB4',
    'ITAU UNIBANCO': 'ITUB4',
    'ITAUSA': 'ITSA4',
    'BRADESCO': 'BBDC4',
    'BANCO DO BRASIL': 'BBAS3',
    'AMBEV': 'ABEV3',
    'MAGAZINE LUIZA': 'MGLU3',
    'MAGALU': 'MGLU3',
    'WEG': 'WEGE3',
    'B3': 'B3SA3',
    'SUZANO': 'SUZB3',
    'GERDAU': 'GGBR4',
    'ELETROBRAS': 'ELET3',
    'LOCALIZA': 'RENT3',
    'EMBRAER': 'EMBR3',
    'SABESP': 'SBSP3',
    'TAESA': 'TAEE11',
    'KLABIN': 'KLBN11',
    'SANTANDER': 'SANB11',
    'BTG PACTUAL': 'BPAC11',
})


class InstrumentRegistry:
    """
    Immutable lookup table of known B3 instruments.

    Features:
    - O(1) membership checks on a frozenset catalog
    - Deterministic scan order for fuzzy corrections
    - Read-only alias map for company names and misspellings
    """

    def __init__(self,
                 codes: Iterable[str] = B3_CODES,
                 aliases: Optional[Mapping[str, str]] = None,
                 futures_roots: Iterable[str] = FUTURES_ROOTS):
        ordered = []
        seen = set()
        for code in codes:
            normalized = normalize_code(code)
            if normalized and normalized not in seen:
                seen.add(normalized)
                ordered.append(normalized)

        self._ordered_codes: Tuple[str, ...] = tuple(ordered)
        self._codes = frozenset(ordered)
        self._roots = frozenset(code[:4] for code in ordered)
        self._futures_roots = frozenset(futures_roots)

        alias_source = NAME_ALIASES if aliases is None else aliases
        self._aliases: Mapping[str, str] = MappingProxyType({
            " ".join(name.upper().split()): normalize_code(code)
            for name, code in alias_source.items()
        })
        # Longest names first so "ITAUSA" wins over "ITAU"
        self._alias_scan: Tuple[Tuple[str, str], ...] = tuple(sorted(
            ((name, ticker) for name, ticker in self._aliases.items() if len(name) >= MIN_ALIAS_SUBSTRING),
            key=lambda item: (-len(item[0]), item[0]),
        ))

    def __contains__(self, code: Any) -> bool:
        return self.exists(code)

    def __len__(self) -> int:
        return len(self._codes)

    def codes(self) -> Tuple[str, ...]:
        """Catalogued codes in catalog order."""
        return self._ordered_codes

    def exists(self, code: Any) -> bool:
        """
        Check whether a code is a known B3 instrument.

        Args:
            code: Ticker code

        Returns:
            True when catalogued, or an option/futures series on a known root
        """
        normalized = normalize_code(code)
        if not normalized:
            return False

        if normalized in self._codes:
            return True

        option_match = OPTION_PATTERN.fullmatch(normalized)
        if option_match and option_match.group(1) in self._roots:
            return True

        if FUTURE_PATTERN.fullmatch(normalized) and normalized[:3] in self._futures_roots:
            return True

        return False

    def correct(self, code: Any) -> str:
        """
        Best-effort correction of a code or company name into a ticker.

        Never raises: when nothing matches, the normalized input is returned
        and a warning is logged so later stages can treat it as unknown.

        Args:
            code: Ticker, misspelled ticker or company name

        Returns:
            Corrected ticker, or the normalized input
        """
        if not isinstance(code, str):
            logger.warning(f"Cannot correct non-string asset code {code!r}")
            return ""

        spaced = " ".join(code.upper().split())
        normalized = spaced.replace(" ", "")
        if not normalized:
            return ""

        if self.exists(normalized):
            return normalized

        if spaced in self._aliases:
            return self._aliases[spaced]

        # A well-formed ticker missing from the catalog is reported, not guessed
        if is_ticker_shaped(normalized):
            logger.warning(f"Asset {normalized} not found in B3 registry - kept uncorrected")
            return normalized

        for name, ticker in self._alias_scan:
            if name in spaced or (len(spaced) >= MIN_ALIAS_SUBSTRING and spaced in name):
                logger.debug(f"Corrected {code!r} to {ticker} via alias {name!r}")
                return ticker

        for candidate in self._ordered_codes:
            if candidate[:4] in normalized:
                logger.debug(f"Corrected {code!r} to {candidate} via root match")
                return candidate

        logger.warning(f"Asset {normalized} not found in B3 registry - kept uncorrected")
        return normalized

    def extended(self, extra_codes: Iterable[str] = (), extra_aliases: Optional[Mapping[str, str]] = None) -> "InstrumentRegistry":
        """Return a new registry with additional codes and aliases."""
        aliases = dict(self._aliases)
        aliases.update(extra_aliases or {})
        return InstrumentRegistry(
            codes=self._ordered_codes + tuple(extra_codes),
            aliases=aliases,
            futures_roots=self._futures_roots,
        )


DEFAULT_REGISTRY = InstrumentRegistry()


def create_registry(config: Optional[Dict[str, Any]] = None) -> InstrumentRegistry:
    """
    Create an InstrumentRegistry with optional configuration.

    Args:
        config: Optional configuration dictionary (``registry`` section)

    Returns:
        DEFAULT_REGISTRY, or an extended copy when the config adds entries
    """
    if not config:
        return DEFAULT_REGISTRY

    registry_config = config.get('registry', {}) or {}
    extra_codes = registry_config.get('extra_codes') or []
    extra_aliases = registry_config.get('extra_aliases') or {}
    if not extra_codes and not extra_aliases:
        return DEFAULT_REGISTRY

    logger.info(f"Extending B3 registry with {len(extra_codes)} codes and {len(extra_aliases)} aliases")
    return DEFAULT_REGISTRY.extended(extra_codes, extra_aliases)
