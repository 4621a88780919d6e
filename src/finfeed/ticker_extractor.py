# -*- coding: utf-8 -*-
"""Rule-based ticker extraction from headlines and summaries.

Five strategies run independently over the text and are merged by symbol,
keeping the highest confidence:

- ``$AAPL``                       -> 0.9  (``dollar_sign``)
- ``NASDAQ: AAPL``                -> 0.95 (``exchange_prefix``)
- ``AAPL shares`` / ``AAPL Inc``  -> 0.7  (``stock_suffix``)
- ``AAPL rises`` / ``AAPL falls`` -> 0.8  (``market_action``)
- bare ``AAPL`` on the allowlist  -> 0.3  (``standalone``)

The symbol itself is always matched case-sensitively (uppercase only);
exchange names and the trailing suffix/verb words use inline ``(?i:...)``
groups so "Nasdaq:" and "Shares" still match.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Pattern, Tuple

from .models import ExtractedTicker

# Tickers that are also everyday words.
COMMON_WORDS_BLACKLIST = frozenset(
    """
    A I AN IN IT ON AT BE DO GO HI NO OK SO TO UP US
    ALL AND ARE BUT FOR HAD HAS HER HIS HOW ITS NEW NOT NOW ONE
    OUR OUT SAW SAY SHE THAT THE THEY WAS WAY WHO WHY YES YOU
    """.split()
)

VALID_EXCHANGES = ("NASDAQ", "NYSE", "OTC", "AMEX")

MAJOR_TICKERS = frozenset(
    """
    AAPL MSFT GOOGL GOOG AMZN META TSLA NVDA JPM JNJ V PG UNH
    HD BAC XOM PFE CSCO ADBE NFLX CRM ORCL WMT DIS MA PYPL
    INTC T VZ KO PEP TMO ABT ABBV ACN COST LIN MDT NKE
    UPS LLY DHR WFC IBM TXN HON CVX MRK PLD AMGN COP NEE
    LOW ISRG SBUX AMD INTU GE DE MS GS CAT RTX BKNG AMAT
    AXP ADI SYK BLK GILD MDLZ CI EL EQIX TJX CDNS EOG SCHW
    SO SNPS PANW CMCSA MU ADP CSX BDX BIIB CL ITW CB ICE
    PGR USB APD NSC AON DUK LRCX FCX MCO MPC KMI ETN ECL
    EMR EXC AIG SPG ROK PH GD ORLY ADSK HCA CTAS FIS ANET
    MMM TGT SHW NOC LMT HUM DXCM O VLO BSX WM PNC ZTS
    CIEN D EQNR MCK COF ROP JCI SLB GM F BA RCL C DAL
    """.split()
)

FINANCIAL_CONTEXT_WORDS: Tuple[str, ...] = (
    "stock",
    "share",
    "price",
    "market",
    "trading",
    "investor",
    "portfolio",
    "dividend",
    "revenue",
    "earnings",
    "profit",
    "loss",
    "buy",
    "sell",
    "analyst",
    "rating",
    "target",
    "forecast",
    "guidance",
    "quarterly",
    "annual",
    "financial",
    "fiscal",
    "ipo",
    "merger",
    "acquisition",
)

_SYM = r"([A-Z]{1,5})"
_SUFFIX_WORDS = r"stock|shares|equity|corp|inc|ltd|co|company"
_ACTION_WORDS = (
    r"rises|falls|gains|drops|jumps|slides|surges|plunges|climbs|dips|"
    r"fluctuates|trades|moves|loses"
)
_EXCHANGES = "|".join(VALID_EXCHANGES)

# (compiled pattern, base confidence, context tag, allowlist-only)
TICKER_PATTERNS: Tuple[Tuple[Pattern[str], float, str, bool], ...] = (
    (re.compile(rf"(?<![\w$])\${_SYM}\b"), 0.9, "dollar_sign", False),
    (
        re.compile(rf"(?i:\b(?:{_EXCHANGES})\s*:\s*)\$?{_SYM}\b"),
        0.95,
        "exchange_prefix",
        False,
    ),
    (
        re.compile(rf"\b{_SYM}\s+(?i:(?:{_SUFFIX_WORDS}))\b"),
        0.7,
        "stock_suffix",
        False,
    ),
    (
        re.compile(rf"\b{_SYM}\s+(?i:(?:{_ACTION_WORDS}))\b"),
        0.8,
        "market_action",
        False,
    ),
    (re.compile(rf"\b{_SYM}\b"), 0.3, "standalone", True),
)

MIN_CONFIDENCE = 0.4
CONTEXT_WINDOW = 50


def _has_financial_context(text: str, index: int, window: int = CONTEXT_WINDOW) -> bool:
    ctx = text[max(0, index - window) : index + window].lower()
    return any(word in ctx for word in FINANCIAL_CONTEXT_WORDS)


def is_valid_symbol(symbol: str) -> bool:
    return 0 < len(symbol) <= 5 and symbol not in COMMON_WORDS_BLACKLIST


# (ticker, offset of the match in the scanned text)
_Candidate = Tuple[ExtractedTicker, int]


def _merge(candidates: Iterable[_Candidate]) -> List[ExtractedTicker]:
    """Keep the most confident hit per symbol; order by confidence, then position."""
    best: Dict[str, ExtractedTicker] = {}
    first_pos: Dict[str, int] = {}
    for cand, pos in candidates:
        cur = best.get(cand.symbol)
        if cur is None or cand.confidence > cur.confidence:
            best[cand.symbol] = cand
        first_pos[cand.symbol] = min(pos, first_pos.get(cand.symbol, pos))
    return sorted(
        best.values(), key=lambda t: (-t.confidence, first_pos[t.symbol])
    )


def _scan(text: str, offset: int = 0) -> List[_Candidate]:
    if not text:
        return []
    clean = re.sub(r"\s+", " ", text).strip()
    found: List[_Candidate] = []
    for pattern, base, context, allowlist_only in TICKER_PATTERNS:
        for m in pattern.finditer(clean):
            symbol = m.group(1).upper().strip()
            if not is_valid_symbol(symbol):
                continue
            is_major = symbol in MAJOR_TICKERS
            if allowlist_only and not is_major:
                continue
            confidence = base
            if is_major:
                confidence += 0.2
            if _has_financial_context(clean, m.start()):
                confidence += 0.1
            if context == "standalone" and not is_major:
                confidence -= 0.1
            confidence = max(0.0, min(1.0, confidence))
            if confidence < MIN_CONFIDENCE:
                continue
            found.append(
                (
                    ExtractedTicker(symbol=symbol, confidence=confidence, context=context),
                    offset + m.start(1),
                )
            )
    return found


def extract_tickers(text: str) -> List[ExtractedTicker]:
    """Extract tickers from ``text`` sorted by descending confidence.

    Equal confidences keep the order the symbols appear in the text.

    >>> [(t.symbol, t.confidence) for t in extract_tickers("AAPL rises 5% as $MSFT also gains")]
    [('AAPL', 1.0), ('MSFT', 1.0)]
    """
    return _merge(_scan(text))


def filter_tickers_by_confidence(
    tickers: Iterable[ExtractedTicker], min_confidence: float = 0.5
) -> List[ExtractedTicker]:
    return [t for t in tickers if t.confidence >= min_confidence]


def get_top_tickers(
    tickers: Iterable[ExtractedTicker], count: int = 5
) -> List[ExtractedTicker]:
    return list(tickers)[: max(0, count)]


def extract_tickers_from_article(title: str, summary: str) -> List[ExtractedTicker]:
    """Title and summary are scanned separately so context windows never span both.

    Summary hits rank after title hits of the same confidence.
    """
    title = title or ""
    return _merge(_scan(title) + _scan(summary, offset=len(title) + 1))
