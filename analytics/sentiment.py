import logging
import math
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Tuple

from config import config
from state.records import TradeRecord


logger = logging.getLogger(__name__)

BULL = 'BULL'
BEAR = 'BEAR'
NEUTRAL = 'NEUTRAL'

_DIRECTION_SIGN = {
    'BTO': 1,
    'BTC': 1,
    'STO': -1,
    'STC': -1,
}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _signed_exposure(record: TradeRecord) -> Optional[float]:
    """delta * contracts * sign(direction), or None when the trade does not count."""
    sign = _DIRECTION_SIGN.get(record.direction)
    delta = record.delta
    size = record.size
    if sign is None or not _is_number(delta) or not _is_number(size):
        return None
    return delta * size * sign


def delta_contribution(record: TradeRecord) -> float:
    """Signed delta exposure of one trade; 0 for unknown directions or missing inputs."""
    exposure = _signed_exposure(record)
    return 0.0 if exposure is None else exposure


def classify(score: float, threshold: float = 0.5) -> str:
    if score > threshold:
        return BULL
    if score < -threshold:
        return BEAR
    return NEUTRAL


class SentimentAggregator:
    """Running delta-weighted flow score over the visible trade window.

    Each contribution is held as the exact rational value of its float, so
    adding a trade on arrival and subtracting it again on eviction leaves no
    residue; the running totals always match ``recompute`` over the same window
    and are rounded to float only when read.
    """

    def __init__(self, threshold: Optional[float] = None):
        sentiment_cfg = config.get('sentiment', {})
        self.threshold = float(threshold if threshold is not None else sentiment_cfg.get('threshold', 0.5))
        self._symbol_totals: Dict[str, Fraction] = {}
        self._symbol_counts: Dict[str, int] = {}
        self._total = Fraction(0)

    def _contribution(self, record: TradeRecord) -> Tuple[Optional[str], Optional[Fraction]]:
        if not record.symbol:
            return None, None
        exposure = _signed_exposure(record)
        if exposure is None:
            return record.symbol, None
        return record.symbol, Fraction(exposure)

    def add(self, record: TradeRecord) -> None:
        symbol, value = self._contribution(record)
        if symbol is None or value is None:
            return
        self._symbol_totals[symbol] = self._symbol_totals.get(symbol, Fraction(0)) + value
        self._symbol_counts[symbol] = self._symbol_counts.get(symbol, 0) + 1
        self._total += value

    def remove(self, record: TradeRecord) -> None:
        symbol, value = self._contribution(record)
        if symbol is None or value is None:
            return
        count = self._symbol_counts.get(symbol, 0)
        if count <= 0:
            logger.warning("Sentiment eviction for %s without a recorded contribution", symbol)
            return
        self._total -= value
        if count == 1:
            self._symbol_counts.pop(symbol, None)
            self._symbol_totals.pop(symbol, None)
        else:
            self._symbol_counts[symbol] = count - 1
            self._symbol_totals[symbol] -= value

    def reset(self) -> None:
        self._symbol_totals.clear()
        self._symbol_counts.clear()
        self._total = Fraction(0)

    def rebuild(self, records: Iterable[TradeRecord]) -> None:
        self.reset()
        for record in records:
            self.add(record)

    @property
    def total_score(self) -> float:
        return float(self._total)

    @property
    def symbol_scores(self) -> Dict[str, float]:
        return {symbol: float(total) for symbol, total in self._symbol_totals.items()}

    def ranked_symbols(self) -> List[Tuple[str, float]]:
        return sorted(self.symbol_scores.items(), key=lambda item: abs(item[1]), reverse=True)

    def overall(self) -> str:
        return classify(self.total_score, self.threshold)

    def recompute(self, records: Iterable[TradeRecord]) -> Tuple[Dict[str, float], float]:
        """Full pass over ``records`` without touching the running state."""
        totals: Dict[str, Fraction] = {}
        total = Fraction(0)
        for record in records:
            symbol, value = self._contribution(record)
            if symbol is None or value is None:
                continue
            totals[symbol] = totals.get(symbol, Fraction(0)) + value
            total += value
        return {s: float(v) for s, v in totals.items()}, float(total)

    def to_dict(self) -> Dict:
        return {
            'totalScore': self.total_score,
            'sentiment': self.overall(),
            'symbols': [
                {'symbol': symbol, 'score': score, 'sentiment': classify(score, self.threshold)}
                for symbol, score in self.ranked_symbols()
            ],
        }
