import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from config import config
from state.ledger import BoundedLedger
from state.quote_store import QuoteStore
from state.records import FUTURES_OPTION, QuoteSnapshot, TradeRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PnL:
    dollar: float
    percent: float

    def to_dict(self):
        return {'dollarPnL': self.dollar, 'percentPnL': self.percent}


def _pct(change: float, basis: float) -> float:
    if not basis:
        return 0.0
    return change / basis * 100.0


class PositionReconciler:
    """Marks open trade records to the latest option quote and derives their P&L."""

    def __init__(self, ledgers: Iterable[BoundedLedger], equity_multiplier: Optional[float] = None,
                 futures_multiplier: Optional[float] = None):
        pnl_cfg = config.get('pnl', {})
        self.ledgers = list(ledgers)
        self.equity_multiplier = float(equity_multiplier or pnl_cfg.get('equity_multiplier', 100))
        self.futures_multiplier = float(futures_multiplier or pnl_cfg.get('futures_multiplier', 20))

    def on_quote(self, quote: QuoteSnapshot) -> int:
        """Apply ``quote.last`` to every matching record; returns how many were marked."""
        if quote.last is None:
            return 0
        marked = 0
        for ledger in self.ledgers:
            for record in ledger:
                if record.conid != quote.conid:
                    continue
                self.mark(record, quote.last)
                marked += 1
        if marked:
            logger.debug("Marked %s records for conid %s at %.4f", marked, quote.conid, quote.last)
        return marked

    @staticmethod
    def mark(record: TradeRecord, price: float) -> None:
        record.current_price = price
        record.price_change = price - record.initial_price
        record.price_change_pct = _pct(record.price_change, record.initial_price)

    def multiplier_for(self, record: TradeRecord) -> float:
        if record.multiplier:
            return float(record.multiplier)
        if record.asset_class == FUTURES_OPTION:
            return self.futures_multiplier
        return self.equity_multiplier

    def pnl(self, record: TradeRecord) -> PnL:
        current = record.current_price
        contracts = record.size or 1
        diff = current - record.initial_price
        return PnL(
            dollar=diff * contracts * self.multiplier_for(record),
            percent=_pct(diff, record.initial_price),
        )


def current_underlying_price(store: QuoteStore, underlying_conid: Optional[int]) -> float:
    if underlying_conid is None:
        return 0.0
    quote = store.get(underlying_conid)
    if quote is None or quote.last is None:
        return 0.0
    return quote.last


def underlying_change_pct(store: QuoteStore, record: TradeRecord) -> Optional[float]:
    """Move of the underlying since the trade printed, or None without both prices."""
    current = current_underlying_price(store, record.event.underlying_conid)
    reference = record.event.underlying_price
    if not current or not reference:
        return None
    return (current - reference) / reference * 100.0
