import logging
import time
from typing import Any, Callable, Dict, List, Optional

from analytics.flow_filters import TradeFilter, sort_by_premium
from analytics.reconciler import PnL, PositionReconciler, current_underlying_price, underlying_change_pct
from analytics.sentiment import SentimentAggregator
from api.metrics import metrics
from config import config
from config.utils import get_config_section
from state.ledger import BoundedLedger
from state.mapping_resolver import InstrumentMappingResolver
from state.quote_store import QuoteStore
from state.records import InstrumentDescriptor, PrintRecord, QuoteSnapshot, TradeEvent, TradeRecord
from state.stats_mirror import StatsMirror


logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class FlowSession:
    """All per-session flow state: ledgers, quote stores, mapping table, aggregates.

    The event router is the only writer. Read-model accessors return copies so
    callers can never mutate a ledger behind the router's back.
    """

    def __init__(self, config_obj: Optional[Any] = None, clock: Callable[[], int] = _now_ms):
        self.config = config_obj or config
        ledger_cfg = get_config_section(self.config, 'ledgers')
        pnl_cfg = get_config_section(self.config, 'pnl')
        sentiment_cfg = get_config_section(self.config, 'sentiment')
        self._clock = clock

        self.mapping = InstrumentMappingResolver()
        self.trades: BoundedLedger[TradeRecord] = BoundedLedger('trades', ledger_cfg.get('trade_capacity', 200))
        self.prints: BoundedLedger[PrintRecord] = BoundedLedger('prints', ledger_cfg.get('print_capacity', 100))
        self.auto_trades: BoundedLedger[TradeRecord] = BoundedLedger(
            'auto_trades', ledger_cfg.get('auto_trade_capacity', 50)
        )
        self.option_quotes = QuoteStore('option')
        self.underlying_quotes = QuoteStore('underlying')
        self.stats = StatsMirror()

        self.reconciler = PositionReconciler(
            (self.trades, self.auto_trades),
            equity_multiplier=pnl_cfg.get('equity_multiplier'),
            futures_multiplier=pnl_cfg.get('futures_multiplier'),
        )
        self.sentiment = SentimentAggregator(threshold=sentiment_cfg.get('threshold'))

    # Writers ------------------------------------------------------------
    def apply_mapping(self, conid: int, descriptor: InstrumentDescriptor) -> None:
        self.mapping.upsert(conid, descriptor)

    def apply_trade(self, event: TradeEvent) -> TradeRecord:
        record = TradeRecord.open(event, received_at=self._clock())

        for evicted in self.trades.push(record):
            self.sentiment.remove(evicted)
        self.sentiment.add(record)

        self.prints.push(PrintRecord.from_event(event))
        if event.is_auto_trade:
            self.auto_trades.push(record.copy())

        metrics.update_ledger_depth(self.trades.name, len(self.trades))
        metrics.update_ledger_depth(self.prints.name, len(self.prints))
        metrics.update_ledger_depth(self.auto_trades.name, len(self.auto_trades))
        metrics.update_sentiment(self.sentiment.total_score)
        return record

    def apply_option_quote(self, quote: QuoteSnapshot) -> int:
        self.option_quotes.upsert(quote.conid, quote)
        marked = self.reconciler.on_quote(quote)
        metrics.record_marked(marked)
        metrics.update_quote_count(self.option_quotes.name, len(self.option_quotes))
        return marked

    def apply_underlying_quote(self, quote: QuoteSnapshot) -> None:
        self.underlying_quotes.upsert(quote.conid, quote)
        metrics.update_quote_count(self.underlying_quotes.name, len(self.underlying_quotes))

    def apply_stats(self, stats: Optional[Dict[str, Any]]) -> None:
        self.stats.replace(stats)

    def clear(self) -> None:
        """Drop ledgers, quotes and aggregates; the mapping table and stats stay."""
        self.trades.clear()
        self.prints.clear()
        self.auto_trades.clear()
        self.option_quotes.clear()
        self.underlying_quotes.clear()
        self.sentiment.reset()
        for ledger in (self.trades, self.prints, self.auto_trades):
            metrics.update_ledger_depth(ledger.name, 0)
        metrics.update_quote_count(self.option_quotes.name, 0)
        metrics.update_quote_count(self.underlying_quotes.name, 0)
        metrics.update_sentiment(0.0)
        logger.info("Session state cleared")

    # Read model ---------------------------------------------------------
    def resolve(self, conid: Any) -> InstrumentDescriptor:
        return self.mapping.resolve(conid)

    def trade_snapshot(self) -> List[TradeRecord]:
        return [record.copy() for record in self.trades]

    def auto_trade_snapshot(self) -> List[TradeRecord]:
        return [record.copy() for record in self.auto_trades]

    def print_snapshot(self) -> List[PrintRecord]:
        return self.prints.snapshot()

    def filtered_trades(self, trade_filter: Optional[TradeFilter] = None) -> List[TradeRecord]:
        records = self.trade_snapshot()
        if trade_filter is not None:
            records = trade_filter.apply(records)
        return sort_by_premium(records)

    def option_quote(self, conid: int) -> Optional[QuoteSnapshot]:
        return self.option_quotes.get(conid)

    def underlying_quote(self, conid: int) -> Optional[QuoteSnapshot]:
        return self.underlying_quotes.get(conid)

    def pnl(self, record: TradeRecord) -> PnL:
        return self.reconciler.pnl(record)

    def underlying_price(self, underlying_conid: Optional[int]) -> float:
        return current_underlying_price(self.underlying_quotes, underlying_conid)

    def underlying_change_pct(self, record: TradeRecord) -> Optional[float]:
        return underlying_change_pct(self.underlying_quotes, record)

    def latest_stats(self) -> Optional[Dict[str, Any]]:
        return self.stats.get()

    def describe_trade(self, record: TradeRecord) -> Dict[str, Any]:
        data = record.to_dict()
        data.update(self.pnl(record).to_dict())
        data['underlying'] = self.resolve(record.event.underlying_conid).to_dict()
        data['underlyingLast'] = self.underlying_price(record.event.underlying_conid)
        data['underlyingChangePct'] = self.underlying_change_pct(record)
        return data

    def describe_quotes(self) -> Dict[str, List[Dict[str, Any]]]:
        options = []
        for conid, quote in self.option_quotes.snapshot().items():
            descriptor = self.resolve(conid)
            entry = quote.to_dict()
            entry['mapping'] = descriptor.to_dict()
            entry['isOption'] = not descriptor.is_underlying
            options.append(entry)
        underlyings = []
        for conid, quote in self.underlying_quotes.snapshot().items():
            entry = quote.to_dict()
            entry['mapping'] = self.resolve(conid).to_dict()
            underlyings.append(entry)
        return {'options': options, 'underlyings': underlyings}

    def counts(self) -> Dict[str, int]:
        return {
            'stream': len(self.trades),
            'prints': len(self.prints),
            'quotes': len(self.option_quotes),
            'underlyingQuotes': len(self.underlying_quotes),
            'auto': len(self.auto_trades),
            'mappings': len(self.mapping),
        }
