import logging
import time
from typing import Any, Callable, Dict, Type

from api.metrics import metrics
from ingest.messages import (
    ConidMapping,
    FlowMessage,
    MalformedMessage,
    OptionQuote,
    TradeArrival,
    TradingStats,
    UnderlyingQuote,
    UnknownEvent,
    parse_message,
)
from orchestration.session import FlowSession

logger = logging.getLogger(__name__)


class EventRouter:
    """Decode inbound frames and apply each one to the session, one at a time."""

    def __init__(self, session: FlowSession):
        self.session = session
        self._handlers: Dict[Type, Callable[[Any], None]] = {
            ConidMapping: self._on_mapping,
            TradeArrival: self._on_trade,
            OptionQuote: self._on_option_quote,
            UnderlyingQuote: self._on_underlying_quote,
            TradingStats: self._on_stats,
            UnknownEvent: self._on_unknown,
        }

    async def on_message(self, raw: Any) -> None:
        self.route(raw)

    def route(self, raw: Any) -> bool:
        """Apply one frame; returns False when it was dropped or ignored."""
        try:
            message = parse_message(raw)
        except MalformedMessage as exc:
            logger.warning("Dropping malformed message: %s", exc)
            metrics.record_drop('malformed')
            return False
        return self.dispatch(message)

    def dispatch(self, message: FlowMessage) -> bool:
        handler = self._handlers.get(type(message))
        if handler is None:
            logger.error("No handler registered for %s", type(message).__name__)
            return False
        event_type = type(message).__name__
        started = time.perf_counter()
        try:
            applied = handler(message)
        except Exception:
            logger.exception("Flow handler %s failed", event_type)
            metrics.record_handler_error(event_type)
            return False
        finally:
            metrics.observe_dispatch(time.perf_counter() - started)
        if applied is False:
            return False
        metrics.record_event(event_type)
        return True

    def _on_mapping(self, message: ConidMapping) -> None:
        self.session.apply_mapping(message.conid, message.descriptor)

    def _on_trade(self, message: TradeArrival) -> None:
        self.session.apply_trade(message.event)

    def _on_option_quote(self, message: OptionQuote) -> None:
        self.session.apply_option_quote(message.quote)

    def _on_underlying_quote(self, message: UnderlyingQuote) -> None:
        self.session.apply_underlying_quote(message.quote)

    def _on_stats(self, message: TradingStats) -> None:
        self.session.apply_stats(message.stats)

    def _on_unknown(self, message: UnknownEvent) -> bool:
        logger.debug("Ignoring unknown event type %s", message.type)
        metrics.record_drop('unknown_type')
        return False
