from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple


FUTURES_OPTION = 'FUTURES_OPTION'
EQUITY_OPTION = 'EQUITY_OPTION'


@dataclass(frozen=True)
class InstrumentDescriptor:
    """Static description of a contract, replaced wholesale on every mapping event."""

    symbol: str
    instrument_type: str
    right: Optional[str] = None
    strike: Optional[float] = None
    expiry: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> 'InstrumentDescriptor':
        strike = mapping.get('strike')
        return cls(
            symbol=str(mapping.get('symbol') or 'Unknown'),
            instrument_type=str(mapping.get('instrumentType') or mapping.get('type') or 'OPT'),
            right=mapping.get('right'),
            strike=float(strike) if isinstance(strike, (int, float)) and not isinstance(strike, bool) else None,
            expiry=mapping.get('expiry'),
        )

    @property
    def is_underlying(self) -> bool:
        return self.instrument_type == 'UNDERLYING'

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'symbol': self.symbol, 'instrumentType': self.instrument_type}
        if self.right is not None:
            data['right'] = self.right
        if self.strike is not None:
            data['strike'] = self.strike
        if self.expiry is not None:
            data['expiry'] = self.expiry
        return data


UNKNOWN_INSTRUMENT = InstrumentDescriptor(symbol='Unknown', instrument_type='OPT')


@dataclass(frozen=True)
class QuoteSnapshot:
    conid: int
    last: Optional[float]
    bid: Optional[float]
    ask: Optional[float]
    volume: Optional[float]
    timestamp: Optional[int]
    delta: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'conid': self.conid,
            'last': self.last,
            'bid': self.bid,
            'ask': self.ask,
            'volume': self.volume,
            'timestamp': self.timestamp,
        }
        if self.delta is not None:
            data['delta'] = self.delta
        return data


@dataclass(frozen=True)
class Greeks:
    delta: Optional[float] = None
    implied_vol: Optional[float] = None


@dataclass(frozen=True)
class HistoricalComparison:
    avg_oi: Optional[float] = None
    avg_volume: Optional[float] = None
    oi_change: Optional[float] = None
    volume_multiple: Optional[float] = None
    data_points: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'avgOI': self.avg_oi,
            'avgVolume': self.avg_volume,
            'oiChange': self.oi_change,
            'volumeMultiple': self.volume_multiple,
            'dataPoints': self.data_points,
        }


@dataclass(frozen=True)
class TradeEvent:
    """Identity fields of a CALL/PUT arrival exactly as the upstream classified them."""

    conid: int
    kind: str
    symbol: Optional[str]
    option_price: float
    right: Optional[str] = None
    strike: Optional[float] = None
    expiry: Optional[str] = None
    dte: Optional[int] = None
    size: Optional[float] = None
    premium: Optional[float] = None
    direction: Optional[str] = None
    stance_label: Optional[str] = None
    stance_score: Optional[float] = None
    confidence: Optional[float] = None
    classifications: Tuple[str, ...] = ()
    greeks: Greeks = field(default_factory=Greeks)
    vol_oi_ratio: Optional[float] = None
    open_interest: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    aggressor: bool = False
    underlying_conid: Optional[int] = None
    underlying_price: Optional[float] = None
    moneyness: Optional[float] = None
    asset_class: Optional[str] = None
    multiplier: Optional[float] = None
    is_auto_trade: bool = False
    historical_comparison: Optional[HistoricalComparison] = None
    stance_reasons: Optional[Tuple[str, ...]] = None
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conid': self.conid,
            'type': self.kind,
            'symbol': self.symbol,
            'right': self.right,
            'strike': self.strike,
            'expiry': self.expiry,
            'dte': self.dte,
            'optionPrice': self.option_price,
            'size': self.size,
            'premium': self.premium,
            'direction': self.direction,
            'stanceLabel': self.stance_label,
            'stanceScore': self.stance_score,
            'confidence': self.confidence,
            'classifications': list(self.classifications),
            'greeks': {'delta': self.greeks.delta, 'impliedVol': self.greeks.implied_vol},
            'volOiRatio': self.vol_oi_ratio,
            'openInterest': self.open_interest,
            'bid': self.bid,
            'ask': self.ask,
            'aggressor': self.aggressor,
            'underlyingConid': self.underlying_conid,
            'underlyingPrice': self.underlying_price,
            'moneyness': self.moneyness,
            'assetClass': self.asset_class,
            'multiplier': self.multiplier,
            'isAutoTrade': self.is_auto_trade,
            'historicalComparison': (
                self.historical_comparison.to_dict() if self.historical_comparison else None
            ),
            'stanceReasons': list(self.stance_reasons) if self.stance_reasons is not None else None,
            'timestamp': self.timestamp,
        }


@dataclass
class TradeRecord:
    """An open position tracked from its arrival price.

    ``event`` is frozen, so the cost basis (``initial_price``) cannot drift; only
    the three mark-to-market fields are written after creation.
    """

    event: TradeEvent
    received_at: int
    current_price: float
    price_change: float = 0.0
    price_change_pct: float = 0.0

    @classmethod
    def open(cls, event: TradeEvent, received_at: int) -> 'TradeRecord':
        return cls(event=event, received_at=received_at, current_price=event.option_price)

    @property
    def initial_price(self) -> float:
        return self.event.option_price

    @property
    def conid(self) -> int:
        return self.event.conid

    @property
    def symbol(self) -> Optional[str]:
        return self.event.symbol

    @property
    def size(self) -> Optional[float]:
        return self.event.size

    @property
    def direction(self) -> Optional[str]:
        return self.event.direction

    @property
    def delta(self) -> Optional[float]:
        return self.event.greeks.delta

    @property
    def premium(self) -> Optional[float]:
        return self.event.premium

    @property
    def timestamp(self) -> Optional[int]:
        return self.event.timestamp

    @property
    def asset_class(self) -> Optional[str]:
        return self.event.asset_class

    @property
    def multiplier(self) -> Optional[float]:
        return self.event.multiplier

    @property
    def is_auto_trade(self) -> bool:
        return self.event.is_auto_trade

    def copy(self) -> 'TradeRecord':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        data = self.event.to_dict()
        data.update({
            'receivedAt': self.received_at,
            'initialPrice': self.initial_price,
            'currentPrice': self.current_price,
            'priceChange': self.price_change,
            'priceChangePct': self.price_change_pct,
        })
        return data


@dataclass(frozen=True)
class PrintRecord:
    """Historical tape entry; never marked to market.

    Carries the whole arrival event and renames the trade fields the tape
    shows (``tradeSize``, ``tradePrice``, ``stance``, aggressor label).
    """

    event: TradeEvent

    @classmethod
    def from_event(cls, event: TradeEvent) -> 'PrintRecord':
        return cls(event=event)

    @property
    def conid(self) -> int:
        return self.event.conid

    @property
    def symbol(self) -> Optional[str]:
        return self.event.symbol

    @property
    def stance(self) -> Optional[str]:
        return self.event.stance_label

    @property
    def trade_size(self) -> Optional[float]:
        return self.event.size

    @property
    def trade_price(self) -> float:
        return self.event.option_price

    @property
    def aggressor(self) -> str:
        return 'BUY-agg' if self.event.aggressor else 'SELL-agg'

    def to_dict(self) -> Dict[str, Any]:
        data = self.event.to_dict()
        data.update({
            'type': 'PRINT',
            'stance': self.stance,
            'tradeSize': self.trade_size,
            'tradePrice': self.trade_price,
            'aggressor': self.aggressor,
        })
        return data
