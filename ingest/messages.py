"""Typed envelopes for the options-flow upstream feed.

Every server message carries a ``type`` discriminator. ``parse_message`` turns
a raw frame into exactly one of the dataclasses below, or raises
``MalformedMessage`` when the frame cannot be decoded into the variant its
discriminator names. Discriminators we do not know become ``UnknownEvent`` so
the router can ignore them explicitly.
"""
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from state.records import (
    Greeks,
    HistoricalComparison,
    InstrumentDescriptor,
    QuoteSnapshot,
    TradeEvent,
)


class MalformedMessage(ValueError):
    """Raised when an inbound frame cannot be decoded into a known variant."""


@dataclass(frozen=True)
class ConidMapping:
    conid: int
    descriptor: InstrumentDescriptor


@dataclass(frozen=True)
class TradeArrival:
    event: TradeEvent


@dataclass(frozen=True)
class OptionQuote:
    quote: QuoteSnapshot


@dataclass(frozen=True)
class UnderlyingQuote:
    quote: QuoteSnapshot


@dataclass(frozen=True)
class TradingStats:
    stats: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class UnknownEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict, compare=False)


FlowMessage = Union[ConidMapping, TradeArrival, OptionQuote, UnderlyingQuote, TradingStats, UnknownEvent]

TRADE_KINDS = ('CALL', 'PUT')


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(value: Any) -> Optional[float]:
    """Strict numeric read: only real numbers count, strings and booleans do not."""
    if _is_number(value) and not math.isnan(value):
        return float(value)
    return None


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def _opt_int(value: Any) -> Optional[int]:
    result = _opt_float(value)
    if result is None or math.isinf(result):
        return None
    return int(result)


def _conid(payload: Dict[str, Any], key: str = 'conid') -> int:
    raw = payload.get(key)
    if isinstance(raw, bool) or raw is None:
        raise MalformedMessage(f"missing or invalid {key}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"non-numeric {key}: {raw!r}") from exc
    if math.isnan(value) or math.isinf(value) or not value.is_integer():
        raise MalformedMessage(f"non-integral {key}: {raw!r}")
    return int(value)


def _opt_conid(payload: Dict[str, Any], key: str) -> Optional[int]:
    if payload.get(key) is None:
        return None
    try:
        return _conid(payload, key)
    except MalformedMessage:
        return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    return str(value)


def _strings(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None)


def _parse_mapping(payload: Dict[str, Any]) -> ConidMapping:
    mapping = payload.get('mapping')
    if not isinstance(mapping, dict):
        raise MalformedMessage("CONID_MAPPING without mapping object")
    return ConidMapping(conid=_conid(payload), descriptor=InstrumentDescriptor.from_mapping(mapping))


def _parse_historical(value: Any) -> Optional[HistoricalComparison]:
    if not isinstance(value, dict):
        return None
    return HistoricalComparison(
        avg_oi=_opt_float(value.get('avgOI')),
        avg_volume=_opt_float(value.get('avgVolume')),
        oi_change=_opt_float(value.get('oiChange')),
        volume_multiple=_opt_float(value.get('volumeMultiple')),
        data_points=_opt_int(value.get('dataPoints')),
    )


def _parse_trade(kind: str, payload: Dict[str, Any]) -> TradeArrival:
    option_price = _opt_float(payload.get('optionPrice'))
    if option_price is None:
        raise MalformedMessage(f"{kind} trade without optionPrice")

    greeks_raw = payload.get('greeks') if isinstance(payload.get('greeks'), dict) else {}
    reasons = payload.get('stanceReasons')

    event = TradeEvent(
        conid=_conid(payload),
        kind=kind,
        symbol=_opt_str(payload.get('symbol')) or None,
        option_price=option_price,
        right=_opt_str(payload.get('right')) or kind[0],
        strike=_opt_float(payload.get('strike')),
        expiry=_opt_str(payload.get('expiry')),
        dte=_opt_int(payload.get('dte')),
        size=_opt_float(payload.get('size')),
        premium=_opt_float(payload.get('premium')),
        direction=_opt_str(payload.get('direction')),
        stance_label=_opt_str(payload.get('stanceLabel')),
        stance_score=_opt_float(payload.get('stanceScore')),
        confidence=_opt_float(payload.get('confidence')),
        classifications=_strings(payload.get('classifications')),
        greeks=Greeks(
            delta=_number(greeks_raw.get('delta')),
            implied_vol=_opt_float(greeks_raw.get('impliedVol')),
        ),
        vol_oi_ratio=_opt_float(payload.get('volOiRatio')),
        open_interest=_opt_float(payload.get('openInterest')),
        bid=_opt_float(payload.get('bid')),
        ask=_opt_float(payload.get('ask')),
        aggressor=bool(payload.get('aggressor')),
        underlying_conid=_opt_conid(payload, 'underlyingConid'),
        underlying_price=_opt_float(payload.get('underlyingPrice')),
        moneyness=_opt_float(payload.get('moneyness')),
        asset_class=_opt_str(payload.get('assetClass')),
        multiplier=_opt_float(payload.get('multiplier')),
        is_auto_trade=bool(payload.get('isAutoTrade')),
        historical_comparison=_parse_historical(payload.get('historicalComparison')),
        stance_reasons=_strings(reasons) if isinstance(reasons, (list, tuple)) else None,
        timestamp=_opt_int(payload.get('timestamp')),
    )
    return TradeArrival(event=event)


def _parse_quote(payload: Dict[str, Any], with_delta: bool) -> QuoteSnapshot:
    return QuoteSnapshot(
        conid=_conid(payload),
        last=_opt_float(payload.get('last')),
        bid=_opt_float(payload.get('bid')),
        ask=_opt_float(payload.get('ask')),
        volume=_opt_float(payload.get('volume')),
        timestamp=_opt_int(payload.get('timestamp')),
        delta=_opt_float(payload.get('delta')) if with_delta else None,
    )


def _parse_stats(payload: Dict[str, Any]) -> TradingStats:
    stats = payload.get('stats')
    if stats is not None and not isinstance(stats, dict):
        raise MalformedMessage("TRADING_STATS stats is not an object")
    return TradingStats(stats=stats)


def decode_frame(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"undecodable frame: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedMessage(f"frame is {type(payload).__name__}, expected object")
    return payload


def parse_message(raw: Union[str, bytes, Dict[str, Any]]) -> FlowMessage:
    payload = decode_frame(raw)
    msg_type = payload.get('type')
    if not isinstance(msg_type, str):
        raise MalformedMessage("frame without string 'type' discriminator")

    if msg_type == 'CONID_MAPPING':
        return _parse_mapping(payload)
    if msg_type in TRADE_KINDS:
        return _parse_trade(msg_type, payload)
    if msg_type == 'LIVE_QUOTE':
        return OptionQuote(quote=_parse_quote(payload, with_delta=True))
    if msg_type == 'UL_LIVE_QUOTE':
        return UnderlyingQuote(quote=_parse_quote(payload, with_delta=False))
    if msg_type == 'TRADING_STATS':
        return _parse_stats(payload)
    return UnknownEvent(type=msg_type, payload=payload)
