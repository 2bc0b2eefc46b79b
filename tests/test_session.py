import json
import sys

sys.path.insert(0, '.')

import pytest

from analytics.flow_filters import TradeFilter
from analytics.sentiment import BULL, NEUTRAL
from ingest.event_router import EventRouter
from orchestration.session import FlowSession
from state.records import UNKNOWN_INSTRUMENT
from tests.flow_fixtures import TEST_CONFIG, mapping_msg, quote_msg, stats_msg, trade_msg, ul_quote_msg


def _session(**overrides):
    cfg = {section: dict(values) for section, values in TEST_CONFIG.items()}
    for section, values in overrides.items():
        cfg[section].update(values)
    clock = iter(range(1, 10_000))
    session = FlowSession(cfg, clock=lambda: next(clock))
    return session, EventRouter(session)


def _feed(router, *messages):
    for message in messages:
        router.route(json.dumps(message))


def test_trade_arrival_fills_stream_and_tape():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0))

    trades = session.trade_snapshot()
    prints = session.print_snapshot()
    assert len(trades) == 1 and len(prints) == 1
    assert trades[0].initial_price == 2.0
    assert trades[0].received_at == 1
    assert prints[0].aggressor == 'BUY-agg'
    assert session.auto_trade_snapshot() == []


def test_auto_trades_are_tracked_independently():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0, auto=True))

    assert session.counts()['auto'] == 1
    assert session.auto_trades.snapshot()[0] is not session.trades.snapshot()[0]

    _feed(router, quote_msg(conid=1001, last=2.5))
    assert session.auto_trade_snapshot()[0].price_change_pct == pytest.approx(25.0)
    assert session.trade_snapshot()[0].price_change_pct == pytest.approx(25.0)


def test_quote_marks_stream_but_never_the_tape():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0), quote_msg(conid=1001, last=2.5))

    record = session.trade_snapshot()[0]
    assert record.current_price == 2.5
    assert record.price_change == pytest.approx(0.5)
    assert session.print_snapshot()[0].trade_price == 2.0
    assert session.option_quote(1001).last == 2.5


def test_quote_for_unknown_conid_is_stored_only():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0), quote_msg(conid=9999, last=7.0))
    assert session.trade_snapshot()[0].current_price == 2.0
    assert session.option_quote(9999).last == 7.0


def test_snapshots_are_copies():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0))
    snapshot = session.trade_snapshot()
    snapshot[0].current_price = 99.0
    assert session.trade_snapshot()[0].current_price == 2.0


def test_ledger_capacity_bounds_stream_and_sentiment():
    session, router = _session(ledgers={'trade_capacity': 2})
    _feed(
        router,
        trade_msg(conid=1, symbol='SPY', direction='BTO', delta=0.4, size=10),
        trade_msg(conid=2, symbol='QQQ', direction='STO', delta=0.1, size=10),
        trade_msg(conid=3, symbol='QQQ', direction='BTO', delta=0.1, size=10),
    )
    assert [r.conid for r in session.trade_snapshot()] == [3, 2]
    assert 'SPY' not in session.sentiment.symbol_scores
    assert session.sentiment.total_score == pytest.approx(0.0)
    assert session.sentiment.overall() == NEUTRAL


def test_mapping_resolution_and_sentinel():
    session, router = _session()
    _feed(router, mapping_msg(conid=756733, symbol='SPY', instrument_type='UNDERLYING'))

    assert session.resolve(756733).symbol == 'SPY'
    assert session.resolve(756733).is_underlying
    assert session.resolve(424242) == UNKNOWN_INSTRUMENT
    assert session.resolve(424242).symbol == 'Unknown'
    assert session.resolve(424242).instrument_type == 'OPT'


def test_mapping_update_replaces_descriptor():
    session, router = _session()
    _feed(
        router,
        mapping_msg(conid=5, symbol='SPY', instrument_type='OPT', right='C', strike=500),
        mapping_msg(conid=5, symbol='SPY', instrument_type='OPT', right='P', strike=495),
    )
    assert session.resolve(5).right == 'P'
    assert session.resolve(5).strike == 495


def test_clear_keeps_mapping_and_stats():
    session, router = _session()
    _feed(
        router,
        mapping_msg(conid=756733),
        trade_msg(conid=1001, auto=True),
        quote_msg(conid=1001),
        ul_quote_msg(conid=756733),
        stats_msg(pnl=500.0),
    )
    session.clear()

    counts = session.counts()
    assert counts == {'stream': 0, 'prints': 0, 'quotes': 0, 'underlyingQuotes': 0, 'auto': 0, 'mappings': 1}
    assert session.sentiment.total_score == 0.0
    assert session.resolve(756733).symbol == 'SPY'
    assert session.latest_stats()['daily']['pnl'] == 500.0


def test_malformed_and_unknown_frames_leave_state_alone():
    session, router = _session()
    assert router.route('not json') is False
    assert router.route('[1, 2, 3]') is False
    assert router.route(json.dumps({'type': 'CALL', 'conid': 1})) is False
    assert router.route(json.dumps({'type': 'HEARTBEAT', 'seq': 4})) is False
    assert all(count == 0 for count in session.counts().values())

    assert router.route(json.dumps(trade_msg())) is True
    assert session.counts()['stream'] == 1


def test_stats_replace_wholesale():
    session, router = _session()
    assert session.latest_stats() is None
    _feed(router, stats_msg(pnl=100.0, trades=4, wins=1), stats_msg(pnl=250.0, trades=8, wins=6))

    stats = session.latest_stats()
    assert stats['daily']['pnl'] == 250.0
    assert session.stats.win_rate() == pytest.approx(75.0)

    stats['daily']['pnl'] = 0.0
    assert session.latest_stats()['daily']['pnl'] == 250.0


def test_filters_and_premium_sort():
    session, router = _session()
    _feed(
        router,
        trade_msg(conid=1, symbol='SPY', premium=5_000.0, direction='BTO'),
        trade_msg(conid=2, symbol='QQQ', premium=90_000.0, direction='STO', classifications=['BLOCK']),
        trade_msg(conid=3, symbol='SPY', premium=25_000.0, direction='STO', stanceLabel='BEAR'),
    )

    assert [r.conid for r in session.filtered_trades()] == [2, 3, 1]
    assert [r.conid for r in session.filtered_trades(TradeFilter(symbol='spy'))] == [3, 1]
    assert [r.conid for r in session.filtered_trades(TradeFilter(min_premium=20_000))] == [2, 3]
    assert [r.conid for r in session.filtered_trades(TradeFilter(direction='STO'))] == [2, 3]
    assert [r.conid for r in session.filtered_trades(TradeFilter(classification='BLOCK'))] == [2]
    assert [r.conid for r in session.filtered_trades(TradeFilter(stance='BEAR'))] == [3]


def test_describe_trade_includes_pnl_and_underlying_move():
    session, router = _session()
    _feed(
        router,
        mapping_msg(conid=756733, symbol='SPY'),
        trade_msg(conid=1001, price=1.0, size=5, underlyingPrice=500.0, underlyingConid=756733),
        quote_msg(conid=1001, last=1.2),
        ul_quote_msg(conid=756733, last=505.0),
    )

    data = session.describe_trade(session.trade_snapshot()[0])
    assert data['dollarPnL'] == pytest.approx(100.0)
    assert data['percentPnL'] == pytest.approx(20.0)
    assert data['underlying']['symbol'] == 'SPY'
    assert data['underlyingLast'] == 505.0
    assert data['underlyingChangePct'] == pytest.approx(1.0)
    assert data['initialPrice'] == 1.0
    assert data['receivedAt'] == 1


def test_sentiment_follows_routed_trades():
    session, router = _session()
    _feed(router, trade_msg(symbol='SPY', direction='BTO', delta=0.4, size=10))
    assert session.sentiment.total_score == pytest.approx(4.0)
    assert session.sentiment.overall() == BULL


def test_quotes_are_described_with_their_mapping():
    session, router = _session()
    _feed(
        router,
        mapping_msg(conid=1001, symbol='SPY', instrument_type='OPT', right='C'),
        mapping_msg(conid=756733, symbol='SPY', instrument_type='UNDERLYING'),
        quote_msg(conid=1001, last=2.5),
        quote_msg(conid=756733, last=505.0),
        ul_quote_msg(conid=756733, last=505.0),
    )
    described = session.describe_quotes()
    by_conid = {entry['conid']: entry for entry in described['options']}
    assert by_conid[1001]['isOption'] is True
    assert by_conid[756733]['isOption'] is False
    assert described['underlyings'][0]['mapping']['symbol'] == 'SPY'


def test_tape_rows_keep_the_full_event():
    session, router = _session()
    _feed(router, trade_msg(conid=1001, price=2.0, size=7, auto=True, moneyness=0.02))

    row = session.print_snapshot()[0].to_dict()
    assert row['type'] == 'PRINT'
    assert row['tradeSize'] == 7
    assert row['tradePrice'] == 2.0
    assert row['stance'] == 'BULL'
    assert row['aggressor'] == 'BUY-agg'
    assert row['dte'] == 14
    assert row['greeks'] == {'delta': 0.4, 'impliedVol': 0.22}
    assert row['bid'] == pytest.approx(1.95)
    assert row['ask'] == pytest.approx(2.05)
    assert row['moneyness'] == 0.02
    assert row['underlyingConid'] == 756733
    assert row['underlyingPrice'] == 500.0
    assert row['assetClass'] == 'EQUITY_OPTION'
    assert row['isAutoTrade'] is True
