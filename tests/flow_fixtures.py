import asyncio
import itertools
import json
from typing import Dict, List, Optional


_timestamps = itertools.count(1_700_000_000_000)

TEST_CONFIG = {
    'ledgers': {'trade_capacity': 200, 'print_capacity': 100, 'auto_trade_capacity': 50},
    'sentiment': {'threshold': 0.5},
    'pnl': {'equity_multiplier': 100, 'futures_multiplier': 20},
    'monitoring': {},
}


def trade_msg(conid: int = 1001, symbol: str = 'SPY', kind: str = 'CALL', direction: str = 'BTO',
              delta: Optional[float] = 0.4, size: Optional[float] = 10, price: float = 2.0,
              premium: float = 2000.0, auto: bool = False, asset_class: str = 'EQUITY_OPTION',
              **extra) -> Dict:
    msg = {
        'type': kind,
        'conid': conid,
        'symbol': symbol,
        'strike': 500.0,
        'expiry': '20250117',
        'dte': 14,
        'optionPrice': price,
        'size': size,
        'premium': premium,
        'direction': direction,
        'stanceLabel': 'BULL',
        'stanceScore': 0.8,
        'confidence': 0.7,
        'classifications': ['SWEEP'],
        'greeks': {'delta': delta, 'impliedVol': 0.22},
        'volOiRatio': 1.5,
        'openInterest': 1200,
        'bid': price - 0.05,
        'ask': price + 0.05,
        'aggressor': True,
        'underlyingConid': 756733,
        'underlyingPrice': 500.0,
        'moneyness': 0.01,
        'assetClass': asset_class,
        'isAutoTrade': auto,
        'timestamp': next(_timestamps),
    }
    msg.update(extra)
    return msg


def quote_msg(conid: int = 1001, last: Optional[float] = 2.5, **extra) -> Dict:
    msg = {
        'type': 'LIVE_QUOTE',
        'conid': conid,
        'last': last,
        'bid': (last or 0) - 0.05,
        'ask': (last or 0) + 0.05,
        'delta': 0.45,
        'volume': 350,
        'timestamp': next(_timestamps),
    }
    msg.update(extra)
    return msg


def ul_quote_msg(conid: int = 756733, last: float = 505.0) -> Dict:
    return {
        'type': 'UL_LIVE_QUOTE',
        'conid': conid,
        'last': last,
        'bid': last - 0.01,
        'ask': last + 0.01,
        'volume': 1_000_000,
        'timestamp': next(_timestamps),
    }


def mapping_msg(conid: int = 756733, symbol: str = 'SPY', instrument_type: str = 'UNDERLYING', **extra) -> Dict:
    mapping = {'symbol': symbol, 'type': instrument_type}
    mapping.update(extra)
    return {'type': 'CONID_MAPPING', 'conid': conid, 'mapping': mapping}


def stats_msg(pnl: float = 1250.0, trades: int = 8, wins: int = 6) -> Dict:
    return {
        'type': 'TRADING_STATS',
        'stats': {
            'daily': {'pnl': pnl, 'date': '2025-01-03', 'trades': trades, 'wins': wins, 'losses': trades - wins},
            'totalPnL': 8800.0,
            'totalTrades': 120,
            'openPositionsCount': 3,
            'openPnL': -140.0,
            'simulation': True,
        },
    }


class FakeConnection:
    """Stand-in for a websockets client connection."""

    def __init__(self, frames: List = (), hold_open: bool = True):
        self.frames = [f if isinstance(f, str) else json.dumps(f) for f in frames]
        self.hold_open = hold_open
        self.sent: List[Dict] = []
        self.close_calls = 0
        self.delivered = asyncio.Event()
        self._closed = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, data: str):
        self.sent.append(json.loads(data))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
            await asyncio.sleep(0)
        self.delivered.set()
        if self.hold_open:
            await self._closed.wait()

    async def close(self):
        self.close_calls += 1
        self._closed.set()


class FakeConnector:
    def __init__(self, connections: List[FakeConnection] = (), fail: bool = False):
        self.connections = list(connections)
        self.fail = fail
        self.attempts = 0
        self.urls: List[str] = []

    def __call__(self, url: str, **kwargs):
        self.attempts += 1
        self.urls.append(url)
        if self.fail:
            raise OSError("connection refused")
        if self.connections:
            return self.connections.pop(0)
        return FakeConnection()


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
