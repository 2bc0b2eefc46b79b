import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from api.metrics import metrics
from config import config
from monitoring.async_utils import run_tasks_with_cleanup


logger = logging.getLogger(__name__)

_STOP = object()


class ConnectionState(str, Enum):
    CONNECTED = 'CONNECTED'
    DISCONNECTED = 'DISCONNECTED'


class FlowWebSocketClient:
    """Single upstream connection feeding one in-order consumer.

    The receive loop only enqueues frames; the consumer loop is the single
    writer that hands them to the registered ``message`` handler. Frames that
    arrive or are dequeued while ``paused`` is set are discarded for good.
    """

    def __init__(self, url: Optional[str] = None, futures_symbols: Optional[List[str]] = None,
                 equity_symbols: Optional[List[str]] = None, reconnect_delay_s: Optional[float] = None,
                 open_timeout_s: Optional[float] = None,
                 connect: Optional[Callable[..., Any]] = None):
        upstream = config.get('upstream', {})
        self.url = url or upstream.get('url', 'ws://localhost:3000/ws')
        self.futures_symbols = list(futures_symbols if futures_symbols is not None
                                    else upstream.get('futures_symbols', []))
        self.equity_symbols = list(equity_symbols if equity_symbols is not None
                                   else upstream.get('equity_symbols', []))
        self.reconnect_delay_s = float(reconnect_delay_s if reconnect_delay_s is not None
                                       else upstream.get('reconnect_delay_s', 3.0))
        self.open_timeout_s = float(open_timeout_s if open_timeout_s is not None
                                    else upstream.get('open_timeout_s', 10))
        self._connect = connect or websockets.connect

        self.handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {}
        self.running = False
        self.paused = False
        self.state = ConnectionState.DISCONNECTED
        self.reconnect_count = 0

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._ws = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._stopped = False

    def register_handler(self, stream_type: str, handler: Callable[[Any], Awaitable[None]]):
        self.handlers[stream_type] = handler

    def subscribe_request(self) -> Dict[str, Any]:
        return {
            'action': 'subscribe',
            'futuresSymbols': list(self.futures_symbols),
            'equitySymbols': list(self.equity_symbols),
        }

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def set_paused(self, paused: bool) -> None:
        if paused != self.paused:
            logger.info("Flow stream %s", "paused" if paused else "resumed")
        self.paused = bool(paused)
        metrics.update_paused(self.paused)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        metrics.update_connection(state == ConnectionState.CONNECTED)
        if state == ConnectionState.CONNECTED:
            logger.info("Connected to options flow at %s", self.url)
        else:
            logger.warning("Disconnected from options flow")

    def _enqueue(self, raw: Any) -> None:
        if self.paused:
            metrics.record_drop('paused')
            return
        self._inbox.put_nowait(raw)

    async def _wait_reconnect(self) -> bool:
        self.reconnect_count += 1
        metrics.record_reconnect()
        logger.info("Reconnecting in %.1fs (attempt %s)", self.reconnect_delay_s, self.reconnect_count)
        self._reconnect_task = asyncio.ensure_future(asyncio.sleep(self.reconnect_delay_s))
        try:
            await self._reconnect_task
        except asyncio.CancelledError:
            if self._stopped:
                return False
            raise
        finally:
            self._reconnect_task = None
        return self.running

    async def _receive_loop(self):
        while self.running:
            try:
                async with self._connect(self.url, open_timeout=self.open_timeout_s) as ws:
                    if not self.running:
                        break
                    self._ws = ws
                    await ws.send(json.dumps(self.subscribe_request()))
                    self._set_state(ConnectionState.CONNECTED)
                    async for raw in ws:
                        self._enqueue(raw)
                    if self.running:
                        logger.warning("Options flow stream closed by upstream")
            except Exception as e:
                logger.error("Options flow stream error: %s", e)
            finally:
                self._ws = None
                self._set_state(ConnectionState.DISCONNECTED)

            if not self.running:
                break
            if not await self._wait_reconnect():
                break

    async def _consume_loop(self):
        while True:
            raw = await self._inbox.get()
            if raw is _STOP:
                break
            if self.paused:
                metrics.record_drop('paused')
                continue
            handler = self.handlers.get('message')
            if handler is None:
                continue
            try:
                await handler(raw)
            except Exception:
                logger.exception("Flow message handler failed")

    async def start(self):
        self.running = True
        self._stopped = False
        tasks = [
            asyncio.create_task(self._receive_loop(), name='flow-receive'),
            asyncio.create_task(self._consume_loop(), name='flow-consume'),
        ]
        await run_tasks_with_cleanup(tasks, cleanup=self.stop)

    async def stop(self):
        if self._stopped:
            return
        self._stopped = True
        self.running = False

        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.error("Error closing options flow connection: %s", e)

        self._inbox.put_nowait(_STOP)
