import asyncio
import logging
from typing import Any, Dict, Optional

from api.metrics import metrics_port, start_metrics_server
from config import config
from config.utils import get_config_section
from ingest.event_router import EventRouter
from ingest.websocket_client import FlowWebSocketClient
from monitoring.logging_utils import setup_logging
from orchestration.session import FlowSession


logger = logging.getLogger(__name__)


class FlowMonitor:
    """Own one flow session plus the upstream connection that feeds it."""

    def __init__(self, config_obj: Optional[Any] = None, ws_client: Optional[FlowWebSocketClient] = None,
                 serve_metrics: bool = True):
        self.config = config_obj or config
        self.monitoring_cfg = get_config_section(self.config, 'monitoring')
        self.serve_metrics = serve_metrics

        self.session = FlowSession(self.config)
        self.router = EventRouter(self.session)
        self.ws_client = ws_client or FlowWebSocketClient()
        self.ws_client.register_handler('message', self.router.on_message)
        self.running = False

    # Commands -----------------------------------------------------------
    def set_paused(self, paused: bool) -> None:
        self.ws_client.set_paused(paused)

    def clear_all(self) -> None:
        self.session.clear()

    # Read model ---------------------------------------------------------
    @property
    def paused(self) -> bool:
        return self.ws_client.paused

    @property
    def connection_state(self) -> str:
        return self.ws_client.state.value

    def status(self) -> Dict[str, Any]:
        return {
            'connection': self.connection_state,
            'connected': self.ws_client.connected,
            'paused': self.paused,
            'upstream': self.ws_client.url,
            'reconnects': self.ws_client.reconnect_count,
            'metricsPort': metrics_port(),
            'counts': self.session.counts(),
        }

    def summary(self) -> Dict[str, Any]:
        return {
            'status': self.status(),
            'sentiment': self.session.sentiment.to_dict(),
            'stats': self.session.latest_stats(),
        }

    async def start(self):
        self.running = True
        if self.serve_metrics and self.monitoring_cfg.get('prometheus_port'):
            start_metrics_server(int(self.monitoring_cfg['prometheus_port']))
        logger.info(
            "Starting flow monitor (futures=%s, equities=%s)",
            self.ws_client.futures_symbols,
            self.ws_client.equity_symbols,
        )
        try:
            await self.ws_client.start()
        finally:
            self.running = False

    async def stop(self):
        self.running = False
        await self.ws_client.stop()


async def main():
    monitor = FlowMonitor(config)
    try:
        await monitor.start()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Flow monitor shutting down on interrupt")
        await monitor.stop()

if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
