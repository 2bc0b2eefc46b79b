import errno
import logging
from pathlib import Path
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from typing import Iterator, Optional

from config import config


logger = logging.getLogger(__name__)

_METRICS_SERVER_STARTED = False
_METRICS_PORT: Optional[int] = None


def _monitoring_cfg():
    return config.get('monitoring', {}) or {}


def _candidate_ports(port: int) -> Iterator[int]:
    try:
        scan = max(0, int(_monitoring_cfg().get('prometheus_port_scan', 0) or 0))
    except (TypeError, ValueError):
        scan = 0
    return iter(range(port, port + scan + 1))


def _record_port(port: int) -> None:
    """Write the bound port where sidecars can find it, if ``metrics_port_file`` is set."""
    path_value = _monitoring_cfg().get('metrics_port_file')
    if not path_value:
        return
    port_file = Path(path_value)
    try:
        port_file.parent.mkdir(parents=True, exist_ok=True)
        port_file.write_text(str(port))
    except OSError as exc:
        logger.warning("Failed to persist metrics port file %s: %s", port_file, exc)


class MetricsCollector:
    def __init__(self):
        self.events_routed = Counter('flow_events_routed_total', 'Inbound events applied to session state', ['type'])
        self.dropped_events = Counter('flow_dropped_events_total', 'Inbound events discarded before dispatch', ['reason'])
        self.handler_errors = Counter('flow_handler_errors_total', 'Handler failures while applying an event', ['type'])
        self.dispatch_latency = Histogram(
            'flow_dispatch_latency_seconds',
            'Time spent applying one event to session state',
            buckets=(0.00005, 0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05),
        )

        self.reconnect_count = Counter('flow_websocket_reconnects_total', 'Total upstream reconnect attempts')
        self.connected = Gauge('flow_websocket_connected', 'Upstream connection state (1 = connected)')
        self.paused = Gauge('flow_paused', 'Operator pause flag (1 = paused)')

        self.ledger_depth = Gauge('flow_ledger_depth', 'Records resident in each ledger', ['ledger'])
        self.quote_count = Gauge('flow_quote_count', 'Instruments with a live quote', ['store'])
        self.marked_records = Counter('flow_marked_records_total', 'Trade records marked to a new quote')

        self.sentiment_total = Gauge('flow_sentiment_total', 'Global delta-weighted flow score')

    def record_event(self, event_type: str):
        self.events_routed.labels(type=event_type).inc()

    def record_drop(self, reason: str):
        self.dropped_events.labels(reason=reason).inc()

    def record_handler_error(self, event_type: str):
        self.handler_errors.labels(type=event_type).inc()

    def observe_dispatch(self, seconds: float):
        self.dispatch_latency.observe(seconds)

    def record_reconnect(self):
        self.reconnect_count.inc()

    def update_connection(self, connected: bool):
        self.connected.set(1 if connected else 0)

    def update_paused(self, paused: bool):
        self.paused.set(1 if paused else 0)

    def update_ledger_depth(self, ledger: str, depth: int):
        self.ledger_depth.labels(ledger=ledger).set(depth)

    def update_quote_count(self, store: str, count: int):
        self.quote_count.labels(store=store).set(count)

    def record_marked(self, count: int):
        if count:
            self.marked_records.inc(count)

    def update_sentiment(self, total_score: float):
        self.sentiment_total.set(total_score)


def metrics_port() -> Optional[int]:
    return _METRICS_PORT


def start_metrics_server(port: int = 9108) -> Optional[int]:
    """Expose /metrics on ``port`` or, when it is taken, the next free port within the scan window."""
    global _METRICS_SERVER_STARTED, _METRICS_PORT
    if _METRICS_SERVER_STARTED:
        return _METRICS_PORT

    tried = []
    for candidate in _candidate_ports(port):
        try:
            start_http_server(candidate)
        except OSError as exc:
            if exc.errno != errno.EADDRINUSE:
                raise
            logger.warning("Metrics port %s in use, trying the next one", candidate)
            tried.append(candidate)
            continue
        _METRICS_SERVER_STARTED = True
        _METRICS_PORT = candidate
        _record_port(candidate)
        logger.info("Prometheus metrics server started on port %s", candidate)
        return candidate

    raise RuntimeError(f"Unable to bind Prometheus metrics server, ports in use: {tried}")


metrics = MetricsCollector()
