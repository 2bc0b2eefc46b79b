import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware

from analytics.flow_filters import ALL, TradeFilter
from config import config
from monitoring.logging_utils import setup_logging


logger = logging.getLogger(__name__)

flow_monitor = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global flow_monitor
    from main import FlowMonitor
    flow_monitor = FlowMonitor()
    task = asyncio.create_task(flow_monitor.start())
    try:
        yield
    finally:
        if flow_monitor:
            await flow_monitor.stop()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


app = FastAPI(title="Options Flow Monitor API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list((config.get('api', {}) or {}).get('cors_origins', ['*'])),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)


manager = ConnectionManager()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _not_ready():
    return {"error": "Flow monitor not initialized"}


@app.get("/")
async def root():
    return {
        "service": "Options Flow Monitor",
        "version": "1.0.0",
        "status": "running" if flow_monitor and flow_monitor.running else "stopped"
    }


@app.get("/favicon.ico")
async def favicon():
    return Response(content=b"", media_type="image/x-icon")


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": _now(),
        "connected": flow_monitor.ws_client.connected if flow_monitor else False
    }


@app.get("/api/status")
async def get_status():
    if not flow_monitor:
        return _not_ready()
    status = flow_monitor.status()
    status["timestamp"] = _now()
    return status


@app.get("/api/trades")
async def get_trades(symbol: str = '', min_premium: float = 0.0, direction: str = ALL,
                     classification: str = ALL, stance: str = ALL):
    if not flow_monitor:
        return _not_ready()
    session = flow_monitor.session
    trade_filter = TradeFilter(
        symbol=symbol,
        min_premium=min_premium,
        direction=direction,
        classification=classification,
        stance=stance,
    )
    trades = [session.describe_trade(record) for record in session.filtered_trades(trade_filter)]
    return {"trades": trades, "count": len(trades), "timestamp": _now()}


@app.get("/api/prints")
async def get_prints():
    if not flow_monitor:
        return _not_ready()
    prints = [record.to_dict() for record in flow_monitor.session.print_snapshot()]
    return {"prints": prints, "count": len(prints), "timestamp": _now()}


@app.get("/api/auto_trades")
async def get_auto_trades():
    if not flow_monitor:
        return _not_ready()
    session = flow_monitor.session
    trades = [session.describe_trade(record) for record in session.auto_trade_snapshot()]
    return {"trades": trades, "count": len(trades), "timestamp": _now()}


@app.get("/api/quotes")
async def get_quotes():
    if not flow_monitor:
        return _not_ready()
    quotes = flow_monitor.session.describe_quotes()
    quotes["timestamp"] = _now()
    return quotes


@app.get("/api/mapping/{conid}")
async def get_mapping(conid: int):
    if not flow_monitor:
        return _not_ready()
    return {"conid": conid, "mapping": flow_monitor.session.resolve(conid).to_dict()}


@app.get("/api/sentiment")
async def get_sentiment():
    if not flow_monitor:
        return _not_ready()
    data = flow_monitor.session.sentiment.to_dict()
    data["timestamp"] = _now()
    return data


@app.get("/api/stats")
async def get_stats():
    if not flow_monitor:
        return _not_ready()
    session = flow_monitor.session
    return {
        "stats": session.latest_stats(),
        "winRate": session.stats.win_rate(),
        "timestamp": _now(),
    }


@app.post("/api/pause")
async def set_pause(paused: bool = True):
    if not flow_monitor:
        return _not_ready()
    flow_monitor.set_paused(paused)
    return {"paused": flow_monitor.paused, "timestamp": _now()}


@app.post("/api/clear")
async def clear_all():
    if not flow_monitor:
        return _not_ready()
    flow_monitor.clear_all()
    return {"status": "cleared", "counts": flow_monitor.session.counts(), "timestamp": _now()}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    interval = float((config.get('monitoring', {}) or {}).get('broadcast_interval_s', 1.0))

    try:
        while True:
            if flow_monitor:
                data = flow_monitor.summary()
                data["type"] = "update"
                data["timestamp"] = _now()
                await websocket.send_json(data)

            await asyncio.sleep(interval)

    except WebSocketDisconnect:
        manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn
    setup_logging()
    api_cfg = config.get('api', {}) or {}
    uvicorn.run(
        app,
        host=api_cfg.get('host', '0.0.0.0'),
        port=int(api_cfg.get('port', 8080)),
        log_level="info"
    )
