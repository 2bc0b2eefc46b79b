import copy
from typing import Any, Dict, Optional


class StatsMirror:
    """Holds the last trading-stats payload from upstream without interpreting it."""

    def __init__(self):
        self._snapshot: Optional[Dict[str, Any]] = None

    def replace(self, snapshot: Optional[Dict[str, Any]]) -> None:
        self._snapshot = snapshot

    def get(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._snapshot)

    def win_rate(self) -> float:
        """Daily wins as a percentage of daily trades; 0 when nothing traded."""
        if not isinstance(self._snapshot, dict):
            return 0.0
        daily = self._snapshot.get('daily') or {}
        if not isinstance(daily, dict):
            return 0.0
        trades = daily.get('trades') or 0
        wins = daily.get('wins') or 0
        try:
            trades = float(trades)
            wins = float(wins)
        except (TypeError, ValueError):
            return 0.0
        if trades <= 0:
            return 0.0
        return wins / trades * 100.0
