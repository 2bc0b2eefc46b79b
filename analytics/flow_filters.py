from dataclasses import dataclass
from typing import Iterable, List

from state.records import TradeRecord


ALL = 'all'


@dataclass
class TradeFilter:
    """Operator-facing narrowing of the trade ledger. ``'all'`` disables a criterion."""

    symbol: str = ''
    min_premium: float = 0.0
    direction: str = ALL
    classification: str = ALL
    stance: str = ALL

    def matches(self, record: TradeRecord) -> bool:
        event = record.event
        if self.symbol and self.symbol.upper() not in (event.symbol or '').upper():
            return False
        if self.min_premium and (event.premium or 0.0) < self.min_premium:
            return False
        if self.direction != ALL and event.direction != self.direction:
            return False
        if self.classification != ALL and self.classification not in event.classifications:
            return False
        if self.stance != ALL and event.stance_label != self.stance:
            return False
        return True

    def apply(self, records: Iterable[TradeRecord]) -> List[TradeRecord]:
        return [record for record in records if self.matches(record)]


def sort_by_premium(records: Iterable[TradeRecord]) -> List[TradeRecord]:
    """Largest premium first; ties go to the most recent print."""
    def _key(record: TradeRecord):
        ts = record.timestamp or record.received_at or 0
        return (record.premium or 0.0, ts)

    return sorted(records, key=_key, reverse=True)
