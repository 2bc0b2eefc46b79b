from typing import Dict, Optional

from .records import QuoteSnapshot


class QuoteStore:
    """Latest quote per instrument. Each arrival replaces the previous snapshot whole."""

    def __init__(self, name: str):
        self.name = name
        self._quotes: Dict[int, QuoteSnapshot] = {}

    def upsert(self, conid: int, snapshot: QuoteSnapshot) -> None:
        self._quotes[conid] = snapshot

    def get(self, conid: int) -> Optional[QuoteSnapshot]:
        return self._quotes.get(conid)

    def clear(self) -> None:
        self._quotes.clear()

    def snapshot(self) -> Dict[int, QuoteSnapshot]:
        return dict(self._quotes)

    def __len__(self) -> int:
        return len(self._quotes)
