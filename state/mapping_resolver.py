import logging
from typing import Dict, Hashable

from .records import InstrumentDescriptor, UNKNOWN_INSTRUMENT


logger = logging.getLogger(__name__)


class InstrumentMappingResolver:
    """conid -> descriptor table. Lookups never fail."""

    def __init__(self):
        self._descriptors: Dict[int, InstrumentDescriptor] = {}

    def upsert(self, conid: int, descriptor: InstrumentDescriptor) -> None:
        previous = self._descriptors.get(conid)
        self._descriptors[conid] = descriptor
        if previous is not None and previous != descriptor:
            logger.debug("Mapping for conid %s replaced: %s -> %s", conid, previous.symbol, descriptor.symbol)

    def resolve(self, conid: Hashable) -> InstrumentDescriptor:
        try:
            return self._descriptors.get(int(conid), UNKNOWN_INSTRUMENT)
        except (TypeError, ValueError):
            return UNKNOWN_INSTRUMENT

    def __contains__(self, conid: int) -> bool:
        return conid in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
