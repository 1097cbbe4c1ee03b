"""
URL frontier and entry table for the crawl.

The entry table records everything known about every address ever
discovered; the frontier holds the addresses still waiting to be fetched.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional

from .url_resolver import Address, resolve


class FrontierOrder(Enum):
    """Visitation order of the frontier."""
    STACK = "stack"  # most recently discovered first
    QUEUE = "queue"  # breadth-first


@dataclass
class CrawlEntry:
    """Everything known about one discovered address."""
    referrers: List[str] = field(default_factory=list)
    timed_out: bool = False
    malformed: bool = False
    status: int = 0
    meta: str = ""

    @property
    def fetched(self) -> bool:
        return self.status != 0

    @property
    def attempted(self) -> bool:
        return self.fetched or self.timed_out or self.malformed

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'referrers': list(self.referrers),
            'timed_out': self.timed_out,
            'malformed': self.malformed,
            'status': self.status,
            'meta': self.meta
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CrawlEntry':
        """
        Create CrawlEntry from dictionary.

        Raises:
            ValueError: if a field has the wrong type.
        """
        referrers = data.get('referrers', [])
        if not isinstance(referrers, list) or not all(isinstance(r, str) for r in referrers):
            raise ValueError(f"referrers must be a list of strings, got {referrers!r}")

        for flag in ('timed_out', 'malformed'):
            if not isinstance(data.get(flag, False), bool):
                raise ValueError(f"{flag} must be a boolean, got {data[flag]!r}")

        # bool is an int subclass and is not a status code.
        status = data.get('status', 0)
        if isinstance(status, bool) or not isinstance(status, int):
            raise ValueError(f"status must be an integer, got {status!r}")

        meta = data.get('meta', '')
        if not isinstance(meta, str):
            raise ValueError(f"meta must be a string, got {meta!r}")

        return cls(
            referrers=list(referrers),
            timed_out=data.get('timed_out', False),
            malformed=data.get('malformed', False),
            status=status,
            meta=meta
        )


class URLFrontier:
    """
    Owns the frontier and the entry table.

    The first discovery of an address creates its entry and queues it;
    later discoveries only append the referrer. When ``max_entries`` is
    set, addresses discovered once the table is full are dropped.

    Mutating methods never await, so under asyncio each call is atomic
    with respect to other workers.
    """

    def __init__(self, max_entries: Optional[int] = None,
                 order: FrontierOrder = FrontierOrder.STACK):
        self.max_entries = max_entries
        self.order = order
        self.logger = logging.getLogger(__name__)

        self.entries: Dict[str, CrawlEntry] = {}
        self._pending: Deque[Address] = deque()
        self._queued: set = set()
        self.dropped = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, url) -> bool:
        return str(url) in self.entries

    @property
    def is_full(self) -> bool:
        return self.max_entries is not None and len(self.entries) >= self.max_entries

    def is_empty(self) -> bool:
        return not self._pending

    def queued(self) -> int:
        return len(self._pending)

    def get(self, url) -> Optional[CrawlEntry]:
        return self.entries.get(str(url))

    def _push(self, address: Address):
        key = str(address)
        if key in self._queued:
            return
        self._pending.append(address)
        self._queued.add(key)

    def seed(self, address: Address) -> bool:
        """
        Add a start address with no referrers.

        Returns True if the address was new and queued.
        """
        key = str(address)
        if key in self.entries:
            return False
        if self.is_full:
            self.logger.warning(f"Entry table full, not seeding {key}")
            return False
        self.entries[key] = CrawlEntry()
        self._push(address)
        return True

    def discover(self, address: Address, referrer: str) -> bool:
        """
        Record that ``referrer`` links to ``address``.

        Returns True if this created a new entry and queued the address.
        """
        key = str(address)
        entry = self.entries.get(key)
        if entry is not None:
            entry.referrers.append(referrer)
            return False

        if self.is_full:
            self.dropped += 1
            self.logger.debug(f"Entry table full, dropping {key}")
            return False

        self.entries[key] = CrawlEntry(referrers=[referrer])
        self._push(address)
        self.logger.debug(f"Discovered {key} from {referrer}")
        return True

    def pop(self) -> Optional[Address]:
        """Take the next address to fetch, or None if the frontier is empty."""
        if not self._pending:
            return None
        if self.order is FrontierOrder.STACK:
            address = self._pending.pop()
        else:
            address = self._pending.popleft()
        self._queued.discard(str(address))
        return address

    def record_response(self, address: Address, status: int, meta: str):
        entry = self.entries[str(address)]
        entry.status = status
        entry.meta = meta

    def mark_timed_out(self, address: Address):
        self.entries[str(address)].timed_out = True

    def mark_malformed(self, address: Address):
        self.entries[str(address)].malformed = True

    def load(self, entries: Dict[str, CrawlEntry], requeue_unfetched: bool = True) -> int:
        """
        Replace the entry table with a loaded checkpoint.

        Entries that were never attempted (no status, not timed out, not
        malformed) are queued again when ``requeue_unfetched`` is set.
        Returns the number of re-queued addresses.
        """
        self.entries = dict(entries)
        self._pending.clear()
        self._queued.clear()

        requeued = 0
        if requeue_unfetched:
            for key, entry in self.entries.items():
                if entry.attempted:
                    continue
                self._push(resolve(None, key))
                requeued += 1

        self.logger.info(f"Loaded {len(self.entries)} entries, re-queued {requeued}")
        return requeued

    def snapshot(self) -> Dict[str, CrawlEntry]:
        """Return a deep copy of the entry table."""
        return {key: CrawlEntry.from_dict(entry.to_dict()) for key, entry in self.entries.items()}

    def get_stats(self) -> Dict[str, int]:
        return {
            'total_entries': len(self.entries),
            'total_queued': len(self._pending),
            'total_fetched': sum(1 for e in self.entries.values() if e.fetched),
            'timed_out': sum(1 for e in self.entries.values() if e.timed_out),
            'malformed': sum(1 for e in self.entries.values() if e.malformed),
            'dropped': self.dropped
        }
