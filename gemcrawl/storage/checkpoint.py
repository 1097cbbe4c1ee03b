"""
Checkpoint storage for the entry table.

The whole table is written as one JSON document. Writes go to a
temporary file in the same directory which is then renamed over the
previous checkpoint, so an interrupted save leaves the old one intact.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, Union

from ..crawler.url_frontier import CrawlEntry
from ..crawler.url_resolver import InvalidAddress, resolve


STORAGE_VERSION = '1.0'


class PersistenceError(Exception):
    """Custom exception for checkpoint read and write failures."""
    pass


class CheckpointStore:
    """Loads and saves entry table checkpoints at a fixed path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'saves': 0,
            'failed_saves': 0,
            'last_size_bytes': 0
        }

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Dict[str, CrawlEntry]:
        """
        Read a checkpoint.

        Raises:
            PersistenceError: if the file is missing, unreadable, or does
                not contain a valid entry table.
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read checkpoint {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('entries'), dict):
            raise PersistenceError(f"Checkpoint {self.path} has no entry table")

        entries = {}
        for url, fields in data['entries'].items():
            if not isinstance(fields, dict):
                raise PersistenceError(f"Invalid entry for {url!r} in {self.path}")
            try:
                canonical = str(resolve(None, url))
                entry = CrawlEntry.from_dict(fields)
            except (InvalidAddress, TypeError, ValueError) as e:
                raise PersistenceError(f"Invalid entry for {url!r} in {self.path}: {e}") from e
            if canonical in entries:
                raise PersistenceError(
                    f"Duplicate entry for {canonical} in {self.path} (from key {url!r})"
                )
            entries[canonical] = entry

        self.logger.info(f"Loaded checkpoint {self.path} with {len(entries)} entries")
        return entries

    def save(self, entries: Mapping[str, CrawlEntry]):
        """
        Write a checkpoint atomically.

        Raises:
            PersistenceError: if the checkpoint could not be written.
        """
        data = {
            'storage_version': STORAGE_VERSION,
            'saved_at': datetime.now(timezone.utc).isoformat(),
            'entries': {url: entry.to_dict() for url, entry in entries.items()}
        }

        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix='.tmp', dir=self.path.parent
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            self.stats['failed_saves'] += 1
            raise PersistenceError(f"Failed to write checkpoint {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        self.stats['saves'] += 1
        self.stats['last_size_bytes'] = self.path.stat().st_size
        self.logger.info(f"Saved checkpoint {self.path} with {len(entries)} entries")

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
