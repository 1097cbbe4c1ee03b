"""
Crawler scheduler that drives the crawl: frontier, fetching, status
dispatch, link extraction and checkpointing.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import gemtext
from .fetcher import FetchTimeout, FetchTransportError, GeminiFetcher
from .response import GeminiResponse, MalformedResponse, StatusCategory, parse_response
from .url_frontier import FrontierOrder, URLFrontier
from .url_resolver import Address, InvalidAddress, resolve
from ..storage.checkpoint import CheckpointStore, PersistenceError
from ..utils.config import Config
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    urls_fetched: int = 0
    responses: int = 0
    timed_out: int = 0
    malformed: int = 0
    transport_errors: int = 0
    errors: int = 0
    links_discovered: int = 0
    invalid_links: int = 0
    checkpoints_saved: int = 0
    average_fetch_time: float = 0.0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_fetched / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Coordinates the crawl.

    The scheduler owns the frontier and entry table. The transport and the
    checkpoint store are injected so they can be replaced in tests; when
    not given they are built from the configuration.

    With ``max_concurrent_requests`` set to 1 the crawl is strictly
    sequential: pop, fetch, extract and update happen for one address at
    a time.
    """

    def __init__(self, config: Config, fetcher=None,
                 store: Optional[CheckpointStore] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.url_logger = get_crawler_logger(__name__)

        crawler = config.crawler
        self.frontier = URLFrontier(
            max_entries=crawler.max_entries,
            order=FrontierOrder(crawler.frontier_order)
        )
        self.fetcher = fetcher
        self.store = store
        self.monitor = monitor
        self.request_timeout = crawler.request_timeout
        self.save_interval = config.checkpoint.save_interval

        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self.workers: List[asyncio.Task] = []

        self._owns_fetcher = False
        self._in_flight = 0
        self._work_available: Optional[asyncio.Condition] = None
        self._since_checkpoint = 0
        self._max_pages: Optional[int] = None
        self._max_duration: Optional[float] = None

    async def initialize(self):
        """
        Build missing collaborators and load the resume checkpoint, if any.

        Raises:
            PersistenceError: if a resume checkpoint was configured but
                could not be loaded.
        """
        crawler = self.config.crawler

        if self.fetcher is None:
            self.fetcher = GeminiFetcher(
                insecure=crawler.insecure_skip_verify,
                max_response_size=crawler.max_response_size
            )
            self._owns_fetcher = True
            await self.fetcher.start()

        if self.store is None:
            self.store = CheckpointStore(self.config.checkpoint.path)

        resume_from = self.config.checkpoint.resume_from
        if resume_from:
            entries = CheckpointStore(resume_from).load()
            self.frontier.load(entries, requeue_unfetched=crawler.requeue_unfetched)
            self.logger.info(f"Resuming from {resume_from}")

        self.logger.info("Crawler scheduler initialized")

    def seed(self, start_url: Optional[str] = None) -> bool:
        """
        Add the start address to the frontier.

        Raises:
            InvalidAddress: if the start address is not a gemini address.
        """
        address = resolve(None, start_url or self.config.crawler.start_url)
        added = self.frontier.seed(address)
        if added:
            self.logger.info(f"Seeded frontier with {address}")
        else:
            self.logger.info(f"Start address {address} already known")
        return added

    async def start_crawling(self, max_pages: Optional[int] = None,
                             max_duration: Optional[float] = None):
        """
        Crawl until the frontier is exhausted or a limit is reached, then
        save a final checkpoint.

        Args:
            max_pages: Maximum number of fetch attempts (None for unlimited)
            max_duration: Maximum duration in seconds (None for unlimited)

        Raises:
            PersistenceError: if the final checkpoint could not be saved.
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return

        self.seed()

        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        self._max_pages = max_pages
        self._max_duration = max_duration
        self._work_available = asyncio.Condition()

        num_workers = self.config.crawler.max_concurrent_requests
        try:
            self.workers = [
                asyncio.create_task(self._worker(f"worker-{i}"))
                for i in range(num_workers)
            ]
            self.logger.info(f"Started crawling with {num_workers} worker(s)")
            await asyncio.gather(*self.workers)
        finally:
            self.is_running = False
            self.workers = []

        self._log_final_stats()
        self.save_checkpoint(final=True)

    def _limit_reached(self) -> bool:
        if not self.is_running:
            return True
        if self.frontier.is_full and self.stats.urls_fetched > 0:
            self.logger.info(f"Entry table reached its limit of {self.frontier.max_entries}")
            return True
        if self._max_pages and self.stats.urls_fetched >= self._max_pages:
            self.logger.info(f"Reached max pages limit: {self._max_pages}")
            return True
        if self._max_duration and self.stats.elapsed_time >= self._max_duration:
            self.logger.info(f"Reached max duration: {self._max_duration} seconds")
            return True
        return False

    async def _next_address(self) -> Optional[Address]:
        """Wait for an address to fetch; None once there is no more work."""
        async with self._work_available:
            while True:
                if self._limit_reached():
                    return None
                address = self.frontier.pop()
                if address is not None:
                    self._in_flight += 1
                    return address
                if self._in_flight == 0:
                    return None
                await self._work_available.wait()

    async def _worker(self, worker_id: str):
        self.logger.debug(f"Worker {worker_id} started")

        while True:
            address = await self._next_address()
            if address is None:
                break
            try:
                await self._process_url(address)
            except Exception as e:
                self.logger.error(f"Worker {worker_id} error on {address}: {e}", exc_info=True)
                self.stats.errors += 1
            finally:
                async with self._work_available:
                    self._in_flight -= 1
                    self._work_available.notify_all()

        self.logger.debug(f"Worker {worker_id} finished")

    async def _process_url(self, address: Address):
        """Fetch one address and apply the result to its entry."""
        start_time = time.time()
        self.stats.urls_fetched += 1

        try:
            raw = await asyncio.wait_for(self.fetcher.fetch(address), timeout=self.request_timeout)
        except (asyncio.TimeoutError, FetchTimeout):
            self.frontier.mark_timed_out(address)
            self.stats.timed_out += 1
            self._record_error('timeout')
            self.url_logger.log_url_event(logging.WARNING, str(address), "Timed out fetching")
            return
        except FetchTransportError as e:
            self.stats.transport_errors += 1
            self._record_error('transport')
            self.logger.warning(f"Transport error: {e}")
            return

        fetch_time = time.time() - start_time
        self.stats.average_fetch_time += (fetch_time - self.stats.average_fetch_time) / self.stats.urls_fetched

        try:
            response = parse_response(raw)
        except MalformedResponse as e:
            self.frontier.mark_malformed(address)
            self.stats.malformed += 1
            self._record_error('malformed')
            self.logger.warning(f"Malformed response from {address}: {e}")
            return

        self._handle_response(address, response)
        if self.monitor:
            self.monitor.record_fetch(response.category.name.lower(), fetch_time)
            self.monitor.update_frontier(self.frontier.queued(), len(self.frontier))

    def _handle_response(self, address: Address, response: GeminiResponse):
        """Record the response and, for gemtext documents, queue their links."""
        self.frontier.record_response(address, response.status, response.meta)
        self.stats.responses += 1
        self.logger.debug(f"{address}: {response.status} {response.meta}")

        category = response.category
        if category is StatusCategory.SUCCESS:
            if response.is_gemtext:
                self._queue_links(address, response.text)
        elif category is StatusCategory.REDIRECT:
            self.logger.debug(f"Not following redirect from {address} to {response.meta}")
        elif category is StatusCategory.UNKNOWN:
            self.logger.debug(f"Unknown status {response.status} from {address}")

    def _queue_links(self, address: Address, text: str):
        referrer = str(address)
        for link in gemtext.links(gemtext.parse(text)):
            try:
                target = resolve(address, link.to)
            except InvalidAddress as e:
                self.stats.invalid_links += 1
                self.logger.debug(f"Dropping link {link.to!r} on {referrer}: {e}")
                continue

            if self.frontier.discover(target, referrer):
                self.stats.links_discovered += 1
                self._since_checkpoint += 1
                if self.monitor:
                    self.monitor.record_discovery()
                if self._since_checkpoint >= self.save_interval:
                    self.save_checkpoint()

    def save_checkpoint(self, final: bool = False):
        """
        Write the entry table to the checkpoint store.

        A failed periodic save is logged and the crawl continues; a failed
        final save raises PersistenceError.
        """
        self._since_checkpoint = 0
        try:
            self.store.save(self.frontier.snapshot())
        except PersistenceError as e:
            if final:
                self.logger.error(f"Final checkpoint save failed: {e}")
                raise
            self.logger.warning(f"Checkpoint save failed, continuing: {e}")
            return
        self.stats.checkpoints_saved += 1

    def _record_error(self, error_type: str):
        if self.monitor:
            self.monitor.record_error(error_type)

    def summarize_statuses(self) -> Dict[str, int]:
        """Count entries by response status class."""
        counts = Counter()
        for entry in self.frontier.entries.values():
            if entry.timed_out:
                counts['timed_out'] += 1
            elif entry.malformed:
                counts['malformed'] += 1
            elif not entry.fetched:
                counts['unfetched'] += 1
            else:
                counts[StatusCategory.from_status(entry.status).name.lower()] += 1
        return dict(counts)

    def _log_final_stats(self):
        frontier_stats = self.frontier.get_stats()

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total fetch attempts: {self.stats.urls_fetched}")
        self.logger.info(f"Responses: {self.stats.responses}")
        self.logger.info(f"Timed out: {self.stats.timed_out}")
        self.logger.info(f"Malformed: {self.stats.malformed}")
        self.logger.info(f"Transport errors: {self.stats.transport_errors}")
        self.logger.info(f"Links discovered: {self.stats.links_discovered}")
        self.logger.info(f"Invalid links dropped: {self.stats.invalid_links}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Entries: {frontier_stats['total_entries']}")
        self.logger.info(f"Addresses remaining in queue: {frontier_stats['total_queued']}")
        self.logger.info(f"Entries by status: {self.summarize_statuses()}")

    async def stop_crawling(self):
        """Stop handing out new addresses; in-flight fetches finish normally."""
        self.logger.info("Stopping crawler...")
        self.is_running = False
        if self._work_available is not None:
            async with self._work_available:
                self._work_available.notify_all()

    async def close(self):
        if self.fetcher and self._owns_fetcher:
            await self.fetcher.close()
        self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_fetched': self.stats.urls_fetched,
            'responses': self.stats.responses,
            'timed_out': self.stats.timed_out,
            'malformed': self.stats.malformed,
            'transport_errors': self.stats.transport_errors,
            'errors': self.stats.errors,
            'links_discovered': self.stats.links_discovered,
            'invalid_links': self.stats.invalid_links,
            'checkpoints_saved': self.stats.checkpoints_saved,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'average_fetch_time': self.stats.average_fetch_time,
            'entries': len(self.frontier),
            'urls_in_queue': self.frontier.queued(),
            'is_running': self.is_running
        }
